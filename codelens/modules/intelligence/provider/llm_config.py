from typing import Any, Dict, Optional
import os

DEFAULT_ANALYSIS_MODEL = "anthropic/claude-3-opus-20240229"

# Per-model call defaults, keyed by the full litellm model string
MODEL_CONFIG_MAP = {
    "anthropic/claude-3-opus-20240229": {
        "provider": "anthropic",
        "default_params": {"temperature": 0.7, "max_tokens": 2000},
    },
    "anthropic/claude-3-5-sonnet-20241022": {
        "provider": "anthropic",
        "default_params": {"temperature": 0.3, "max_tokens": 4000},
    },
    "anthropic/claude-3-5-haiku-20241022": {
        "provider": "anthropic",
        "default_params": {"temperature": 0.2, "max_tokens": 4000},
    },
    "openai/gpt-4o": {
        "provider": "openai",
        "default_params": {"temperature": 0.3, "max_tokens": 4000},
    },
    "openai/gpt-4.1-mini": {
        "provider": "openai",
        "default_params": {"temperature": 0.3, "max_tokens": 4000},
    },
}


class LLMProviderConfig:
    def __init__(
        self,
        provider: str,
        model: str,
        default_params: Dict[str, Any],
    ):
        self.provider = provider
        self.model = model
        self.default_params = default_params

    def get_llm_params(self, api_key: str) -> Dict[str, Any]:
        """Build the keyword arguments for one litellm completion call."""
        params = {
            "model": self.model,
            "temperature": self.default_params.get("temperature", 0.3),
            "api_key": api_key,
        }
        for key, value in self.default_params.items():
            if key != "temperature":
                params[key] = value
        return params


def parse_model_string(model_string: str) -> tuple[str, str]:
    """Split "provider/model" into the provider and the full model string."""
    if not model_string or "/" not in model_string:
        return "anthropic", DEFAULT_ANALYSIS_MODEL
    return model_string.split("/")[0], model_string


def get_config_for_model(model_string: str) -> Dict[str, Any]:
    if model_string in MODEL_CONFIG_MAP:
        return MODEL_CONFIG_MAP[model_string]
    provider, _ = parse_model_string(model_string)
    return {
        "provider": provider,
        "default_params": {"temperature": 0.3, "max_tokens": 2000},
    }


def build_llm_provider_config(model_string: Optional[str] = None) -> LLMProviderConfig:
    """
    Build the analysis model configuration.

    Priority order:
    1. Explicit model string (CLI flag or injected config)
    2. ANALYSIS_MODEL environment variable
    3. Built-in default
    """
    model_string = (
        model_string or os.environ.get("ANALYSIS_MODEL") or DEFAULT_ANALYSIS_MODEL
    )
    provider, full_model_name = parse_model_string(model_string)
    config_data = get_config_for_model(full_model_name)

    return LLMProviderConfig(
        provider=config_data["provider"],
        model=full_model_name,
        default_params=config_data["default_params"],
    )
