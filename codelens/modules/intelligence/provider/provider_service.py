import asyncio
import os
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import litellm

from codelens.core.config_provider import config_provider
from codelens.core.telemetry import get_tracer
from codelens.modules.intelligence.provider.llm_config import (
    LLMProviderConfig,
    build_llm_provider_config,
)
from codelens.modules.intelligence.provider.provider_schema import (
    ModelCompletion,
    ModelUsage,
)
from codelens.modules.intelligence.provider.token_counter import TokenCounter
from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)

RECOVERABLE_MARKERS = (
    "timeout",
    "overloaded",
    "capacity",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "server_error",
    "500",
    "502",
    "503",
    "504",
)


@dataclass(frozen=True)
class RetrySettings:
    max_retries: int = 3
    min_delay: float = 1.0
    max_delay: float = 30.0
    base_delay: float = 2.0
    jitter: float = 0.2

    def delay_for(self, attempt: int) -> float:
        """Doubling backoff with jitter, kept within [min_delay, max_delay]."""
        delay = self.base_delay * (2**attempt) * random.uniform(
            1 - self.jitter, 1 + self.jitter
        )
        return max(self.min_delay, min(self.max_delay, delay))


def is_recoverable_error(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in RECOVERABLE_MARKERS)


class ProviderService:
    """
    Gateway to the analysis model.

    ``complete`` never raises: upstream problems come back as an empty
    ``ModelCompletion`` with ``error`` set.
    """

    def __init__(
        self,
        llm_config: Optional[LLMProviderConfig] = None,
        prompt_char_limit: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        retry_settings: Optional[RetrySettings] = None,
        token_counter: Optional[TokenCounter] = None,
    ):
        self.llm_config = llm_config or build_llm_provider_config(
            config_provider.get_analysis_model()
        )
        self.prompt_char_limit = (
            config_provider.prompt_char_limit
            if prompt_char_limit is None
            else prompt_char_limit
        )
        self.timeout_seconds = timeout_seconds
        self.retry_settings = retry_settings or RetrySettings()
        self.token_counter = token_counter or TokenCounter(
            self.llm_config.model,
            config_provider.cost_per_1k_input,
            config_provider.cost_per_1k_output,
        )

    @classmethod
    def create(cls, model: Optional[str] = None):
        return cls(
            llm_config=build_llm_provider_config(model),
            timeout_seconds=config_provider.model_timeout_seconds,
        )

    def _get_api_key(self) -> Optional[str]:
        return os.getenv("LLM_API_KEY") or os.getenv(
            f"{self.llm_config.provider.upper()}_API_KEY"
        )

    def truncate_prompt(self, prompt: str) -> str:
        if self.prompt_char_limit and len(prompt) > self.prompt_char_limit:
            logger.warning(
                f"Prompt of {len(prompt)} chars truncated to {self.prompt_char_limit}"
            )
            return prompt[: self.prompt_char_limit]
        return prompt

    async def _acompletion(self, messages: List[Dict[str, Any]], params: Dict[str, Any]):
        max_retries = self.retry_settings.max_retries
        attempt = 0
        while True:
            try:
                return await litellm.acompletion(messages=messages, **params)
            except Exception as e:
                if not is_recoverable_error(e) or attempt >= max_retries:
                    raise
                delay = self.retry_settings.delay_for(attempt)
                attempt += 1
                logger.warning(
                    f"LLM call failed ({e}), retry {attempt}/{max_retries} in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

    async def complete(self, prompt: str) -> ModelCompletion:
        """Send one prompt and return the raw text plus usage."""
        api_key = self._get_api_key()
        if not api_key:
            logger.error(
                f"No API key configured for provider {self.llm_config.provider}"
            )
            return ModelCompletion.failed(
                f"No API key configured for provider {self.llm_config.provider}"
            )

        prompt = self.truncate_prompt(prompt)
        messages = [{"role": "user", "content": prompt}]
        params = self.llm_config.get_llm_params(api_key)

        tracer = get_tracer(__name__)
        with tracer.start_as_current_span("llm.call") as span:
            span.set_attribute("llm.model_name", self.llm_config.model)
            span.set_attribute("llm.provider", self.llm_config.provider)
            span.set_attribute("llm.prompt_chars", len(prompt))

            logger.info(f"Sending prompt to {self.llm_config.model} ({len(prompt)} chars)")
            try:
                call = self._acompletion(messages, params)
                if self.timeout_seconds:
                    response = await asyncio.wait_for(call, timeout=self.timeout_seconds)
                else:
                    response = await call
            except asyncio.TimeoutError as e:
                span.set_attribute("llm.status", "timeout")
                span.record_exception(e)
                logger.warning(
                    f"Model call timed out after {self.timeout_seconds}s"
                )
                return ModelCompletion.failed(
                    f"Model call timed out after {self.timeout_seconds}s"
                )
            except Exception as e:
                span.set_attribute("llm.status", "failure")
                span.record_exception(e)
                logger.warning(f"Error calling LLM: {e}, provider: {self.llm_config.provider}")
                return ModelCompletion.failed(str(e))

            text = self._extract_text(response)
            input_tokens, output_tokens = self._extract_usage(response, prompt, text)
            usage = self._record_usage(input_tokens, output_tokens)

            span.set_attribute("token.usage.input", usage.input_tokens)
            span.set_attribute("token.usage.output", usage.output_tokens)
            span.set_attribute("llm.cost_usd", usage.cost)
            span.set_attribute("llm.status", "success")

        return ModelCompletion(
            text=text, input_tokens=input_tokens, output_tokens=output_tokens
        )

    @staticmethod
    def _extract_text(response) -> str:
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError):
            return ""
        return content if isinstance(content, str) else ""

    def _extract_usage(self, response, prompt: str, text: str) -> tuple[int, int]:
        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", None) if usage else None
        output_tokens = getattr(usage, "completion_tokens", None) if usage else None
        if not isinstance(input_tokens, int):
            input_tokens = self.token_counter.count_tokens(prompt)
        if not isinstance(output_tokens, int):
            output_tokens = self.token_counter.count_tokens(text)
        return input_tokens, output_tokens

    def _record_usage(self, input_tokens: int, output_tokens: int) -> ModelUsage:
        cost = self.token_counter.calculate_cost(input_tokens, output_tokens)
        logger.info(
            "Model usage: "
            + self.token_counter.format_cost_breakdown(input_tokens, output_tokens)
        )
        return ModelUsage(
            input_tokens=input_tokens, output_tokens=output_tokens, cost=cost
        )
