import os
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(Exception):
    pass


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


class ConfigProvider:
    def __init__(self):
        self.postgres_server = os.getenv("POSTGRES_SERVER")
        self.github_token = os.getenv("GITHUB_TOKEN")
        self.github_api_base = os.getenv("GITHUB_API_BASE", "https://api.github.com")
        self.analysis_model = os.getenv("ANALYSIS_MODEL")

        self.token_budget = _get_int("ANALYSIS_TOKEN_BUDGET", 2000)
        self.prompt_char_limit = _get_int("ANALYSIS_PROMPT_CHAR_LIMIT", 12000)
        timeout = _get_float("ANALYSIS_MODEL_TIMEOUT_SECONDS", 0.0)
        self.model_timeout_seconds = timeout if timeout > 0 else None

        self.similarity_threshold = _get_float("ANALYSIS_SIMILARITY_THRESHOLD", 0.8)
        self.similarity_candidates = _get_int("ANALYSIS_SIMILARITY_CANDIDATES", 100)
        self.similarity_weights = self._parse_weights(
            os.getenv("ANALYSIS_SIMILARITY_WEIGHTS")
        )

        self.cost_per_1k_input = _get_float("ANALYSIS_COST_PER_1K_INPUT", 0.008)
        self.cost_per_1k_output = _get_float("ANALYSIS_COST_PER_1K_OUTPUT", 0.024)

    @staticmethod
    def _parse_weights(raw: Optional[str]) -> Tuple[float, float, float, float]:
        """Parse "files,types,count,main" weights, e.g. "0.3,0.2,0.2,0.3"."""
        if not raw:
            return (0.3, 0.2, 0.2, 0.3)
        parts = [p.strip() for p in raw.split(",") if p.strip()]
        if len(parts) != 4:
            raise ConfigurationError(
                f"ANALYSIS_SIMILARITY_WEIGHTS needs 4 comma separated values, got {raw!r}"
            )
        try:
            return tuple(float(p) for p in parts)
        except ValueError as e:
            raise ConfigurationError(
                f"ANALYSIS_SIMILARITY_WEIGHTS must be numeric, got {raw!r}"
            ) from e

    def get_postgres_server(self):
        if not self.postgres_server:
            raise ConfigurationError("POSTGRES_SERVER is not set")
        return self.postgres_server

    def get_github_token(self):
        return self.github_token

    def get_github_api_base(self):
        return self.github_api_base.rstrip("/")

    def get_analysis_model(self):
        return self.analysis_model


config_provider = ConfigProvider()
