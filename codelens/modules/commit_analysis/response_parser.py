import json
import re
from typing import Callable, List, Optional

from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)

GREEDY_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")
JSON_FENCE_PATTERN = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
ANY_FENCE_PATTERN = re.compile(r"```[^\n`]*\n?([\s\S]*?)```")
OUTERMOST_OBJECT_PATTERN = re.compile(r"^[^{]*(\{[\s\S]*\})[^}]*$")

ExtractionStrategy = Callable[[str], Optional[str]]


def greedy_object(text: str) -> Optional[str]:
    match = GREEDY_OBJECT_PATTERN.search(text)
    return match.group(0) if match else None


def json_fence(text: str) -> Optional[str]:
    match = JSON_FENCE_PATTERN.search(text)
    return match.group(1).strip() if match else None


def any_fence(text: str) -> Optional[str]:
    match = ANY_FENCE_PATTERN.search(text)
    return match.group(1).strip() if match else None


DEFAULT_STRATEGIES: List[ExtractionStrategy] = [greedy_object, json_fence, any_fence]


def strip_surrounding_prose(candidate: str) -> str:
    match = OUTERMOST_OBJECT_PATTERN.match(candidate)
    return match.group(1) if match else candidate


class ResponseParser:
    """
    Pull one JSON object out of free-form model text.

    Strategies are tried in order; the first candidate that parses to a JSON
    object wins.
    """

    def __init__(self, strategies: Optional[List[ExtractionStrategy]] = None):
        self.strategies = strategies or DEFAULT_STRATEGIES

    def extract_json(self, raw_text: Optional[str]) -> Optional[dict]:
        if not raw_text or not isinstance(raw_text, str):
            return None

        for strategy in self.strategies:
            candidate = strategy(raw_text)
            if not candidate:
                continue
            parsed = self._parse(strip_surrounding_prose(candidate))
            if parsed is not None:
                logger.debug(f"Extracted JSON with strategy {strategy.__name__}")
                return parsed

        logger.warning(
            f"No JSON object could be extracted from a {len(raw_text)} char response"
        )
        return None

    @staticmethod
    def _parse(candidate: str) -> Optional[dict]:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError, RecursionError):
            return None
        return parsed if isinstance(parsed, dict) else None
