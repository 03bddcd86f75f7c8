"""
Token counting and cost estimation for analysis model calls.

Costs are advisory: they are logged and attached to the ``llm.call`` span,
never used to make decisions.
"""

import math
from typing import Optional

import tiktoken


def estimate_tokens(text: str) -> int:
    """Cheap character based estimate (~4 characters per token)."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


class TokenCounter:
    """
    Count tokens and price them at fixed per-1K-token rates.

    Example usage:
        counter = TokenCounter("anthropic/claude-3-opus-20240229", 0.008, 0.024)
        counter.count_tokens("Hello, world!")
        counter.calculate_cost(input_tokens=1200, output_tokens=350)
    """

    def __init__(
        self,
        model: str,
        cost_per_1k_input: float,
        cost_per_1k_output: float,
    ):
        self.model = model
        self.cost_per_1k_input = cost_per_1k_input
        self.cost_per_1k_output = cost_per_1k_output
        self._encoding = None

    @property
    def encoding(self):
        # Loaded lazily; tiktoken may need to fetch the BPE file on first use
        if self._encoding is None:
            model_name = self.model.split("/")[-1]
            try:
                if "gpt" in model_name.lower():
                    self._encoding = tiktoken.encoding_for_model(model_name)
                else:
                    self._encoding = tiktoken.get_encoding("cl100k_base")
            except KeyError:
                self._encoding = tiktoken.get_encoding("cl100k_base")
        return self._encoding

    def count_tokens(self, text: Optional[str]) -> int:
        """Count tokens with the tokenizer, falling back to the character estimate."""
        if not text:
            return 0
        try:
            return len(self.encoding.encode(text))
        except Exception:
            return estimate_tokens(text)

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        input_cost = (input_tokens / 1000) * self.cost_per_1k_input
        output_cost = (output_tokens / 1000) * self.cost_per_1k_output
        return input_cost + output_cost

    def format_cost_breakdown(self, input_tokens: int, output_tokens: int) -> str:
        input_cost = (input_tokens / 1000) * self.cost_per_1k_input
        output_cost = (output_tokens / 1000) * self.cost_per_1k_output
        return (
            f"input={input_tokens:,} tokens (${input_cost:.4f}), "
            f"output={output_tokens:,} tokens (${output_cost:.4f}), "
            f"total=${input_cost + output_cost:.4f}"
        )
