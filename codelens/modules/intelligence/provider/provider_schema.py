from typing import Optional

from pydantic import BaseModel


class ModelUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0  # USD, advisory only


class ModelCompletion(BaseModel):
    text: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    # Set when the call failed upstream; text is empty in that case
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    @classmethod
    def failed(cls, error: str) -> "ModelCompletion":
        return cls(text="", input_tokens=0, output_tokens=0, error=error)
