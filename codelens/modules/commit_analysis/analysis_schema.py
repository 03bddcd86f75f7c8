import re
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

# Persisted records carry this version; older shapes are migrated on read
SCHEMA_VERSION = 2

DIAGRAM_MARKER = "graph TD"

# Line numbers are capped at 9 digits so int() stays bounded
SNIPPET_LINE_PATTERN = re.compile(r"^\s*(\d{1,9})\s*:\s?(.*)$", re.DOTALL)
LINES_RANGE_PATTERN = re.compile(r"^\s*(\d{1,9})\s*[-–—]\s*(\d{1,9})\s*$")


class ChangeType(str, Enum):
    FEATURE = "Feature"
    REFACTOR = "Refactor"
    LOGIC = "Logic"
    CHORE = "Chore"
    CLEANUP = "Cleanup"
    CONFIG = "Config"


SIGNIFICANT_TYPES = (ChangeType.FEATURE, ChangeType.REFACTOR, ChangeType.LOGIC)
MAINTENANCE_DEFAULT_TYPE = ChangeType.CHORE

# Values produced by earlier prompt versions
LEGACY_TYPE_ALIASES = {
    "New Feature": ChangeType.FEATURE,
    "Improvement": ChangeType.LOGIC,
}


def change_priority(change_type: ChangeType) -> int:
    """0 for the significant tier, 1 for maintenance."""
    return 0 if change_type in SIGNIFICANT_TYPES else 1


def parse_lines_range(lines: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse "start-end" (hyphen or en dash). Returns None when unparseable."""
    if not lines:
        return None
    match = LINES_RANGE_PATTERN.match(lines)
    if not match:
        return None
    start, end = int(match.group(1)), int(match.group(2))
    if end < start:
        return None
    return start, end


def parse_snippet_line(entry: str) -> Optional[Tuple[int, str]]:
    """Split "42: code" into (42, "code")."""
    match = SNIPPET_LINE_PATTERN.match(entry)
    if not match:
        return None
    return int(match.group(1)), match.group(2)


def snippet_numbering_errors(snippet: List[str], lines: Optional[str]) -> List[str]:
    """Describe every way ``snippet`` disagrees with the ``lines`` range."""
    errors = []
    numbers = []
    for index, entry in enumerate(snippet):
        parsed = parse_snippet_line(entry)
        if parsed is None:
            errors.append(f"snippet line {index} has no line number prefix")
        else:
            numbers.append(parsed[0])

    if lines is None:
        return errors

    line_range = parse_lines_range(lines)
    if line_range is None:
        errors.append(f"lines {lines!r} is not a start-end range")
        return errors

    start, end = line_range
    if errors:
        return errors
    for index, number in enumerate(numbers):
        if number != start + index:
            errors.append(
                f"snippet line {index} is numbered {number}, expected {start + index}"
            )
        elif not start <= number <= end:
            errors.append(f"snippet line {number} is outside {start}-{end}")
    return errors


class AnalysisModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CodeChange(AnalysisModel):
    type: ChangeType
    file: str
    lines: str
    summary: str
    code_snippet: Optional[List[str]] = None
    explanation: str

    @model_validator(mode="after")
    def check_snippet(self):
        if self.code_snippet is None:
            return self
        if self.type not in SIGNIFICANT_TYPES:
            raise ValueError(
                f"codeSnippet is only allowed for {', '.join(t.value for t in SIGNIFICANT_TYPES)} changes"
            )
        errors = snippet_numbering_errors(self.code_snippet, self.lines)
        if errors:
            raise ValueError("; ".join(errors))
        return self


class ArchitectureDiagram(AnalysisModel):
    diagram: str
    explanation: str

    @model_validator(mode="after")
    def check_marker(self):
        if not self.diagram.startswith(DIAGRAM_MARKER):
            raise ValueError(f"diagram must start with {DIAGRAM_MARKER!r}")
        return self


class ConceptTakeaway(AnalysisModel):
    concept: str
    file: Optional[str] = None
    lines: Optional[str] = None
    code_snippet: List[str]
    explanation: str

    @model_validator(mode="after")
    def check_snippet(self):
        errors = snippet_numbering_errors(self.code_snippet, self.lines)
        if errors:
            raise ValueError("; ".join(errors))
        return self


class Analysis(AnalysisModel):
    code_changes: List[CodeChange]
    architecture_diagram: ArchitectureDiagram
    concept_takeaway: ConceptTakeaway

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def default_analysis() -> Analysis:
    """The analysis returned whenever nothing better can be produced."""
    return Analysis(
        code_changes=[
            CodeChange(
                type=ChangeType.CHORE,
                file="unknown",
                lines="0-0",
                summary="No changes detected",
                explanation="No analysis available",
            )
        ],
        architecture_diagram=ArchitectureDiagram(
            diagram=f"{DIAGRAM_MARKER}\n  A[No Analysis] --> B[Try Again]\n  B --> A",
            explanation="No architecture diagram available",
        ),
        concept_takeaway=ConceptTakeaway(
            concept="None",
            code_snippet=[
                "0: // No code snippet available",
                "1: // Please try regenerating the analysis",
            ],
            explanation="No concept takeaway available",
        ),
    )


class AnalysisSource(str, Enum):
    PERSISTED = "persisted"
    CACHE_EXACT = "cache_exact"
    CACHE_SIMILAR = "cache_similar"
    GENERATED = "generated"
    DEFAULT = "default"


class FallbackReason(str, Enum):
    # Nothing to analyze; not an error
    EMPTY_DIFF = "empty_diff"
    # Model answered with no text and reported no error
    EMPTY_RESPONSE = "empty_response"
    MODEL_UNAVAILABLE = "model_unavailable"
    UNPARSEABLE_RESPONSE = "unparseable_response"
    INVALID_RESPONSE = "invalid_response"


ERROR_FALLBACK_REASONS = (
    FallbackReason.MODEL_UNAVAILABLE,
    FallbackReason.UNPARSEABLE_RESPONSE,
    FallbackReason.INVALID_RESPONSE,
)


class PipelineResult(BaseModel):
    analysis: Analysis
    source: AnalysisSource
    fallback_reason: Optional[FallbackReason] = None
    details: Optional[str] = None
    summary: Optional[str] = None
    diff_hash: Optional[str] = None

    @property
    def error(self) -> bool:
        return self.fallback_reason in ERROR_FALLBACK_REASONS

    @classmethod
    def default(
        cls, reason: FallbackReason, details: Optional[str] = None, **kwargs
    ) -> "PipelineResult":
        return cls(
            analysis=default_analysis(),
            source=AnalysisSource.DEFAULT,
            fallback_reason=reason,
            details=details,
            **kwargs,
        )


class AnalysisResponse(BaseModel):
    error: bool
    details: Optional[str] = None
    analysis: dict
    summary: Optional[str] = None
    source: str
