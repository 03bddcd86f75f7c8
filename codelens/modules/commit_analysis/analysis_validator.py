"""
Validation and repair of model output into an ``Analysis``.

``AnalysisValidator.validate`` is total: any input, including ``None`` or a
non-dict, yields a complete ``Analysis``. The outcome status tells callers
whether the model output was used as-is, repaired field by field, or
replaced with the default analysis.
"""

from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from codelens.modules.commit_analysis.analysis_schema import (
    DIAGRAM_MARKER,
    LEGACY_TYPE_ALIASES,
    MAINTENANCE_DEFAULT_TYPE,
    SIGNIFICANT_TYPES,
    Analysis,
    ChangeType,
    change_priority,
    default_analysis,
    parse_lines_range,
    parse_snippet_line,
    snippet_numbering_errors,
)
from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)

PLACEHOLDER_FILE = "unknown"
PLACEHOLDER_LINES = "N/A"
PLACEHOLDER_SUMMARY = "No summary provided"
PLACEHOLDER_EXPLANATION = "No explanation provided"

LEGACY_CONCEPT_KEY = "reactConcept"


class ValidationStatus(str, Enum):
    VALID = "valid"
    REPAIRED = "repaired"
    DEFAULTED = "defaulted"


class ValidationOutcome(BaseModel):
    analysis: Analysis
    status: ValidationStatus
    errors: List[str] = []

    @property
    def is_default(self) -> bool:
        return self.status == ValidationStatus.DEFAULTED


def _first(data: dict, *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def normalize_change_type(value: Any) -> ChangeType:
    """Map legacy and unknown change types onto the current enum."""
    if isinstance(value, ChangeType):
        return value
    if isinstance(value, str):
        candidate = value.strip()
        if candidate in LEGACY_TYPE_ALIASES:
            return LEGACY_TYPE_ALIASES[candidate]
        for change_type in ChangeType:
            if change_type.value.lower() == candidate.lower():
                return change_type
    return MAINTENANCE_DEFAULT_TYPE


def migrate_legacy_shape(data: dict) -> dict:
    """
    Rewrite older record shapes into the current one.

    Renames ``reactConcept`` and maps retired change type names. Anything
    else is left for validation to judge.
    """
    migrated = dict(data)
    if LEGACY_CONCEPT_KEY in migrated:
        legacy = migrated.pop(LEGACY_CONCEPT_KEY)
        if "conceptTakeaway" not in migrated and "concept_takeaway" not in migrated:
            migrated["conceptTakeaway"] = legacy

    changes = _first(migrated, "codeChanges", "code_changes")
    if isinstance(changes, list):
        updated = []
        for change in changes:
            legacy_type = change.get("type") if isinstance(change, dict) else None
            if isinstance(legacy_type, str) and legacy_type in LEGACY_TYPE_ALIASES:
                change = {**change, "type": LEGACY_TYPE_ALIASES[legacy_type].value}
            updated.append(change)
        migrated.pop("code_changes", None)
        migrated["codeChanges"] = updated
    return migrated


def renumber_snippet(
    snippet: List[Any], lines: Optional[str]
) -> Tuple[List[str], Optional[str]]:
    """
    Number snippet entries ``start + i`` and make ``lines`` span them.

    ``start`` comes from ``lines``, else the first entry's own number, else 1.
    A snippet that already agrees with ``lines`` is returned unchanged.
    """
    entries = [entry if isinstance(entry, str) else str(entry) for entry in snippet]
    if not snippet_numbering_errors(entries, lines):
        return entries, lines

    line_range = parse_lines_range(lines)
    if line_range is not None:
        start = line_range[0]
    else:
        first = parse_snippet_line(entries[0]) if entries else None
        start = first[0] if first else 1

    renumbered = []
    for index, entry in enumerate(entries):
        parsed = parse_snippet_line(entry)
        code = parsed[1] if parsed else entry
        renumbered.append(f"{start + index}: {code}")
    return renumbered, f"{start}-{start + len(entries) - 1}"


def _defaulted(errors: List[str]) -> ValidationOutcome:
    return ValidationOutcome(
        analysis=default_analysis(), status=ValidationStatus.DEFAULTED, errors=errors
    )


class AnalysisValidator:
    def validate(self, parsed: Any) -> ValidationOutcome:
        if not isinstance(parsed, dict):
            logger.warning("Model output is not a JSON object, using default analysis")
            return _defaulted(["response is not a JSON object"])

        try:
            return self._validate_object(parsed)
        except Exception as e:
            logger.exception("Unexpected failure while validating analysis")
            return _defaulted([f"validation failed: {e}"])

    def _validate_object(self, parsed: dict) -> ValidationOutcome:
        migrated = migrate_legacy_shape(parsed)
        try:
            analysis = Analysis.model_validate(migrated)
            return ValidationOutcome(
                analysis=self.sort_changes(analysis), status=ValidationStatus.VALID
            )
        except ValidationError as e:
            errors = [self._describe(err) for err in e.errors()]
            logger.warning(
                f"Analysis failed validation with {len(errors)} error(s), attempting repair"
            )
            for error in errors:
                logger.debug(f"Validation error: {error}")

        try:
            analysis = Analysis.model_validate(self.repair(migrated))
        except ValidationError as e:
            logger.error(f"Repaired analysis is still invalid: {e}")
            return _defaulted(errors + [self._describe(err) for err in e.errors()])

        logger.info("Analysis repaired successfully")
        return ValidationOutcome(
            analysis=self.sort_changes(analysis),
            status=ValidationStatus.REPAIRED,
            errors=errors,
        )

    @staticmethod
    def sort_changes(analysis: Analysis) -> Analysis:
        ordered = sorted(analysis.code_changes, key=lambda c: change_priority(c.type))
        return analysis.model_copy(update={"code_changes": ordered})

    def repair(self, data: dict) -> dict:
        defaults = default_analysis().to_json_dict()

        changes = _first(data, "codeChanges", "code_changes")
        if isinstance(changes, list) and changes:
            repaired_changes = [
                self._repair_change(change) for change in changes if isinstance(change, dict)
            ]
        else:
            repaired_changes = []
        if not repaired_changes and changes != []:
            repaired_changes = defaults["codeChanges"]

        diagram = _first(data, "architectureDiagram", "architecture_diagram")
        concept = _first(data, "conceptTakeaway", "concept_takeaway")

        return {
            "codeChanges": repaired_changes,
            "architectureDiagram": self._repair_diagram(
                diagram if isinstance(diagram, dict) else {},
                defaults["architectureDiagram"],
            ),
            "conceptTakeaway": self._repair_concept(
                concept if isinstance(concept, dict) else {},
                defaults["conceptTakeaway"],
            ),
        }

    def _repair_change(self, change: dict) -> dict:
        change_type = normalize_change_type(change.get("type"))
        repaired = {
            "type": change_type.value,
            "file": _non_empty_str(change.get("file")) or PLACEHOLDER_FILE,
            "lines": _non_empty_str(change.get("lines")) or PLACEHOLDER_LINES,
            "summary": _non_empty_str(change.get("summary")) or PLACEHOLDER_SUMMARY,
            "explanation": _non_empty_str(change.get("explanation"))
            or PLACEHOLDER_EXPLANATION,
        }

        snippet = _first(change, "codeSnippet", "code_snippet")
        # Snippets are dropped for maintenance changes
        if change_type in SIGNIFICANT_TYPES and isinstance(snippet, list) and snippet:
            repaired["codeSnippet"], repaired["lines"] = renumber_snippet(
                snippet, repaired["lines"]
            )
        return repaired

    @staticmethod
    def _repair_diagram(diagram: dict, default: dict) -> dict:
        text = diagram.get("diagram")
        if isinstance(text, str) and text.strip().startswith(DIAGRAM_MARKER):
            text = text.strip()
        else:
            text = default["diagram"]
        return {
            "diagram": text,
            "explanation": _non_empty_str(diagram.get("explanation"))
            or default["explanation"],
        }

    @staticmethod
    def _repair_concept(concept: dict, default: dict) -> dict:
        repaired = {
            "concept": _non_empty_str(concept.get("concept")) or default["concept"],
            "explanation": _non_empty_str(concept.get("explanation"))
            or default["explanation"],
        }
        file = _non_empty_str(concept.get("file"))
        if file:
            repaired["file"] = file

        lines = _non_empty_str(concept.get("lines"))
        snippet = _first(concept, "codeSnippet", "code_snippet")
        if isinstance(snippet, list) and snippet:
            entries, rewritten = renumber_snippet(snippet, lines)
            repaired["codeSnippet"] = entries
            # lines stays optional for the takeaway
            if lines is not None:
                repaired["lines"] = rewritten
        else:
            repaired["codeSnippet"] = default["codeSnippet"]
        return repaired

    @staticmethod
    def _describe(error: dict) -> str:
        location = ".".join(str(part) for part in error.get("loc", ()))
        return f"{location}: {error.get('msg')}"
