import hashlib
import re
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Sequence

from codelens.core.config_provider import config_provider

CHANGE_TYPE_KEYWORDS = ("import", "function", "class", "interface", "const")
MAIN_CHANGE_PATTERN = re.compile(r"^[+-].*?(function|class|interface|type|enum)\s+\w+")


def generate_diff_hash(diff: str) -> str:
    """Content hash of a filtered diff, used as the exact cache key."""
    return hashlib.md5(diff.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class DiffSignature:
    files: FrozenSet[str] = field(default_factory=frozenset)
    change_types: FrozenSet[str] = field(default_factory=frozenset)
    change_count: int = 0
    main_changes: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class SimilarityWeights:
    files: float = 0.3
    change_types: float = 0.2
    change_count: float = 0.2
    main_changes: float = 0.3

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "SimilarityWeights":
        files, change_types, change_count, main_changes = values
        return cls(files, change_types, change_count, main_changes)

    @classmethod
    def from_config(cls) -> "SimilarityWeights":
        return cls.from_sequence(config_provider.similarity_weights)


class DiffSignatureIndexer:
    """Builds the structural fingerprint used for fuzzy cache matching."""

    def signature(self, diff: Optional[str]) -> DiffSignature:
        files = set()
        change_types = set()
        main_changes = set()
        change_count = 0

        for line in (diff or "").split("\n"):
            if line.startswith("diff --git"):
                parts = line.split(" b/", 1)
                if len(parts) == 2:
                    files.add(parts[1])
            elif line.startswith("+") or line.startswith("-"):
                change_count += 1
                for keyword in CHANGE_TYPE_KEYWORDS:
                    if f"{keyword} " in line:
                        change_types.add(keyword)
                if MAIN_CHANGE_PATTERN.match(line):
                    main_changes.add(line[1:].strip())

        return DiffSignature(
            files=frozenset(files),
            change_types=frozenset(change_types),
            change_count=change_count,
            main_changes=frozenset(main_changes),
        )


def _overlap(a: FrozenSet[str], b: FrozenSet[str]) -> float:
    denominator = max(len(a), len(b))
    if denominator == 0:
        return 0.0
    return len(a & b) / denominator


def _count_similarity(a: int, b: int) -> float:
    denominator = max(a, b)
    if denominator == 0:
        return 0.0
    return 1 - abs(a - b) / denominator


def calculate_similarity(
    a: DiffSignature,
    b: DiffSignature,
    weights: Optional[SimilarityWeights] = None,
) -> float:
    """
    Weighted bag-of-features similarity between two signatures.

    Each term whose denominator is zero contributes 0. The result is
    symmetric in its arguments. It is a recall aid for the cache and makes
    no claim about semantic equivalence.
    """
    weights = weights or SimilarityWeights()
    return (
        weights.files * _overlap(a.files, b.files)
        + weights.change_types * _overlap(a.change_types, b.change_types)
        + weights.change_count * _count_similarity(a.change_count, b.change_count)
        + weights.main_changes * _overlap(a.main_changes, b.main_changes)
    )
