"""
Diff filtering and size reduction ahead of prompt construction.

Diffs are treated as opaque text and scanned by line prefix only. Both entry
points are pure and never raise; the worst case is an empty string.
"""

import math
import re
from typing import List, Optional

from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)

FILE_HEADER_PREFIX = "diff --git"
FILE_DELIMITER = "diff --git "
HUNK_HEADER_PREFIX = "@@"

LOCKFILE_NAMES = (
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "Pipfile.lock",
    "Cargo.lock",
    "composer.lock",
    "Gemfile.lock",
    "go.sum",
)

BUILD_PATH_PATTERN = re.compile(r"(^|/)(dist|build)/")
TEST_PATH_PATTERN = re.compile(
    r"(\.test\.|\.spec\.|__tests__/|(^|/)test_[^/]*\.py$|_test\.py$)"
)

# "#include" and "*ptr = x" are code, so "#" and "*" need a following space
COMMENT_PREFIXES = ("//", "/*", "*/", "# ", "* ")
COMMENT_MARKERS = ("#", "*")

PRIMARY_SOURCE_DIRS = ("src/", "app/", "lib/", "pages/", "components/")
SOURCE_EXTENSIONS = (
    ".py",
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".go",
    ".rs",
    ".java",
    ".kt",
    ".rb",
    ".php",
    ".c",
    ".cc",
    ".cpp",
    ".h",
    ".cs",
    ".swift",
)
MAX_REDUCED_SEGMENTS = 3


def estimate_token_count(text: str) -> int:
    return math.ceil(len(text) / 4)


def header_path(line: str) -> Optional[str]:
    """Path on the ``b/`` side of a ``diff --git a/x b/y`` header."""
    if not line.startswith(FILE_HEADER_PREFIX):
        return None
    parts = line.split(" b/", 1)
    if len(parts) < 2:
        return None
    return parts[1].strip()


def is_ignored_path(path: str) -> bool:
    name = path.rsplit("/", 1)[-1]
    if name in LOCKFILE_NAMES:
        return True
    if BUILD_PATH_PATTERN.search(path):
        return True
    return bool(TEST_PATH_PATTERN.search(path))


def references_ignored_path(line: str) -> bool:
    if any(lockfile in line for lockfile in LOCKFILE_NAMES):
        return True
    if "/dist/" in line or "/build/" in line:
        return True
    return ".test." in line or ".spec." in line or "__tests__/" in line


def is_changed_line(line: str) -> bool:
    return (line.startswith("+") or line.startswith("-")) and not (
        line.startswith("+++") or line.startswith("---")
    )


def is_noise_change(line: str) -> bool:
    """Whitespace-only or comment-only added/removed line."""
    body = line[1:].strip()
    if not body:
        return True
    return body in COMMENT_MARKERS or body.startswith(COMMENT_PREFIXES)


class DiffPreprocessor:
    def __init__(self, token_budget: int = 2000):
        self.token_budget = token_budget

    def filter(self, diff: Optional[str]) -> str:
        """
        Drop ignored file sections and noise lines from a raw diff.

        Returns "" when no added or removed line survives.
        """
        if not diff or not isinstance(diff, str):
            return ""

        kept: List[str] = []
        skipping_section = False
        has_changes = False

        for line in diff.split("\n"):
            if line.startswith(FILE_HEADER_PREFIX):
                path = header_path(line)
                skipping_section = bool(path) and is_ignored_path(path)
                if skipping_section:
                    logger.debug(f"Skipping ignored file section {path}")
                    continue
                kept.append(line)
                continue

            if skipping_section:
                continue
            if references_ignored_path(line):
                continue
            if is_changed_line(line):
                if is_noise_change(line):
                    continue
                has_changes = True
            kept.append(line)

        if not has_changes:
            return ""
        return "\n".join(kept).strip("\n")

    def reduce(self, diff: str, token_budget: Optional[int] = None) -> str:
        """
        Shrink a filtered diff to the token budget.

        Keeps headers and changed lines. If that is still over budget, keeps
        the first few file segments, with primary source files first.
        """
        if not diff:
            return ""
        budget = self.token_budget if token_budget is None else token_budget

        essential = "\n".join(
            line
            for line in diff.split("\n")
            if line.startswith(FILE_HEADER_PREFIX)
            or line.startswith(HUNK_HEADER_PREFIX)
            or line.startswith("+")
            or line.startswith("-")
        )

        if estimate_token_count(essential) <= budget:
            return essential

        segments = [s for s in essential.split(FILE_DELIMITER) if s.strip()]
        # sorted() is stable, so equal priorities keep diff order
        prioritized = sorted(segments, key=self._segment_priority)
        kept = prioritized[:MAX_REDUCED_SEGMENTS]
        logger.info(
            f"Diff over token budget ({estimate_token_count(essential)} > {budget}), "
            f"keeping {len(kept)} of {len(segments)} file segments"
        )
        return FILE_DELIMITER + FILE_DELIMITER.join(kept)

    @staticmethod
    def _segment_priority(segment: str) -> int:
        first_line = segment.split("\n", 1)[0]
        path = first_line.split(" b/", 1)[-1].strip()
        score = 0
        if any(path.startswith(d) or f"/{d}" in path for d in PRIMARY_SOURCE_DIRS):
            score += 1
        if path.endswith(SOURCE_EXTENSIONS):
            score += 1
        return -score
