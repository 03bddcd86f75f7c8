"""
Shared fixtures and in-memory fakes for unit tests.

Unit tests run without PostgreSQL, GitHub or a model provider: stores,
the GitHub client and the model gateway are replaced by the fakes below.
"""

import copy
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add project root to path for imports (idempotent)
project_root = Path(__file__).parent.parent.parent.resolve()
project_root_str = str(project_root)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

from codelens.core.base_store import StoreError  # noqa: E402
from codelens.modules.commit_analysis.analysis_schema import (  # noqa: E402
    SCHEMA_VERSION,
)
from codelens.modules.commit_analysis.commit_analysis_model import (  # noqa: E402
    CommitAnalysis,
)
from codelens.modules.intelligence.provider.provider_schema import (  # noqa: E402
    ModelCompletion,
)

SOURCE_DIFF = """diff --git a/src/greeter.py b/src/greeter.py
index 1111111..2222222 100644
--- a/src/greeter.py
+++ b/src/greeter.py
@@ -8,3 +8,6 @@
 import os
+def greet(name):
+    return f"hi {name}"
+
-# old comment
"""

LOCKFILE_DIFF = """diff --git a/package-lock.json b/package-lock.json
index 1111111..2222222 100644
--- a/package-lock.json
+++ b/package-lock.json
@@ -1,3 +1,3 @@
-    "version": "1.0.0",
+    "version": "1.0.1",
"""

VALID_ANALYSIS = {
    "codeChanges": [
        {
            "type": "Chore",
            "file": "README.md",
            "lines": "1-2",
            "summary": "Documented the greeter",
            "explanation": "The readme now mentions the greeter.",
        },
        {
            "type": "Feature",
            "file": "src/greeter.py",
            "lines": "9-10",
            "summary": "Added a greet function for friendly messages",
            "codeSnippet": [
                "9: def greet(name):",
                '10:     return f"hi {name}"',
            ],
            "explanation": "There is now a function that says hi to someone.",
        },
    ],
    "architectureDiagram": {
        "diagram": "graph TD\n  App --> greet",
        "explanation": "The app calls greet.",
    },
    "conceptTakeaway": {
        "concept": "Functions",
        "file": "src/greeter.py",
        "lines": "9-10",
        "codeSnippet": [
            "9: def greet(name):",
            '10:     return f"hi {name}"',
        ],
        "explanation": "A function gives a name to a piece of logic.",
    },
}


def valid_analysis_dict() -> dict:
    return copy.deepcopy(VALID_ANALYSIS)


def fenced(payload: dict) -> str:
    return "Here is the analysis:\n```json\n" + json.dumps(payload) + "\n```\nDone."


class FakeCacheStore:
    """Append-only in-memory stand-in for AnalysisCacheStore."""

    def __init__(self):
        self.rows = {}
        self.put_calls = 0
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

    async def get(self, diff_hash):
        return self.rows.get(diff_hash)

    async def put(self, diff_hash, diff, analysis, created_at=None):
        self.put_calls += 1
        if diff_hash in self.rows:
            return False
        self._clock += timedelta(seconds=1)
        self.rows[diff_hash] = SimpleNamespace(
            diff_hash=diff_hash,
            diff=diff,
            analysis=analysis,
            created_at=created_at or self._clock,
        )
        return True

    async def list_recent(self, limit=100):
        rows = sorted(self.rows.values(), key=lambda r: r.created_at, reverse=True)
        return rows[:limit]


class FailingCacheStore:
    async def get(self, diff_hash):
        raise StoreError("cache unavailable")

    async def put(self, diff_hash, diff, analysis, created_at=None):
        raise StoreError("cache unavailable")

    async def list_recent(self, limit=100):
        raise StoreError("cache unavailable")


class FakeCommitAnalysisStore:
    """In-memory stand-in for CommitAnalysisStore keyed by (owner, repo, sha)."""

    def __init__(self):
        self.records = {}
        self.upsert_calls = 0

    async def find_by_repo_and_commit(self, owner, repo, commit_sha):
        return self.records.get((owner, repo, commit_sha))

    async def upsert(self, owner, repo, commit_sha, analysis, summary=None):
        self.upsert_calls += 1
        payload = analysis.to_json_dict()
        self.records[(owner, repo, commit_sha)] = CommitAnalysis(
            id=f"{owner}-{repo}-{commit_sha}",
            owner=owner,
            repo=repo,
            commit_sha=commit_sha,
            code_changes=payload["codeChanges"],
            architecture_diagram=payload["architectureDiagram"],
            concept_takeaway=payload["conceptTakeaway"],
            summary=summary,
            schema_version=SCHEMA_VERSION,
        )

    async def delete_all(self):
        count = len(self.records)
        self.records.clear()
        return count


class FakeProviderService:
    """Returns queued completions; repeats the last one once the queue is drained."""

    def __init__(self, *completions: ModelCompletion):
        self.completions = list(completions) or [ModelCompletion()]
        self.prompts = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str) -> ModelCompletion:
        self.prompts.append(prompt)
        if len(self.completions) > 1:
            return self.completions.pop(0)
        return self.completions[0]


class FakeGithubService:
    def __init__(self, diff=SOURCE_DIFF, message="Add greeter module", error=None):
        self.diff = diff
        self.message = message
        self.error = error
        self.diff_calls = 0
        self.commit_calls = 0

    async def get_commit_diff(self, owner, repo, sha):
        self.diff_calls += 1
        if self.error:
            raise self.error
        return self.diff

    async def get_commit(self, owner, repo, sha):
        self.commit_calls += 1
        if self.error:
            raise self.error
        return {"sha": sha, "commit": {"message": self.message}}


@pytest.fixture
def source_diff():
    return SOURCE_DIFF


@pytest.fixture
def lockfile_diff():
    return LOCKFILE_DIFF


@pytest.fixture
def valid_analysis():
    return valid_analysis_dict()


@pytest.fixture
def fence():
    return fenced


@pytest.fixture
def cache_store():
    return FakeCacheStore()


@pytest.fixture
def failing_cache_store():
    return FailingCacheStore()


@pytest.fixture
def analysis_store():
    return FakeCommitAnalysisStore()


@pytest.fixture
def make_provider():
    return FakeProviderService


@pytest.fixture
def make_github():
    return FakeGithubService


@pytest.fixture
def github_service():
    return FakeGithubService()
