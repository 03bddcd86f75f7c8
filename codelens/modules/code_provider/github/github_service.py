from typing import Any, Dict, Optional

import httpx

from codelens.core.config_provider import config_provider
from codelens.modules.commit_analysis.analysis_exceptions import CommitSourceError
from codelens.modules.utils.logger import setup_logger

logger = setup_logger(__name__)

DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"
JSON_MEDIA_TYPE = "application/vnd.github+json"


class GithubService:
    """Async client for the few GitHub REST endpoints commit analysis needs."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token if token is not None else config_provider.get_github_token()
        self.api_base_url = api_base_url or config_provider.get_github_api_base()
        headers = {"User-Agent": "codelens"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        self.client = httpx.AsyncClient(
            base_url=self.api_base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        logger.info(
            f"Initialized GitHub client for {self.api_base_url} "
            f"({'authenticated' if self.token else 'anonymous'})"
        )

    async def close(self):
        """Close the HTTP client connection."""
        await self.client.aclose()

    async def _get(self, path: str, accept: str) -> httpx.Response:
        try:
            response = await self.client.get(path, headers={"Accept": accept})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"GitHub returned {e.response.status_code} for GET {path}")
            raise CommitSourceError(
                f"GitHub returned {e.response.status_code} for {path}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"GitHub request failed for GET {path}: {e}")
            raise CommitSourceError(f"GitHub request failed for {path}: {e}") from e
        return response

    async def get_commit_diff(self, owner: str, repo: str, sha: str) -> str:
        """
        Get the unified diff of one commit.

        API: GET /repos/{owner}/{repo}/commits/{sha} (diff media type)

        Returns:
            The raw diff text
        """
        response = await self._get(
            f"/repos/{owner}/{repo}/commits/{sha}", accept=DIFF_MEDIA_TYPE
        )
        diff = response.text
        if not diff:
            raise CommitSourceError(
                f"No diff content returned from GitHub for {owner}/{repo}/{sha}"
            )
        return diff

    async def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        """
        Get commit metadata.

        API: GET /repos/{owner}/{repo}/commits/{sha}

        Returns:
            The commit object, including ``commit.message``
        """
        response = await self._get(
            f"/repos/{owner}/{repo}/commits/{sha}", accept=JSON_MEDIA_TYPE
        )
        return response.json()


def commit_message_of(commit: Optional[Dict[str, Any]]) -> str:
    message = ((commit or {}).get("commit") or {}).get("message")
    return message or "No commit message available"
