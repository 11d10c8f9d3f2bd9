"""Git ref resolution against the cluster git server (Gitea)."""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote, urlparse

import httpx

from csm_connector.errors import NotFoundError, RemoteFailure


logger = logging.getLogger(__name__)


def repo_path(repo_url: str) -> str:
    """Return 'owner/repo' from a clone URL."""
    path = urlparse(repo_url).path.rstrip("/")
    if path.endswith(".git"):
        path = path[:-4]
    parts = [part for part in path.split("/") if part]
    if len(parts) < 2:
        raise NotFoundError(f"Could not get repository name from URL '{repo_url}'")
    return "/".join(parts[-2:])


class GiteaClient:
    """Client for the git server REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        verify: Any = True,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize git server client."""
        headers = {"Authorization": f"token {token}"} if token else {}
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            verify=verify,
            timeout=timeout,
            transport=transport,
        )

    async def close(self):
        """Close the underlying HTTP client."""
        await self.client.aclose()

    async def _get(self, path: str) -> Dict[str, Any]:
        try:
            response = await self.client.get(path)
            response.raise_for_status()
            return response.json()
        except httpx.RequestError as e:
            raise RemoteFailure(f"Connection error: {e}") from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise NotFoundError(f"Git ref not found: {path}") from e
            raise RemoteFailure(
                f"HTTP error {e.response.status_code}: {e.response.text}",
                status_code=e.response.status_code,
                payload=e.response.text,
            ) from e

    async def get_tag_id(self, repo_url: str, tag: str) -> str:
        """Resolve a tag to the sha of the tag object."""
        repo = repo_path(repo_url)
        logger.info(f"Resolving git tag '{tag}' in {repo}")
        details = await self._get(f"/api/v1/repos/{repo}/tags/{quote(tag, safe='')}")
        return details["id"]

    async def get_branch_commit(self, repo_url: str, branch: str) -> str:
        """Resolve a branch to the commit it points to."""
        repo = repo_path(repo_url)
        logger.info(f"Resolving git branch '{branch}' in {repo}")
        details = await self._get(f"/api/v1/repos/{repo}/branches/{quote(branch, safe='')}")
        return details["commit"]["id"]
