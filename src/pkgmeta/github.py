"""Minimal GitHub REST client for paginated tag listings.

Pagination follows the ``Link`` response header: a response has a next
page when it carries a ``rel="next"`` link, and that link is fetched as-is.
"""

from __future__ import annotations

from typing import Any

import httpx


class GitHubClient:
    """Wraps the shared httpx client with GitHub headers and pagination."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = "https://api.github.com",
        api_token: str | None = None,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if api_token:
            self._headers["Authorization"] = f"Bearer {api_token}"

    async def list_tags(self, owner: str, repo: str, per_page: int = 100) -> httpx.Response:
        """Fetch the first page of a repository's tags.

        Raises ``httpx.HTTPStatusError`` on non-2xx responses.
        """
        return await self._get(
            f"{self._base_url}/repos/{owner}/{repo}/tags",
            params={"per_page": per_page},
        )

    def has_next_page(self, response: httpx.Response) -> bool:
        return "next" in response.links

    async def get_next_page(self, response: httpx.Response) -> httpx.Response:
        return await self._get(response.links["next"]["url"])

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        response = await self._client.get(url, params=params, headers=self._headers)
        response.raise_for_status()
        return response
