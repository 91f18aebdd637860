"""Upstream metadata and file-listing fetchers.

All network I/O goes through a single Fetcher instance shared across
requests. The Fetcher receives an httpx.AsyncClient and a GitHubClient via
constructor injection; the server lifespan owns their lifecycle.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import quote

import httpx
import structlog

from pkgmeta.errors import ErrorCode, PkgMetaError
from pkgmeta.models.package import PackageMetadata
from pkgmeta.resolver import sort_versions_desc

if TYPE_CHECKING:
    from collections.abc import Awaitable, Iterable

    from pkgmeta.config import Settings
    from pkgmeta.github import GitHubClient
    from pkgmeta.models.package import PackageQuery

log = structlog.get_logger()

T = TypeVar("T")

GITHUB_TAGS_PAGE_SIZE = 100
FILE_LISTING_FIELDS = ("default", "files")


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.http.timeout_seconds),
        headers={"User-Agent": "pkgmeta/1.0"},
        limits=httpx.Limits(
            max_connections=100,
            max_keepalive_connections=20,
        ),
    )


async def first_success(attempts: Iterable[Awaitable[T]]) -> T:
    """Run all attempts concurrently and return the first one to succeed.

    Remaining attempts are cancelled as soon as one succeeds. If every
    attempt fails, raises an ``ExceptionGroup`` carrying all the failures.
    """
    tasks = [asyncio.ensure_future(attempt) for attempt in attempts]
    if not tasks:
        raise ValueError("first_success() needs at least one attempt")

    errors: list[Exception] = []
    try:
        for next_done in asyncio.as_completed(tasks):
            try:
                return await next_done
            except Exception as exc:
                errors.append(exc)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    raise ExceptionGroup("All attempts failed", errors)


def encode_npm_name(name: str) -> str:
    """URL-encode a package name, keeping the leading ``@`` of a scope."""
    if name.startswith("@"):
        return "@" + quote(name[1:], safe="")
    return quote(name, safe="")


class Fetcher:
    """Fetches and normalises package metadata and file listings."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        github: GitHubClient,
        settings: Settings,
    ) -> None:
        self._client = client
        self._github = github
        self._npm_source_urls = settings.npm.source_urls
        self._cdn_url = settings.cdn.source_url.rstrip("/")

    async def fetch_metadata(self, query: PackageQuery) -> PackageMetadata:
        """Dispatch on ``query.type``.

        Queries built with ``PackageQuery.model_construct`` skip validation,
        so an unsupported type still raises ``UNKNOWN_PACKAGE_TYPE`` here.
        """
        if query.type == "npm":
            return await self.fetch_npm_metadata(query.name)
        if query.type == "gh":
            return await self.fetch_github_metadata(query.owner, query.repo)

        raise PkgMetaError(
            code=ErrorCode.UNKNOWN_PACKAGE_TYPE,
            message=f"Unknown package type {query.type}.",
        )

    # ------------------------------------------------------------------
    # npm registry
    # ------------------------------------------------------------------

    async def fetch_npm_metadata(self, name: str) -> PackageMetadata:
        """Fetch a packument and normalise it.

        With several configured registries the requests race and the first
        success wins; if all fail the ``ExceptionGroup`` propagates.
        """
        encoded = encode_npm_name(name)
        urls = [f"{source_url}/{encoded}" for source_url in self._npm_source_urls]

        if len(urls) == 1:
            body = await self._get_json(urls[0])
        else:
            body = await first_success(self._get_json(url) for url in urls)

        if not isinstance(body, dict) or not isinstance(body.get("versions"), dict):
            raise PkgMetaError(
                code=ErrorCode.MALFORMED_UPSTREAM_RESPONSE,
                message=f"Unable to retrieve versions for package {encoded}.",
            )

        dist_tags = body.get("dist-tags")
        if not isinstance(dist_tags, dict):
            dist_tags = {}

        return PackageMetadata(
            tags={tag: v for tag, v in dist_tags.items() if isinstance(v, str)},
            versions=sort_versions_desc(body["versions"].keys()),
        )

    async def _get_json(self, url: str) -> Any:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise PkgMetaError(
                code=ErrorCode.UPSTREAM_UNAVAILABLE,
                message=f"Network error fetching {url}: {exc}",
            ) from exc

        if not response.is_success:
            code = (
                ErrorCode.PACKAGE_NOT_FOUND
                if response.status_code == 404
                else ErrorCode.UPSTREAM_UNAVAILABLE
            )
            raise PkgMetaError(
                code=code,
                message=f"HTTP {response.status_code} fetching {url}",
                status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise PkgMetaError(
                code=ErrorCode.MALFORMED_UPSTREAM_RESPONSE,
                message=f"Invalid JSON from {url}",
            ) from exc

        log.info("fetch_complete", url=url, status_code=response.status_code)
        return body

    # ------------------------------------------------------------------
    # GitHub tags
    # ------------------------------------------------------------------

    async def fetch_github_metadata(self, owner: str, repo: str) -> PackageMetadata:
        """Collect tag names across all pages of the tag listing.

        Tags become ``versions`` in API order; ``tags`` stays empty.
        """
        versions: list[str] = []
        try:
            response = await self._github.list_tags(owner, repo, per_page=GITHUB_TAGS_PAGE_SIZE)
            while True:
                versions.extend(_tag_names(response, owner, repo))
                if not self._github.has_next_page(response):
                    break
                response = await self._github.get_next_page(response)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 403:
                log.error("github_rate_limited", owner=owner, repo=repo, exc_info=True)
                raise PkgMetaError(
                    code=ErrorCode.RATE_LIMITED,
                    message="GitHub API rate limit exceeded.",
                    status=status,
                ) from exc
            raise PkgMetaError(
                code=(
                    ErrorCode.PACKAGE_NOT_FOUND if status == 404 else ErrorCode.UPSTREAM_UNAVAILABLE
                ),
                message=f"HTTP {status} listing tags of {owner}/{repo}",
                status=status,
            ) from exc
        except httpx.HTTPError as exc:
            raise PkgMetaError(
                code=ErrorCode.UPSTREAM_UNAVAILABLE,
                message=f"Network error listing tags of {owner}/{repo}: {exc}",
            ) from exc

        log.info("fetch_complete", owner=owner, repo=repo, tag_count=len(versions))
        return PackageMetadata(tags={}, versions=versions)

    # ------------------------------------------------------------------
    # CDN file listing
    # ------------------------------------------------------------------

    async def fetch_files(self, query: PackageQuery) -> dict[str, Any]:
        """Fetch the file listing of one version, keeping only the listing fields.

        Raises PkgMetaError with ``status`` set to the CDN's status code for
        non-2xx responses, and with no status for transport or parse failures.
        """
        url = f"{self._cdn_url}/{query.type}/{query.name}@{query.version}/+json"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise PkgMetaError(
                code=ErrorCode.UPSTREAM_UNAVAILABLE,
                message=f"Network error fetching {url}: {exc}",
            ) from exc

        if not response.is_success:
            raise PkgMetaError(
                code=(
                    ErrorCode.PACKAGE_NOT_FOUND
                    if response.status_code == 404
                    else ErrorCode.UPSTREAM_UNAVAILABLE
                ),
                message=response.text,
                status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise PkgMetaError(
                code=ErrorCode.MALFORMED_UPSTREAM_RESPONSE,
                message=f"Invalid JSON from {url}",
            ) from exc
        if not isinstance(body, dict):
            raise PkgMetaError(
                code=ErrorCode.MALFORMED_UPSTREAM_RESPONSE,
                message=f"Unexpected file listing shape from {url}",
            )

        log.info("fetch_complete", url=url, status_code=response.status_code)
        return {field: body[field] for field in FILE_LISTING_FIELDS if field in body}


def _tag_names(response: httpx.Response, owner: str, repo: str) -> list[str]:
    try:
        page = response.json()
    except ValueError as exc:
        raise PkgMetaError(
            code=ErrorCode.MALFORMED_UPSTREAM_RESPONSE,
            message=f"Invalid JSON listing tags of {owner}/{repo}",
        ) from exc
    if not isinstance(page, list):
        raise PkgMetaError(
            code=ErrorCode.MALFORMED_UPSTREAM_RESPONSE,
            message=f"Unexpected tag listing shape for {owner}/{repo}",
        )
    return [tag["name"] for tag in page if isinstance(tag, dict) and "name" in tag]
