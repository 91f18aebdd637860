"""Handler for the file listing of one concrete version.

The version must literally exist in the package metadata; ranges and tags
are rejected with a message saying so. File listings are cached without a
TTL. A 403 from the CDN is cached as a negative entry and passed through.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import structlog

from pkgmeta.errors import PkgMetaError
from pkgmeta.handlers.metadata import (
    METADATA_ERRORS,
    error_fields,
    get_metadata,
    not_found,
    parse_negative_entry,
)
from pkgmeta.models.cache import NegativeCacheEntry
from pkgmeta.models.results import NotFound, Ok, UpstreamError

if TYPE_CHECKING:
    from pkgmeta.models.package import PackageQuery
    from pkgmeta.models.results import Result
    from pkgmeta.state import AppState

DEFAULT_UPSTREAM_STATUS = 502


async def handle(query: PackageQuery, state: AppState) -> Result:
    log = structlog.get_logger().bind(
        handler="version_files", type=query.type, name=query.name, version=query.version
    )
    log.info("handler_called")

    try:
        metadata = await get_metadata(query, state)
    except METADATA_ERRORS as exc:
        log.warning("metadata_unavailable", **error_fields(exc))
        return not_found(query)

    if query.version not in metadata.versions:
        return NotFound(
            message=(
                f"Couldn't find version {query.version} for {query.name}. "
                "Make sure you use a specific version number, and not a version range or a tag."
            )
        )

    max_age = state.settings.http.max_age_static_seconds
    key = query.files_key

    cached = await state.cache.get(key)
    if cached is not None:
        negative = parse_negative_entry(cached)
        if negative is not None:
            log.info("cache_hit", key=key, negative=True)
            return UpstreamError(status=negative.status, message=negative.message)
        log.info("cache_hit", key=key, negative=False)
        return Ok(json.loads(cached), max_age=max_age)

    log.info("cache_miss_fetching", key=key)
    try:
        files = await state.fetcher.fetch_files(query)
    except PkgMetaError as exc:
        if exc.status == 403:
            entry = NegativeCacheEntry(status=403, message=exc.message)
            await state.cache.set(key, entry.model_dump_json())
            log.warning("files_forbidden", key=key)
            return UpstreamError(status=403, message=exc.message)

        log.warning("files_fetch_failed", **error_fields(exc))
        return UpstreamError(status=exc.status or DEFAULT_UPSTREAM_STATUS, message=exc.message)

    await state.cache.set(key, json.dumps(files, indent="\t"))
    return Ok(files, max_age=max_age)
