"""Cache-aside access to package metadata, shared by the handlers.

Successful fetches are cached for the source type's ``max_age``. An
upstream "package does not exist" is cached as a negative entry for
``cache.negative_ttl_seconds``; rate limits, outages and malformed
responses are never cached.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from pkgmeta.errors import ErrorCode, PkgMetaError
from pkgmeta.models.cache import NegativeCacheEntry
from pkgmeta.models.package import PackageMetadata
from pkgmeta.models.results import NotFound

if TYPE_CHECKING:
    from pkgmeta.models.package import PackageQuery
    from pkgmeta.state import AppState

# Everything a metadata lookup can fail with short of a broken cache store.
METADATA_ERRORS = (PkgMetaError, ExceptionGroup, ValidationError)


def serialise_metadata(metadata: PackageMetadata) -> str:
    return json.dumps(metadata.model_dump(), indent="\t")


def parse_negative_entry(raw: str) -> NegativeCacheEntry | None:
    """Return the cached failure if ``raw`` holds one, else ``None``."""
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if isinstance(data, dict) and "status" in data and "message" in data:
        return NegativeCacheEntry.model_validate(data)
    return None


def is_missing_package(exc: BaseException) -> bool:
    """True when every underlying failure is an upstream 404."""
    if isinstance(exc, BaseExceptionGroup):
        return all(is_missing_package(inner) for inner in exc.exceptions)
    return isinstance(exc, PkgMetaError) and exc.code == ErrorCode.PACKAGE_NOT_FOUND


def error_fields(exc: BaseException) -> dict[str, Any]:
    """Structured log fields describing a metadata failure."""
    if isinstance(exc, BaseExceptionGroup):
        return {"error": str(exc), "errors": [str(inner) for inner in exc.exceptions]}
    if isinstance(exc, PkgMetaError):
        return {"code": exc.code, "error": exc.message, "upstream_status": exc.status}
    return {"error": str(exc)}


def not_found(query: PackageQuery) -> NotFound:
    return NotFound(message=f"Couldn't find {query.name}@{query.version}.")


async def get_metadata_json(query: PackageQuery, state: AppState) -> str:
    """Return serialised metadata from the cache, fetching it on a miss.

    Raises one of ``METADATA_ERRORS`` when the metadata cannot be obtained.
    """
    log = structlog.get_logger().bind(type=query.type, name=query.name)
    key = query.metadata_key

    cached = await state.cache.get(key)
    if cached is not None:
        negative = parse_negative_entry(cached)
        if negative is not None:
            log.info("cache_hit", key=key, negative=True)
            raise PkgMetaError(
                code=ErrorCode.PACKAGE_NOT_FOUND,
                message=negative.message,
                status=negative.status,
            )
        log.info("cache_hit", key=key, negative=False)
        return cached

    log.info("cache_miss_fetching", key=key)
    try:
        metadata = await state.fetcher.fetch_metadata(query)
    except METADATA_ERRORS as exc:
        if is_missing_package(exc):
            entry = NegativeCacheEntry(status=404, message=f"Package {query.name} not found.")
            await state.cache.set(
                key,
                entry.model_dump_json(),
                ttl_seconds=state.settings.cache.negative_ttl_seconds,
            )
            log.info("negative_cache_stored", key=key)
        raise

    serialised = serialise_metadata(metadata)
    await state.cache.set(
        key,
        serialised,
        ttl_seconds=state.settings.metadata_max_age(query.type),
    )
    return serialised


async def get_metadata(query: PackageQuery, state: AppState) -> PackageMetadata:
    return PackageMetadata.model_validate_json(await get_metadata_json(query, state))
