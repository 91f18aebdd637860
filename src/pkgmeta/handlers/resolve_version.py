"""Handler for resolving a version specifier to a concrete version."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pkgmeta.handlers.metadata import METADATA_ERRORS, error_fields, get_metadata, not_found
from pkgmeta.models.results import Ok
from pkgmeta.resolver import resolve_version

if TYPE_CHECKING:
    from pkgmeta.models.package import PackageQuery
    from pkgmeta.models.results import Result
    from pkgmeta.state import AppState


async def handle(query: PackageQuery, state: AppState) -> Result:
    """Resolve ``query.version`` (exact, tag, range or latest) for a package."""
    log = structlog.get_logger().bind(
        handler="resolve_version", type=query.type, name=query.name, specifier=query.version
    )
    log.info("handler_called")

    try:
        metadata = await get_metadata(query, state)
    except METADATA_ERRORS as exc:
        log.warning("metadata_unavailable", **error_fields(exc))
        return not_found(query)

    version = resolve_version(metadata, query.version)
    if version is None:
        log.info("resolve_failed")
        return not_found(query)

    log.info("resolve_complete", version=version)
    return Ok({"version": version})
