"""Handler for listing the versions and tags of a package."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pkgmeta.handlers.metadata import METADATA_ERRORS, error_fields, get_metadata_json, not_found
from pkgmeta.models.results import Ok

if TYPE_CHECKING:
    from pkgmeta.models.package import PackageQuery
    from pkgmeta.models.results import Result
    from pkgmeta.state import AppState


async def handle(query: PackageQuery, state: AppState) -> Result:
    """Return the cached metadata document verbatim."""
    log = structlog.get_logger().bind(handler="list_versions", type=query.type, name=query.name)
    log.info("handler_called")

    try:
        raw = await get_metadata_json(query, state)
    except METADATA_ERRORS as exc:
        log.warning("metadata_unavailable", **error_fields(exc))
        return not_found(query)

    return Ok(raw)
