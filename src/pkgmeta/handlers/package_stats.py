"""Handler for per-version hit statistics of a package.

Computed fresh on every call; the result is only cached downstream through
the ``max_age`` hint.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pkgmeta.models.package import DateRange
from pkgmeta.models.results import Ok
from pkgmeta.stats import sum_deep

if TYPE_CHECKING:
    from pkgmeta.models.package import PackageQuery
    from pkgmeta.models.results import Result
    from pkgmeta.state import AppState


async def handle(query: PackageQuery, state: AppState) -> Result:
    date_range = query.date_range or DateRange.for_period(state.settings.stats.default_period)
    log = structlog.get_logger().bind(
        handler="package_stats",
        name=query.name,
        start=date_range.start.isoformat(),
        end=date_range.end.isoformat(),
    )
    log.info("handler_called")

    data = await state.hits.sum_version_hits_per_file_and_date_by_name(
        query.name, date_range.start, date_range.end
    )

    body = {
        "total": sum_deep(data),
        "versions": {
            version: {"total": sum_deep(dates), "dates": dates} for version, dates in data.items()
        },
    }
    return Ok(body, max_age=state.settings.stats.max_age_seconds)
