"""Handler for per-file hit statistics of one version."""

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
        handler="version_stats",
        name=query.name,
        version=query.version,
        start=date_range.start.isoformat(),
        end=date_range.end.isoformat(),
    )
    log.info("handler_called")

    records = await state.hits.find_all_file_hits_by_name_and_version(
        query.name, query.version, date_range.start, date_range.end
    )

    dates_by_file = {
        file: {record.date.isoformat(): record.hits for record in file_records}
        for file, file_records in records.items()
    }

    body = {
        "total": sum_deep(dates_by_file),
        "files": {
            file: {"total": sum_deep(dates), "dates": dates}
            for file, dates in dates_by_file.items()
        },
    }
    return Ok(body, max_age=state.settings.stats.max_age_seconds)
