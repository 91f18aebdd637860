"""SQLite store of daily per-file hit counts.

Read-only from the service's point of view: rows are written by the
log-processing pipeline. ``record_hits`` exists for that pipeline and for
seeding test data.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

import structlog

from pkgmeta.models.package import FileHitRecord

if TYPE_CHECKING:
    import aiosqlite

log = structlog.get_logger()

_CREATE_HITS_TABLE = """
CREATE TABLE IF NOT EXISTS file_hits (
    name    TEXT NOT NULL,
    version TEXT NOT NULL,
    file    TEXT NOT NULL,
    date    TEXT NOT NULL,
    hits    INTEGER NOT NULL DEFAULT 0 CHECK (hits >= 0),
    PRIMARY KEY (name, version, file, date)
)
"""

_CREATE_HITS_INDEX = "CREATE INDEX IF NOT EXISTS idx_file_hits_name_date ON file_hits(name, date)"


class HitsStore:
    """aiosqlite implementation of HitsStoreProtocol."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        await self._db.execute(_CREATE_HITS_TABLE)
        await self._db.execute(_CREATE_HITS_INDEX)
        await self._db.commit()

    async def record_hits(
        self, name: str, version: str, file: str, day: date, hits: int
    ) -> None:
        """Add ``hits`` to the counter of one file on one day."""
        await self._db.execute(
            "INSERT INTO file_hits (name, version, file, date, hits) VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT (name, version, file, date) DO UPDATE SET hits = hits + excluded.hits",
            (name, version, file, day.isoformat(), hits),
        )
        await self._db.commit()

    async def sum_version_hits_per_file_and_date_by_name(
        self, name: str, start: date, end: date
    ) -> dict[str, dict[str, int]]:
        """Hits of every version of a package, summed over files, per day.

        Returns ``{version: {"YYYY-MM-DD": hits}}``.
        """
        cursor = await self._db.execute(
            "SELECT version, date, SUM(hits) FROM file_hits "
            "WHERE name = ? AND date BETWEEN ? AND ? "
            "GROUP BY version, date ORDER BY version, date",
            (name, start.isoformat(), end.isoformat()),
        )
        result: dict[str, dict[str, int]] = {}
        for version, day, hits in await cursor.fetchall():
            result.setdefault(version, {})[day] = int(hits)
        log.debug("hits_query_complete", query="versions", name=name, versions=len(result))
        return result

    async def find_all_file_hits_by_name_and_version(
        self, name: str, version: str, start: date, end: date
    ) -> dict[str, list[FileHitRecord]]:
        """Daily hit records of every file of one version, grouped by file."""
        cursor = await self._db.execute(
            "SELECT file, date, hits FROM file_hits "
            "WHERE name = ? AND version = ? AND date BETWEEN ? AND ? "
            "ORDER BY file, date",
            (name, version, start.isoformat(), end.isoformat()),
        )
        result: dict[str, list[FileHitRecord]] = {}
        for file, day, hits in await cursor.fetchall():
            result.setdefault(file, []).append(
                FileHitRecord(file=file, date=date.fromisoformat(day), hits=hits)
            )
        log.debug("hits_query_complete", query="files", name=name, files=len(result))
        return result
