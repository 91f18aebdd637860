"""SQLite key/value cache for serialised metadata and file listings.

Values are opaque JSON text. Expired rows read as a miss and are replaced
wholesale on the next write; nothing is ever patched in place.

Unlike a best-effort cache, store failures are not swallowed here:
``aiosqlite.Error`` propagates to the handler so a broken store surfaces
as a server error instead of silently hammering the upstream APIs.

There is no per-key locking. Two requests missing the same key at the
same time will both fetch upstream and both write; the last write wins.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import aiosqlite
import structlog

log = structlog.get_logger()

_CREATE_KV_TABLE = """
CREATE TABLE IF NOT EXISTS kv_cache (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    stored_at  TEXT NOT NULL,
    expires_at TEXT
)
"""

_CREATE_KV_INDEX = "CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv_cache(expires_at)"

_CREATE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS server_metadata (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class Cache:
    """SQLite-backed key/value cache implementing CacheProtocol."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_KV_TABLE)
        await self._db.execute(_CREATE_KV_INDEX)
        await self._db.execute(_CREATE_METADATA_TABLE)
        await self._db.commit()

    async def get(self, key: str) -> str | None:
        """Return the stored value, or ``None`` on a miss or an expired row."""
        cursor = await self._db.execute(
            "SELECT value, expires_at FROM kv_cache WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None

        value, expires_at = row
        if expires_at is not None and datetime.now(UTC) >= datetime.fromisoformat(expires_at):
            log.debug("cache_expired", key=key)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store ``value`` under ``key``. ``ttl_seconds=None`` never expires."""
        now = datetime.now(UTC)
        expires_at = None
        if ttl_seconds is not None:
            expires_at = (now + timedelta(seconds=ttl_seconds)).isoformat()

        await self._db.execute(
            "INSERT OR REPLACE INTO kv_cache (key, value, stored_at, expires_at) "
            "VALUES (?, ?, ?, ?)",
            (key, value, now.isoformat(), expires_at),
        )
        await self._db.commit()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup_if_due(self, interval_hours: int) -> None:
        """Run cleanup only if interval_hours have elapsed since the last run.

        Reads and writes ``last_cleanup_at`` from the ``server_metadata`` table.
        Falls through to run cleanup if the metadata row is missing.
        """
        cursor = await self._db.execute(
            "SELECT value FROM server_metadata WHERE key = 'last_cleanup_at'"
        )
        row = await cursor.fetchone()
        if row is not None:
            last_run = datetime.fromisoformat(row[0])
            if datetime.now(UTC) - last_run < timedelta(hours=interval_hours):
                log.debug("cache_cleanup_skipped", reason="not_due")
                return

        await self.cleanup_expired()

        await self._db.execute(
            "INSERT OR REPLACE INTO server_metadata (key, value) VALUES ('last_cleanup_at', ?)",
            (datetime.now(UTC).isoformat(),),
        )
        await self._db.commit()

    async def cleanup_expired(self) -> int:
        """Delete expired rows. Returns the number of rows removed."""
        cursor = await self._db.execute(
            "DELETE FROM kv_cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (datetime.now(UTC).isoformat(),),
        )
        deleted = cursor.rowcount
        await self._db.commit()
        log.info("cache_cleanup_complete", deleted=deleted)
        return deleted
