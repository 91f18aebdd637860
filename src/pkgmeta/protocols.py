"""Protocol interfaces for swappable components.

Handlers and AppState reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory implementations
- Other backends (e.g. Redis for the cache, MySQL for hit records) to be
  swapped in without changing handler code
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from datetime import date

    from pkgmeta.models.package import FileHitRecord, PackageMetadata, PackageQuery


class CacheProtocol(Protocol):
    """Interface for the key/value cache store."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    async def cleanup_if_due(self, interval_hours: int) -> None: ...

    async def cleanup_expired(self) -> int: ...


class HitsStoreProtocol(Protocol):
    """Interface for the relational store holding per-file daily hit counts."""

    async def sum_version_hits_per_file_and_date_by_name(
        self, name: str, start: date, end: date
    ) -> dict[str, dict[str, int]]: ...

    async def find_all_file_hits_by_name_and_version(
        self, name: str, version: str, start: date, end: date
    ) -> dict[str, list[FileHitRecord]]: ...


class FetcherProtocol(Protocol):
    """Interface for the upstream metadata and file-listing fetcher."""

    async def fetch_metadata(self, query: PackageQuery) -> PackageMetadata: ...

    async def fetch_files(self, query: PackageQuery) -> dict[str, Any]: ...
