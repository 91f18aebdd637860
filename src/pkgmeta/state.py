"""Application state container.

AppState is created once at server startup (inside the Starlette lifespan)
and passed to every handler. Nothing in it is mutated after startup; the
cache store is the only shared mutable resource and it lives outside the
process state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from pkgmeta.config import Settings
    from pkgmeta.protocols import CacheProtocol, FetcherProtocol, HitsStoreProtocol


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every handler."""

    settings: Settings
    cache: CacheProtocol
    fetcher: FetcherProtocol
    hits: HitsStoreProtocol
    http_client: httpx.AsyncClient | None = None
