"""Integration test fixtures.

Provides a fully wired AppState with in-memory SQLite for both the cache
and the hit store, and a real Fetcher whose HTTP traffic is mocked with
respx in each test. Settings come from tests/conftest.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import httpx
import pytest

from pkgmeta.cache import Cache
from pkgmeta.fetcher import Fetcher
from pkgmeta.github import GitHubClient
from pkgmeta.hits import HitsStore
from pkgmeta.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from pkgmeta.config import Settings


@pytest.fixture()
async def app_state(settings: Settings) -> AsyncGenerator[AppState, None]:
    async with (
        aiosqlite.connect(":memory:") as cache_db,
        aiosqlite.connect(":memory:") as stats_db,
        httpx.AsyncClient() as client,
    ):
        cache = Cache(cache_db)
        await cache.init_db()
        hits = HitsStore(stats_db)
        await hits.init_db()

        github = GitHubClient(client, settings.gh.source_url)
        yield AppState(
            settings=settings,
            cache=cache,
            fetcher=Fetcher(client, github, settings),
            hits=hits,
            http_client=client,
        )
