"""Shared test fixtures for the pkgmeta test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest

from pkgmeta.cache import Cache
from pkgmeta.config import Settings
from pkgmeta.hits import HitsStore
from pkgmeta.models.package import PackageMetadata

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

NPM_REGISTRY = "https://registry.test"
GITHUB_API = "https://api.github.test"
CDN = "https://cdn.test"


@pytest.fixture()
def settings() -> Settings:
    """Settings pointing every upstream at a fake host."""
    return Settings(
        npm={"source_urls": [NPM_REGISTRY], "max_age_seconds": 300},
        gh={"source_url": GITHUB_API, "max_age_seconds": 600},
        cdn={"source_url": CDN},
        cache={"negative_ttl_seconds": 60},
    )


@pytest.fixture()
def sample_metadata() -> PackageMetadata:
    return PackageMetadata(
        tags={"latest": "2.0.0", "beta": "3.0.0-beta.1"},
        versions=["3.0.0-beta.1", "2.0.0", "1.5.0", "1.0.0-beta"],
    )


@pytest.fixture()
async def cache() -> AsyncGenerator[Cache, None]:
    async with aiosqlite.connect(":memory:") as db:
        cache = Cache(db)
        await cache.init_db()
        yield cache


@pytest.fixture()
async def hits_store() -> AsyncGenerator[HitsStore, None]:
    async with aiosqlite.connect(":memory:") as db:
        store = HitsStore(db)
        await store.init_db()
        yield store
