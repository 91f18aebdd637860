"""Integration tests for the request handlers.

Tests the full path through each handler: cache lookup → upstream fetch
→ resolution or aggregation → result value. Uses a real AppState with
in-memory SQLite and respx-mocked upstreams.
"""

from __future__ import annotations

import json
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

import httpx
import respx

from pkgmeta.handlers import (
    list_versions,
    package_stats,
    resolve_version,
    version_files,
    version_stats,
)
from pkgmeta.models.package import DateRange, PackageQuery
from pkgmeta.models.results import NotFound, Ok, UpstreamError

if TYPE_CHECKING:
    from pkgmeta.hits import HitsStore
    from pkgmeta.state import AppState

NPM_REGISTRY = "https://registry.test"
GITHUB_API = "https://api.github.test"
CDN = "https://cdn.test"

LEFT_PAD = {
    "name": "left-pad",
    "dist-tags": {"latest": "1.1.1"},
    "versions": {"1.0.0": {}, "1.1.1": {}, "2.0.0": {}},
}


def _npm(name: str, version: str = "") -> PackageQuery:
    return PackageQuery(type="npm", name=name, version=version)


def _mock_left_pad() -> respx.Route:
    return respx.get(f"{NPM_REGISTRY}/left-pad").mock(
        return_value=httpx.Response(200, json=LEFT_PAD)
    )


async def _expires_at(state: AppState, key: str) -> datetime | None:
    cursor = await state.cache._db.execute(  # type: ignore[attr-defined]
        "SELECT expires_at FROM kv_cache WHERE key = ?", (key,)
    )
    row = await cursor.fetchone()
    return datetime.fromisoformat(row[0]) if row and row[0] else None


class TestResolveVersionHandler:
    @respx.mock
    async def test_range_resolves_to_highest_match(self, app_state: AppState) -> None:
        _mock_left_pad()
        result = await resolve_version.handle(_npm("left-pad", "1.x"), app_state)
        assert result == Ok({"version": "1.1.1"})

    @respx.mock
    async def test_unsatisfiable_range_returns_404_payload(self, app_state: AppState) -> None:
        _mock_left_pad()
        result = await resolve_version.handle(_npm("left-pad", "9.x"), app_state)
        assert isinstance(result, NotFound)
        assert result.to_payload() == {"status": 404, "message": "Couldn't find left-pad@9.x."}

    @respx.mock
    async def test_tag_resolves(self, app_state: AppState) -> None:
        _mock_left_pad()
        result = await resolve_version.handle(_npm("left-pad", "latest"), app_state)
        assert result == Ok({"version": "1.1.1"})

    @respx.mock
    async def test_empty_specifier_uses_highest_release(self, app_state: AppState) -> None:
        respx.get(f"{NPM_REGISTRY}/untagged").mock(
            return_value=httpx.Response(200, json={"versions": {"1.0.0": {}, "2.0.0": {}}})
        )
        result = await resolve_version.handle(_npm("untagged"), app_state)
        assert result == Ok({"version": "2.0.0"})

    @respx.mock
    async def test_metadata_is_cached_with_source_ttl(self, app_state: AppState) -> None:
        route = _mock_left_pad()
        await resolve_version.handle(_npm("left-pad", "1.x"), app_state)
        await resolve_version.handle(_npm("left-pad", "2.0.0"), app_state)

        assert route.call_count == 1
        expires_at = await _expires_at(app_state, "package/npm/left-pad/metadata")
        assert expires_at is not None
        remaining = (expires_at - datetime.now(UTC)).total_seconds()
        assert 250 < remaining <= 300

    @respx.mock
    async def test_missing_package_is_negatively_cached(self, app_state: AppState) -> None:
        route = respx.get(f"{NPM_REGISTRY}/nope").mock(return_value=httpx.Response(404))

        first = await resolve_version.handle(_npm("nope", "1.0.0"), app_state)
        second = await resolve_version.handle(_npm("nope", "1.0.0"), app_state)

        assert first == second == NotFound("Couldn't find nope@1.0.0.")
        assert route.call_count == 1
        expires_at = await _expires_at(app_state, "package/npm/nope/metadata")
        assert expires_at is not None
        assert (expires_at - datetime.now(UTC)).total_seconds() <= 60

    @respx.mock
    async def test_outage_is_not_cached(self, app_state: AppState) -> None:
        route = respx.get(f"{NPM_REGISTRY}/left-pad").mock(
            side_effect=[httpx.Response(503), httpx.Response(200, json=LEFT_PAD)]
        )

        first = await resolve_version.handle(_npm("left-pad", "1.x"), app_state)
        second = await resolve_version.handle(_npm("left-pad", "1.x"), app_state)

        assert isinstance(first, NotFound)
        assert second == Ok({"version": "1.1.1"})
        assert route.call_count == 2

    @respx.mock
    async def test_malformed_response_is_not_cached(self, app_state: AppState) -> None:
        respx.get(f"{NPM_REGISTRY}/odd").mock(return_value=httpx.Response(200, json={}))
        result = await resolve_version.handle(_npm("odd", "1.0.0"), app_state)

        assert isinstance(result, NotFound)
        assert await app_state.cache.get("package/npm/odd/metadata") is None

    @respx.mock
    async def test_github_rate_limit_returns_404_and_is_not_cached(
        self, app_state: AppState
    ) -> None:
        route = respx.get(f"{GITHUB_API}/repos/jquery/jquery/tags").mock(
            return_value=httpx.Response(403, json={"message": "API rate limit exceeded"})
        )
        query = PackageQuery(type="gh", name="jquery/jquery", version="latest")

        result = await resolve_version.handle(query, app_state)
        await resolve_version.handle(query, app_state)

        assert result == NotFound("Couldn't find jquery/jquery@latest.")
        assert route.call_count == 2

    @respx.mock
    async def test_github_latest_and_range(self, app_state: AppState) -> None:
        respx.get(f"{GITHUB_API}/repos/jquery/jquery/tags").mock(
            return_value=httpx.Response(
                200,
                json=[{"name": "3.2.0"}, {"name": "3.3.1"}, {"name": "4.0.0-beta"}],
            )
        )
        latest = PackageQuery(type="gh", name="jquery/jquery", version="latest")
        ranged = PackageQuery(type="gh", name="jquery/jquery", version="~3.2.0")

        assert await resolve_version.handle(latest, app_state) == Ok({"version": "3.3.1"})
        assert await resolve_version.handle(ranged, app_state) == Ok({"version": "3.2.0"})

    @respx.mock
    async def test_multi_registry_race(self, app_state: AppState) -> None:
        mirrors = ["https://a.test", "https://b.test"]
        app_state.fetcher._npm_source_urls = mirrors  # type: ignore[attr-defined]
        respx.get("https://a.test/left-pad").mock(side_effect=httpx.ConnectError("refused"))
        respx.get("https://b.test/left-pad").mock(return_value=httpx.Response(200, json=LEFT_PAD))

        result = await resolve_version.handle(_npm("left-pad", "^1.0.0"), app_state)
        assert result == Ok({"version": "1.1.1"})


class TestListVersionsHandler:
    @respx.mock
    async def test_returns_serialised_metadata(self, app_state: AppState) -> None:
        _mock_left_pad()
        result = await list_versions.handle(_npm("left-pad"), app_state)

        assert isinstance(result, Ok)
        assert isinstance(result.value, str)
        assert json.loads(result.value) == {
            "tags": {"latest": "1.1.1"},
            "versions": ["2.0.0", "1.1.1", "1.0.0"],
        }

    @respx.mock
    async def test_second_call_is_byte_identical(self, app_state: AppState) -> None:
        _mock_left_pad()
        first = await list_versions.handle(_npm("left-pad"), app_state)
        second = await list_versions.handle(_npm("left-pad"), app_state)
        assert first == second

    @respx.mock
    async def test_unknown_package(self, app_state: AppState) -> None:
        respx.get(f"{NPM_REGISTRY}/nope").mock(return_value=httpx.Response(404))
        result = await list_versions.handle(_npm("nope"), app_state)
        assert result.to_payload() == {"status": 404, "message": "Couldn't find nope@."}


class TestVersionFilesHandler:
    FILES_URL = f"{CDN}/npm/left-pad@1.1.1/+json"
    LISTING = {"default": "/index.min.js", "files": [{"name": "index.js", "type": "file"}]}

    @respx.mock
    async def test_listing_is_returned_and_cached(self, app_state: AppState) -> None:
        _mock_left_pad()
        route = respx.get(self.FILES_URL).mock(
            return_value=httpx.Response(200, json={**self.LISTING, "name": "left-pad"})
        )

        first = await version_files.handle(_npm("left-pad", "1.1.1"), app_state)
        second = await version_files.handle(_npm("left-pad", "1.1.1"), app_state)

        max_age = app_state.settings.http.max_age_static_seconds
        assert first == second == Ok(self.LISTING, max_age=max_age)
        assert route.call_count == 1
        assert await app_state.cache.get("package/npm/left-pad@1.1.1/files") is not None
        assert await _expires_at(app_state, "package/npm/left-pad@1.1.1/files") is None

    @respx.mock
    async def test_range_is_rejected_with_explicit_message(self, app_state: AppState) -> None:
        _mock_left_pad()
        result = await version_files.handle(_npm("left-pad", "1.x"), app_state)
        assert result == NotFound(
            "Couldn't find version 1.x for left-pad. Make sure you use a specific version "
            "number, and not a version range or a tag."
        )

    @respx.mock
    async def test_tag_is_rejected(self, app_state: AppState) -> None:
        _mock_left_pad()
        result = await version_files.handle(_npm("left-pad", "latest"), app_state)
        assert isinstance(result, NotFound)
        assert "not a version range or a tag" in result.message

    @respx.mock
    async def test_unknown_package_is_generic_404(self, app_state: AppState) -> None:
        respx.get(f"{NPM_REGISTRY}/nope").mock(return_value=httpx.Response(404))
        result = await version_files.handle(_npm("nope", "1.0.0"), app_state)
        assert result == NotFound("Couldn't find nope@1.0.0.")

    @respx.mock
    async def test_forbidden_is_passed_through_and_cached(self, app_state: AppState) -> None:
        _mock_left_pad()
        route = respx.get(self.FILES_URL).mock(
            return_value=httpx.Response(403, text="Package size exceeded the configured limit.")
        )

        first = await version_files.handle(_npm("left-pad", "1.1.1"), app_state)
        second = await version_files.handle(_npm("left-pad", "1.1.1"), app_state)

        expected = UpstreamError(403, "Package size exceeded the configured limit.")
        assert first == second == expected
        assert route.call_count == 1

    @respx.mock
    async def test_other_upstream_status_is_kept(self, app_state: AppState) -> None:
        _mock_left_pad()
        route = respx.get(self.FILES_URL).mock(
            return_value=httpx.Response(500, text="Internal error")
        )

        result = await version_files.handle(_npm("left-pad", "1.1.1"), app_state)
        await version_files.handle(_npm("left-pad", "1.1.1"), app_state)

        assert result == UpstreamError(500, "Internal error")
        assert route.call_count == 2

    @respx.mock
    async def test_parse_failure_maps_to_502(self, app_state: AppState) -> None:
        _mock_left_pad()
        respx.get(self.FILES_URL).mock(return_value=httpx.Response(200, text="<html>"))

        result = await version_files.handle(_npm("left-pad", "1.1.1"), app_state)

        assert isinstance(result, UpstreamError)
        assert result.status == 502

    @respx.mock
    async def test_timeout_maps_to_502(self, app_state: AppState) -> None:
        _mock_left_pad()
        respx.get(self.FILES_URL).mock(side_effect=httpx.ConnectTimeout("timed out"))

        result = await version_files.handle(_npm("left-pad", "1.1.1"), app_state)

        assert isinstance(result, UpstreamError)
        assert result.status == 502


JANUARY = DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31))

SEED_HITS = [
    ("3.2.1", "/dist/jquery.js", date(2024, 1, 1), 10),
    ("3.2.1", "/dist/jquery.min.js", date(2024, 1, 1), 5),
    ("3.2.1", "/dist/jquery.js", date(2024, 1, 2), 7),
    ("3.1.0", "/dist/jquery.js", date(2024, 1, 2), 1),
]


async def _seed_hits(state: AppState) -> None:
    hits: HitsStore = state.hits  # type: ignore[assignment]
    for version, file, day, count in SEED_HITS:
        await hits.record_hits("jquery", version, file, day, count)


class TestPackageStatsHandler:
    async def test_totals_per_version(self, app_state: AppState) -> None:
        await _seed_hits(app_state)
        query = PackageQuery(type="npm", name="jquery", date_range=JANUARY)

        result = await package_stats.handle(query, app_state)

        assert isinstance(result, Ok)
        assert result.max_age == app_state.settings.stats.max_age_seconds
        assert result.value == {
            "total": 23,
            "versions": {
                "3.1.0": {"total": 1, "dates": {"2024-01-02": 1}},
                "3.2.1": {"total": 22, "dates": {"2024-01-01": 15, "2024-01-02": 7}},
            },
        }

    async def test_never_touches_cache(self, app_state: AppState) -> None:
        await _seed_hits(app_state)
        query = PackageQuery(type="npm", name="jquery", date_range=JANUARY)
        await package_stats.handle(query, app_state)

        db = app_state.cache._db  # type: ignore[attr-defined]
        cursor = await db.execute("SELECT COUNT(*) FROM kv_cache")
        assert (await cursor.fetchone())[0] == 0

    async def test_no_hits(self, app_state: AppState) -> None:
        query = PackageQuery(type="npm", name="unused")
        result = await package_stats.handle(query, app_state)
        assert result == Ok(
            {"total": 0, "versions": {}},
            max_age=app_state.settings.stats.max_age_seconds,
        )


class TestVersionStatsHandler:
    async def test_totals_per_file(self, app_state: AppState) -> None:
        await _seed_hits(app_state)
        query = PackageQuery(type="npm", name="jquery", version="3.2.1", date_range=JANUARY)

        result = await version_stats.handle(query, app_state)

        assert isinstance(result, Ok)
        assert result.value == {
            "total": 22,
            "files": {
                "/dist/jquery.js": {
                    "total": 17,
                    "dates": {"2024-01-01": 10, "2024-01-02": 7},
                },
                "/dist/jquery.min.js": {"total": 5, "dates": {"2024-01-01": 5}},
            },
        }
