"""HTTP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState in the Starlette lifespan
- Map routes onto handlers and handler results onto responses
- Start uvicorn
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

import pkgmeta.handlers.list_versions as h_list_versions
import pkgmeta.handlers.package_stats as h_package_stats
import pkgmeta.handlers.resolve_version as h_resolve_version
import pkgmeta.handlers.version_files as h_version_files
import pkgmeta.handlers.version_stats as h_version_stats
from pkgmeta import __version__
from pkgmeta.errors import ErrorCode
from pkgmeta.cache import Cache
from pkgmeta.config import Settings
from pkgmeta.fetcher import Fetcher, build_http_client
from pkgmeta.github import GitHubClient
from pkgmeta.hits import HitsStore
from pkgmeta.models.package import DateRange, PackageQuery
from pkgmeta.models.results import Ok
from pkgmeta.schedulers import run_cache_cleanup_scheduler
from pkgmeta.state import AppState

if TYPE_CHECKING:
    from starlette.requests import Request

    from pkgmeta.models.results import Result

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


async def _connect(db_path: str) -> aiosqlite.Connection:
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return await aiosqlite.connect(str(path))


@asynccontextmanager
async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    _setup_logging(settings)

    log.info("server_starting", version=__version__)

    http_client = build_http_client(settings)
    github = GitHubClient(http_client, settings.gh.source_url, settings.gh.api_token)
    fetcher = Fetcher(http_client, github, settings)

    cache_db = await _connect(settings.cache.db_path)
    cache = Cache(cache_db)
    await cache.init_db()

    stats_db = await _connect(settings.stats.db_path)
    hits = HitsStore(stats_db)
    await hits.init_db()

    state = AppState(
        settings=settings,
        cache=cache,
        fetcher=fetcher,
        hits=hits,
        http_client=http_client,
    )

    cache_cleanup_task = asyncio.create_task(run_cache_cleanup_scheduler(state))

    log.info(
        "server_started",
        version=__version__,
        npm_sources=len(settings.npm.source_urls),
        github_authenticated=settings.gh.api_token is not None,
    )

    try:
        app.state.app_state = state
        yield
    finally:
        cache_cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cache_cleanup_task
        if state.http_client is not None:
            await state.http_client.aclose()
        await cache_db.close()
        await stats_db.close()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

Handler = Callable[[PackageQuery, AppState], Awaitable["Result"]]


def split_package_spec(spec: str) -> tuple[str, str]:
    """Split ``name@version`` into its parts. A leading ``@`` belongs to the scope."""
    at = spec.rfind("@")
    if at > 0:
        return spec[:at], spec[at + 1 :]
    return spec, ""


def is_complete_name(package_type: str, name: str) -> bool:
    """False for the first segment of a two-part name: a bare npm scope or a GitHub owner."""
    if package_type == "gh":
        return "/" in name
    return not name.startswith("@") or "/" in name


def _error_response(status: int, message: str) -> JSONResponse:
    return JSONResponse({"status": status, "message": message}, status_code=status)


def _render(result: Result) -> Response:
    payload = result.to_payload()
    headers = {}
    if isinstance(result, Ok) and result.max_age is not None:
        headers["Cache-Control"] = f"public, max-age={result.max_age}"
    if isinstance(payload, str):
        return Response(
            payload,
            status_code=result.status,
            headers=headers,
            media_type="application/json",
        )
    return JSONResponse(payload, status_code=result.status, headers=headers)


async def _dispatch(
    request: Request,
    handler: Handler,
    handler_name: str,
    spec: str,
    *,
    with_date_range: bool = False,
) -> Response:
    state: AppState = request.app.state.app_state
    name, version = split_package_spec(spec)

    try:
        date_range = None
        if with_date_range:
            period = request.query_params.get("period", state.settings.stats.default_period)
            date_range = DateRange.for_period(period)
        query = PackageQuery(
            type=request.path_params["type"],
            name=name,
            version=version,
            date_range=date_range,
        )
    except ValueError as exc:
        log.info(
            "invalid_request",
            code=ErrorCode.INVALID_INPUT,
            handler=handler_name,
            path=request.url.path,
            error=str(exc),
        )
        return _error_response(400, "Invalid package, version or period.")

    try:
        result = await handler(query, state)
    except Exception:
        log.error("handler_unexpected_error", handler=handler_name, exc_info=True)
        return _error_response(500, "Internal server error.")

    return _render(result)


async def resolve_endpoint(request: Request) -> Response:
    spec = request.path_params["spec"]
    return await _dispatch(request, h_resolve_version.handle, "resolve_version", spec)


async def _package(request: Request, spec: str) -> Response:
    _, version = split_package_spec(spec)
    if version:
        return await _dispatch(request, h_version_files.handle, "version_files", spec)
    return await _dispatch(request, h_list_versions.handle, "list_versions", spec)


async def package_endpoint(request: Request) -> Response:
    return await _package(request, request.path_params["spec"])


async def stats_endpoint(request: Request) -> Response:
    spec = request.path_params["spec"]
    name, version = split_package_spec(spec)

    # "@scope/stats" and "owner/stats" are package names, not stats requests.
    if not is_complete_name(request.path_params["type"], name):
        return await _package(request, f"{spec}/stats")

    if version:
        return await _dispatch(
            request, h_version_stats.handle, "version_stats", spec, with_date_range=True
        )
    return await _dispatch(
        request, h_package_stats.handle, "package_stats", spec, with_date_range=True
    )


routes = [
    Route("/v1/package/resolve/{type}/{spec:path}", resolve_endpoint),
    Route("/v1/package/{type}/{spec:path}/stats", stats_endpoint),
    Route("/v1/package/{type}/{spec:path}", package_endpoint),
]


def create_app() -> Starlette:
    """Build the Starlette app. Handlers read AppState from ``app.state.app_state``."""
    return Starlette(routes=routes, lifespan=lifespan)


app = create_app()


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    _setup_logging(settings)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )


if __name__ == "__main__":
    main()
