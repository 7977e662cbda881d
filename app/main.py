"""Entry point for the FastAPI catalog service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Awaitable, Callable

import httpx
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .categories import CategoryDefinition, categories_for
from .config import settings
from .database import Database
from .errors import (
    CatalogItemNotFound,
    CatalogValidationError,
    PersistenceError,
    UpstreamFetchFailed,
)
from .freshness import FreshnessPolicy
from .models import MediaType, MovieDetails, MoviePage, ShowDetails, ShowPage
from .services.catalog_sync import CatalogSyncService
from .services.tmdb import TMDBClient
from .store import SqlCatalogStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI

# URL prefix per media type, matching the public routes.
ROUTE_PREFIXES: dict[MediaType, str] = {"movie": "/movies", "tv": "/series"}


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=settings.tmdb_base_url,
            timeout=httpx.Timeout(settings.tmdb_timeout_seconds, connect=5.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    tmdb = TMDBClient(settings, tmdb_http_client)
    policy = FreshnessPolicy(window=settings.staleness_window)
    fastapi_app.state.catalogs = {
        media_type: CatalogSyncService(
            tmdb,
            SqlCatalogStore(database.session_factory, media_type),
            policy=policy,
        )
        for media_type in ROUTE_PREFIXES
    }
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie and TV catalog backed by TMDB with a local cache",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_catalog_service(fastapi_app: FastAPI, media_type: MediaType) -> CatalogSyncService:
    catalogs = getattr(fastapi_app.state, "catalogs", None) or {}
    service = catalogs.get(media_type)
    if not isinstance(service, CatalogSyncService):
        raise RuntimeError("Catalog service not initialised")
    return service


async def _call_service(call: Callable[[], Awaitable[Any]]) -> Any:
    """Run a service call and translate catalog errors into HTTP errors."""

    try:
        return await call()
    except CatalogValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CatalogItemNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UpstreamFetchFailed as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except PersistenceError as exc:
        logger.exception("Catalog store unavailable")
        raise HTTPException(status_code=503, detail="Catalog store unavailable") from exc


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    for media_type, prefix in ROUTE_PREFIXES.items():
        _register_media_routes(fastapi_app, media_type, prefix)


def _register_media_routes(
    fastapi_app: FastAPI, media_type: MediaType, prefix: str
) -> None:
    page_model = MoviePage if media_type == "movie" else ShowPage
    details_model = MovieDetails if media_type == "movie" else ShowDetails

    async def list_stored(
        page: int = Query(default=1),
        limit: int = Query(default=settings.default_page_limit),
    ):
        service = get_catalog_service(fastapi_app, media_type)
        return await _call_service(lambda: service.list_stored(page, limit))

    fastapi_app.add_api_route(prefix, list_stored, response_model=page_model)

    for definition in categories_for(media_type):
        fastapi_app.add_api_route(
            f"{prefix}/tmdb/{definition.slug}",
            _category_endpoint(fastapi_app, definition),
            response_model=page_model,
        )

    # Registered before the detail route so "search" is never read as an id.
    async def search(
        query: str = Query(default=""),
        page: int = Query(default=1),
        limit: int = Query(default=settings.default_page_limit),
    ):
        service = get_catalog_service(fastapi_app, media_type)
        return await _call_service(lambda: service.search(query, page, limit))

    fastapi_app.add_api_route(f"{prefix}/tmdb/search", search, response_model=page_model)

    async def details(item_id: str):
        service = get_catalog_service(fastapi_app, media_type)
        return await _call_service(lambda: service.get_details(item_id))

    fastapi_app.add_api_route(
        f"{prefix}/tmdb/{{item_id}}", details, response_model=details_model
    )


def _category_endpoint(fastapi_app: FastAPI, definition: CategoryDefinition):
    async def endpoint(
        page: int = Query(default=1),
        limit: int = Query(default=settings.default_page_limit),
    ):
        service = get_catalog_service(fastapi_app, definition.media_type)
        return await _call_service(
            lambda: service.list_category(definition.key, page, limit)
        )

    endpoint.__name__ = f"{definition.media_type}_{definition.key}"
    return endpoint


app = create_app()
