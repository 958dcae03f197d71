import logging
from contextlib import asynccontextmanager
from typing import Literal

import anyio
from dotenv import find_dotenv, load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from pydantic_settings import BaseSettings, SettingsConfigDict

from nettrailers_core.config import REDIS_NAMESPACE
from nettrailers_interactions.config import TrackingConfig
from nettrailers_interactions.interactions_repo import InteractionsRepo
from nettrailers_interactions.interactions_service import InteractionsService
from nettrailers_interactions.refresh_queue import BackgroundRefreshQueue
from nettrailers_interactions.tracking import InteractionTracker
from nettrailers_logging.logger import DebugFlags, DebugLogger, configure_logging
from nettrailers_store.base import DocumentStore
from nettrailers_store.memory_store import MemoryDocumentStore
from nettrailers_tmdb.genres import GenreDirectory
from nettrailers_tmdb.tmdb_client import TMDBClient
from app.infrastructure.redis_infra import make_redis_store
from .routers import all_routers

log = logging.getLogger(__name__)


class Settings(BaseSettings):
    app_name: str = "NetTrailers Interactions API"
    environment: Literal["development", "test", "production"] = "development"
    log_level: str = "INFO"
    # credentials
    supabase_url: str | None = None
    supabase_api_key: str | None = None
    tmdb_api_key: str | None = None
    # document store
    store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str | None = None
    store_namespace: str = REDIS_NAMESPACE
    # tracking overrides
    summary_refresh_hours: float = 24
    retention_days: float = 90
    max_interactions_per_user: int = 10_000
    claim_ttl_minutes: float = 10
    refresh_queue_size: int = 1000
    # debug flags
    show_tracking_debug: bool = False
    show_store_debug: bool = False
    show_api_debug: bool = False
    # env config
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def tracking_config(self) -> TrackingConfig:
        return TrackingConfig(
            summary_refresh_hours=self.summary_refresh_hours,
            retention_days=self.retention_days,
            max_interactions_per_user=self.max_interactions_per_user,
            claim_ttl_minutes=self.claim_ttl_minutes,
        )

    def debug_flags(self) -> DebugFlags:
        return DebugFlags(
            show_tracking_debug=self.show_tracking_debug,
            show_store_debug=self.show_store_debug,
            show_api_debug=self.show_api_debug,
        )


def _make_store(settings: Settings, debug: DebugLogger) -> DocumentStore:
    if settings.store_backend == "redis":
        if not (settings.redis_url and settings.redis_url.strip()):
            raise RuntimeError("STORE_BACKEND=redis requires REDIS_URL")
        return make_redis_store(
            settings.redis_url, namespace=settings.store_namespace, debug=debug
        )
    return MemoryDocumentStore(debug=debug)


async def _load_genres(settings: Settings) -> GenreDirectory:
    genres = GenreDirectory()
    if settings.tmdb_api_key:
        client = TMDBClient(settings.tmdb_api_key)
        try:
            n = await genres.refresh_from_tmdb(client)
            log.info("Loaded %d genre names from TMDB", n)
        finally:
            await client.aclose()
    return genres


@asynccontextmanager
async def lifespan(app: FastAPI):
    load_dotenv(find_dotenv(), override=False)

    settings = Settings()
    app.state.settings = settings
    configure_logging(settings.log_level)

    debug = DebugLogger(
        settings.debug_flags(), production=settings.environment == "production"
    )
    store = _make_store(settings, debug)
    queue = BackgroundRefreshQueue(max_pending=settings.refresh_queue_size)
    service = InteractionsService(
        InteractionsRepo(store),
        config=settings.tracking_config(),
        genres=await _load_genres(settings),
        refresh_queue=queue,
        debug=debug,
    )

    app.state.debug = debug
    app.state.store = store
    app.state.refresh_queue = queue
    app.state.interactions_service = service
    app.state.tracker = InteractionTracker(service, debug)

    async with anyio.create_task_group() as tg:
        tg.start_soon(queue.run, service.refresh_summary_if_needed)
        try:
            yield
        finally:
            # stop intake; the consumer drains what is queued and exits
            await queue.aclose()
    await store.aclose()


app = FastAPI(title="NetTrailers Interactions API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(
        title=app.title,
        version="0.1.0",
        description="Interaction tracking and recommendation summaries",
        routes=app.routes,
    )
    components = schema.setdefault("components", {})
    components.setdefault("securitySchemes", {})["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    for path_item in schema.get("paths", {}).values():
        for operation in path_item.values():
            operation.setdefault("security", []).append({"BearerAuth": []})
    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = _custom_openapi


@app.get("/health")
def health():
    s = app.state.settings
    return {"status": "ok", "service": s.app_name}


@app.get("/")
def read_root():
    return {"status": "ok"}


for r in all_routers:
    app.include_router(r)
