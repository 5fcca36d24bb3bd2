import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse

from .config import Settings, get_settings
from .container import ServiceContainer, build_container
from .db import close_mongo_connection, connect_to_mongo, ensure_indexes
from .dependencies import get_container, install_error_handlers
from .routers import groups, interests, likes, matches, profiles, quota, reports

LOGGER = logging.getLogger("uvicorn.error")


def create_app(container: Optional[ServiceContainer] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API.

    With ``container`` given the app uses it as-is and skips connecting to
    MongoDB, which is how the tests run it. Otherwise the lifespan connects,
    ensures indexes, wires the container and starts the expiry sweeper.
    """
    settings = settings or (container.settings if container else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if container is not None:
            app.state.container = container
            yield
            return

        client, db = await connect_to_mongo(settings)
        try:
            await ensure_indexes(db)
        except Exception as exc:
            LOGGER.error("[Mongo] ensure indexes failed: %s", exc)
            raise
        built = build_container(db, settings)
        app.state.container = built
        built.sweeper.start()
        LOGGER.info("Glimpse API ready (auth=%s)", settings.auth_provider)
        try:
            yield
        finally:
            await built.sweeper.stop()
            await built.publisher.close()
            await close_mongo_connection(client)

    app = FastAPI(title="Glimpse API", default_response_class=ORJSONResponse, lifespan=lifespan)
    if container is not None:
        app.state.container = container

    allow_origins = settings.get_cors_origins_list()
    LOGGER.info("[CORS] allow_origins=%s", allow_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    app.add_middleware(GZipMiddleware, minimum_size=512)

    slow_ms = settings.slow_request_ms

    # Simple slow-request logger
    @app.middleware("http")
    async def log_slow_requests(request: Request, call_next):
        t0 = time.perf_counter()
        response = await call_next(request)
        dt = (time.perf_counter() - t0) * 1000
        if dt >= slow_ms:
            LOGGER.warning(
                "[perf] slow request %s %s %sms status=%s",
                request.method,
                request.url.path,
                int(dt),
                response.status_code,
            )
        return response

    install_error_handlers(app)

    app.include_router(likes.router)
    app.include_router(matches.router)
    app.include_router(groups.router)
    app.include_router(reports.router)
    app.include_router(interests.router)
    app.include_router(profiles.router)
    app.include_router(quota.router)

    @app.get("/")
    async def root():
        return {"status": "glimpse-api-ok"}

    @app.get("/health/db")
    async def health_db(request: Request):
        current = get_container(request)
        await current.database.command("ping")
        return {"status": "ok"}

    return app


app = create_app()
