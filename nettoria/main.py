import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from nettoria.api.v1.admin import router as admin_router
from nettoria.api.v1.auth import router as auth_router
from nettoria.api.v1.success_password import router as success_password_router
from nettoria.api.v1.twofa import router as twofa_router
from nettoria.core.config import Settings, get_settings
from nettoria.core.db import Base, engine
from nettoria.core.errors import register_error_handlers
from nettoria.core.logging_config import setup_logging
from nettoria.core.rate_limit import limiter
from nettoria.services.notifications import build_notifier
import nettoria.models  # noqa: F401  (populates Base.metadata)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    if settings.AUTO_CREATE_TABLES:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")
    logger.info("%s started (%s)", settings.APP_NAME, settings.ENVIRONMENT)
    yield
    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(title=f"{settings.APP_NAME} API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.notifier = build_notifier(settings)
    app.state.limiter = limiter

    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
        return response

    app.include_router(auth_router)
    app.include_router(twofa_router)
    app.include_router(success_password_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
