from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from loguru import logger

from bikerhub import database
from bikerhub.config import settings, validate_settings
from bikerhub.cron import setup_cron_jobs
from bikerhub.errors import register_error_handlers
from bikerhub.logger import log_requests, setup_logging
from bikerhub.responses import envelope
from bikerhub.routes import analytics, auth, orders, payments, products, uploads, users
from bikerhub.routes.uploads import upload_dir


@asynccontextmanager
async def lifespan(app: FastAPI):
    await database.get_db()
    await database.ensure_indexes()

    scheduler = None
    if settings.CRON_ENABLED:
        scheduler = setup_cron_jobs()
        scheduler.start()

    logger.info("BikerHUB API starting in {} mode", settings.ENVIRONMENT)
    logger.info("Health check: {}/health", settings.API_URL)
    logger.info("API docs: {}/api-docs", settings.API_URL)
    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
    database.close_db()
    logger.info("BikerHUB API shut down")


def create_app() -> FastAPI:
    setup_logging(settings)
    validate_settings(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Modern e-commerce API for BikerHUB platform",
        docs_url="/api-docs",
        redoc_url=None,
        openapi_url="/api-docs/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        max_age=86400,
    )
    app.middleware("http")(log_requests)
    register_error_handlers(app)

    for module in (auth, users, products, orders, payments, uploads, analytics):
        app.include_router(module.router)

    app.mount("/uploads", StaticFiles(directory=str(upload_dir())), name="uploads")

    @app.get("/health", tags=["health"])
    async def health():
        return envelope(
            "BikerHUB API is running",
            {
                "status": "success",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "environment": settings.ENVIRONMENT,
                "uptime": round(database.uptime_seconds(), 2),
                "database": await database.check_database_health(),
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
