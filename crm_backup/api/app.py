"""FastAPI application for crm-backup."""

from contextlib import asynccontextmanager
import logging
import os
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import redis.asyncio as redis

from crm_backup.backup import BackupManager
from crm_backup.config import BackupConfig
from crm_backup.database import create_engine_from_config, create_schema
from .config import settings
from .jobs import JobManager
from .routers import backup

# App-managed pattern: attach our own handler and don't propagate, so INFO
# logs are visible regardless of uvicorn's logging config
crm_logger = logging.getLogger("crm-backup")
crm_logger.setLevel(logging.INFO)
crm_logger.propagate = False
crm_logger.handlers.clear()

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.INFO)
formatter = logging.Formatter(
    '%(asctime)s - [%(name)s] - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
console_handler.setFormatter(formatter)
crm_logger.addHandler(console_handler)

# Fall back to server-managed logging in production if asked to
if os.getenv("DISABLE_APP_LOGGING", "false").lower() == "true":
    crm_logger.handlers.clear()
    crm_logger.propagate = True

logger = logging.getLogger(__name__)


def _backup_config() -> BackupConfig:
    return BackupConfig(
        database_url=settings.database_url,
        backup_dir=settings.backup_dir,
        uploads_dir=settings.uploads_dir,
        copy_retries=settings.copy_retries,
        sqlite_foreign_keys=settings.sqlite_foreign_keys,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage database engine, backup manager and job store lifecycle."""
    logger.info("Initializing backup service...")

    config = _backup_config()
    engine = create_engine_from_config(config)
    if settings.create_schema:
        await create_schema(engine)

    app.state.engine = engine
    app.state.backup_manager = BackupManager(engine, config)
    logger.info(f"Backup manager initialized (backup_dir={config.backup_dir})")

    # Redis-backed job tracking if configured, otherwise in-process
    app.state.redis_client = None
    if settings.redis_url:
        try:
            app.state.redis_client = redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            await app.state.redis_client.ping()
            logger.info("Redis client initialized for job tracking")
        except Exception as e:
            logger.warning(f"Failed to initialize Redis client, tracking jobs in memory: {e}")
            app.state.redis_client = None
    else:
        logger.info("Redis not configured - tracking jobs in memory")

    app.state.job_manager = JobManager(app.state.redis_client, job_ttl=settings.job_ttl)

    yield

    logger.info("Shutting down backup service...")
    if app.state.redis_client:
        await app.state.redis_client.close()
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(backup.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "docs": f"{settings.api_prefix}/docs"
        }

    return app


# Create default app instance
app = create_app()
