"""
Main FastAPI application entry point.
Responsibilities: App setup, router registration, startup/shutdown hooks.
"""
from fastapi import FastAPI

from .routes import chat, documents, models
from .config import get_settings
from .db import get_engine
from .dependencies import get_embedding_coordinator
from .db.migrations import run_sql_migrations
from .logging_config import logger

# -------------------------------------------------
# App setup
# -------------------------------------------------

app = FastAPI(title="PDF Chat", version="0.1.0")

# Register routers
app.include_router(documents.router)
app.include_router(chat.router)
app.include_router(models.router)


@app.on_event("startup")
async def startup_event():
    """Initialize database and the local embedding model on startup."""
    try:
        logger.info("Running database migrations...")
        run_sql_migrations(get_engine())
        logger.info("Database migrations completed")

        if get_settings().embedding_backend == "local":
            logger.info("Preloading embedding model...")
            get_embedding_coordinator().provider.preload()
            logger.info("Embedding model ready")

    except Exception as e:
        logger.error("Startup initialization error", exc_info=e)
        # Continue anyway - app might still be usable


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Application shutting down")
