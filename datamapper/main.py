"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers the API routers.
"""
import os
from datetime import datetime
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .core.config import settings
from .core.logging_config import configure_logging

from .api.routers import mapping

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    if os.getenv("SKIP_DB_INIT") == "1":
        print("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
        yield
        return

    if settings.create_catalog_tables:
        try:
            from .api.dependencies import get_relational_store

            print("Initializing catalog tables...")
            get_relational_store().ensure_catalog_tables()
            print("✓ catalog tables ready")
        except Exception as e:
            print(f"ERROR: Failed to initialize catalog tables: {e}")
            raise

    yield

    # Shutdown
    from .api.dependencies import close_document_store

    close_document_store()


app = FastAPI(
    title="Tenant Data Mapper API",
    version="1.0.0",
    description="Maps schema-less tenant collections onto the relational business catalog",
    lifespan=lifespan
)

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(mapping.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "Tenant Data Mapper API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "tenant-data-mapper"
    }
