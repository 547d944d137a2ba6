"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import router as api_v1_router
from app.core.config import settings
from app.core.database import dispose_engine
from app.core.redis import close_redis_pool
from app.services.credit_dashboard import CreditDashboardPage
from app.services.fallback_store import InMemoryMessageStore
from app.services.query_client import QueryClient, QueryClientOptions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    logger.info("Starting querydesk API...")
    app.state.fallback_store = None
    if settings.chat_fallback_store_enabled:
        store = InMemoryMessageStore()
        store.open()
        app.state.fallback_store = store

    page = CreditDashboardPage(
        QueryClient(QueryClientOptions()),
        sync_interval_minutes=settings.credit_sync_interval_minutes,
        include_devtools=not settings.is_production,
    )
    await page.mount()
    app.state.credit_dashboard = page

    yield

    # Shutdown
    logger.info("Shutting down querydesk API...")
    await page.unmount()
    if app.state.fallback_store is not None:
        app.state.fallback_store.close()
    await close_redis_pool()
    await dispose_engine()


app = FastAPI(
    title="querydesk API",
    description="Query management API for credit, operations and sales teams",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": "querydesk API",
        "version": "0.1.0",
        "docs": "/docs",
    }
