"""Admissions Desk - FastAPI Application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from admissions.api.v1.router import api_router
from admissions.core.config import settings
from admissions.core.logging_config import configure_logging
from admissions.services.cache import QueryCache
from admissions.services.panels import PanelRegistry
from admissions.services.receipts import ReceiptStore


def attach_state(app: FastAPI, erp_http: httpx.AsyncClient) -> None:
    """Wire the shared workflow state onto the app."""
    query_cache = QueryCache()
    app.state.erp_http = erp_http
    app.state.query_cache = query_cache
    app.state.panels = PanelRegistry(query_cache, ReceiptStore())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    async with httpx.AsyncClient(
        base_url=settings.ERP_API_URL,
        timeout=settings.ERP_TIMEOUT_SECONDS,
    ) as erp_http:
        attach_state(app, erp_http)
        yield
        app.state.panels.close_all()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Include API routes
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
