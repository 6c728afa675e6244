"""Dependencies for FastAPI routes."""

from typing import Annotated

import httpx
from fastapi import Depends, Header, Request

from admissions.core.context import AppContext, BranchType
from admissions.services.branches import BranchAdapter, get_adapter
from admissions.services.cache import QueryCache
from admissions.services.panels import PanelRegistry


async def get_app_context(
    x_branch_type: Annotated[BranchType, Header()] = BranchType.SCHOOL,
    x_branch_id: Annotated[int | None, Header()] = None,
    x_academic_year_id: Annotated[int | None, Header()] = None,
    x_user: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> AppContext:
    """Build the session context from request headers.

    The bearer token is not checked here; it is forwarded to the ERP,
    which authenticates every call.
    """
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip() or None

    return AppContext(
        branch_type=x_branch_type,
        branch_id=x_branch_id,
        academic_year_id=x_academic_year_id,
        user_name=x_user,
        access_token=token,
    )


def get_erp_http(request: Request) -> httpx.AsyncClient:
    return request.app.state.erp_http


def get_panel_registry(request: Request) -> PanelRegistry:
    return request.app.state.panels


def get_query_cache(request: Request) -> QueryCache:
    return request.app.state.query_cache


async def get_branch_adapter(
    context: Annotated[AppContext, Depends(get_app_context)],
    http: Annotated[httpx.AsyncClient, Depends(get_erp_http)],
) -> BranchAdapter:
    """Adapter for the branch named in the request headers."""
    return get_adapter(http, context)


# Common dependency aliases
Adapter = Annotated[BranchAdapter, Depends(get_branch_adapter)]
Panels = Annotated[PanelRegistry, Depends(get_panel_registry)]
Cache = Annotated[QueryCache, Depends(get_query_cache)]
