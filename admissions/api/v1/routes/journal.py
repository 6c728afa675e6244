"""Lifecycle journal routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.context import BranchType
from admissions.core.database import get_db
from admissions.models.journal import LifecycleEventType
from admissions.schemas.journal import LifecycleEventListResponse, LifecycleEventResponse
from admissions.services import journal as journal_service

router = APIRouter(prefix="/journal", tags=["Journal"])


@router.get("", response_model=LifecycleEventListResponse)
async def list_events(
    db: Annotated[AsyncSession, Depends(get_db)],
    branch_type: BranchType | None = Query(None, description="Filter by branch type"),
    reservation_id: int | None = Query(None, description="Filter by reservation"),
    event_type: LifecycleEventType | None = Query(None, description="Filter by event type"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=200, description="Max number of records"),
) -> LifecycleEventListResponse:
    """List recorded lifecycle events, newest first."""
    events, total = await journal_service.get_events(
        db,
        branch_type=branch_type,
        reservation_id=reservation_id,
        event_type=event_type,
        skip=skip,
        limit=limit,
    )
    return LifecycleEventListResponse(
        items=[LifecycleEventResponse.model_validate(e) for e in events],
        total=total,
        skip=skip,
        limit=limit,
    )
