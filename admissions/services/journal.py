"""Lifecycle journal service."""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.context import BranchType
from admissions.models.journal import LifecycleEvent, LifecycleEventType
from admissions.schemas.journal import LifecycleEventCreate


async def record_events(
    db: AsyncSession,
    events: Iterable[LifecycleEventCreate],
) -> list[LifecycleEvent]:
    """Persist panel events, in order.

    Timestamps are assigned here, one microsecond apart, so events saved in
    the same commit still sort in the order they happened.
    """
    stamp = datetime.now(timezone.utc)
    records = [
        LifecycleEvent(**event.model_dump(), created_at=stamp + timedelta(microseconds=offset))
        for offset, event in enumerate(events)
    ]
    if not records:
        return []

    db.add_all(records)
    await db.commit()
    for record in records:
        await db.refresh(record)
    return records


async def get_events(
    db: AsyncSession,
    *,
    branch_type: BranchType | None = None,
    reservation_id: int | None = None,
    event_type: LifecycleEventType | None = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[LifecycleEvent], int]:
    """Get journal entries with optional filters, newest first."""
    query = select(LifecycleEvent)

    if branch_type is not None:
        query = query.where(LifecycleEvent.branch_type == branch_type.value)
    if reservation_id is not None:
        query = query.where(LifecycleEvent.reservation_id == reservation_id)
    if event_type is not None:
        query = query.where(LifecycleEvent.event_type == event_type.value)

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    query = query.order_by(LifecycleEvent.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    events = list(result.scalars().all())

    return events, total
