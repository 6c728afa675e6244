"""Reservation list service."""

import logging

from admissions.core.config import settings
from admissions.core.exceptions import AdmissionsError
from admissions.schemas.reservation import (
    ReservationListItem,
    ReservationListResult,
    ReservationStatus,
)
from admissions.services.branches import BranchAdapter
from admissions.services.cache import QueryCache, QueryGroup

logger = logging.getLogger(__name__)


async def get_reservations(
    adapter: BranchAdapter,
    cache: QueryCache,
    *,
    status: ReservationStatus | None = ReservationStatus.CONFIRMED,
    search: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> ReservationListResult:
    """
    List reservations for the desk.

    The ERP is asked for one window of ``RESERVATION_PAGE_SIZE`` rows in the
    given status; search and pagination are applied here. Read failures do
    not raise: the result is empty and carries the error message.
    """
    key = (adapter.erp.context.cache_scope, status)

    async def fetch() -> list[ReservationListItem]:
        result = await adapter.list_reservations(
            status=status,
            page=1,
            page_size=settings.RESERVATION_PAGE_SIZE,
        )
        return result.reservations

    try:
        rows = await cache.fetch(QueryGroup.RESERVATIONS, key, fetch)
    except AdmissionsError as exc:
        logger.warning("Listing %s reservations failed: %s", adapter.branch_type.value, exc.message)
        return ReservationListResult(
            items=[],
            total=0,
            page=page,
            page_size=page_size,
            status=status,
            search=search,
            error=exc.message,
        )

    if search:
        rows = [row for row in rows if row.matches(search)]

    start = (page - 1) * page_size
    return ReservationListResult(
        items=rows[start:start + page_size],
        total=len(rows),
        page=page,
        page_size=page_size,
        status=status,
        search=search,
    )
