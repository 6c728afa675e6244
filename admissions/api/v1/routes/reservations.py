"""Reservation list routes."""

from fastapi import APIRouter, HTTPException, Query, status

from admissions.core.deps import Adapter, Cache
from admissions.schemas.reservation import ReservationListResult, ReservationStatus
from admissions.services import reservation as reservation_service

router = APIRouter(prefix="/reservations", tags=["Reservations"])

ALL_STATUSES = "ALL"


@router.get("", response_model=ReservationListResult)
async def list_reservations(
    adapter: Adapter,
    cache: Cache,
    status_filter: str = Query(
        ReservationStatus.CONFIRMED.value,
        alias="status",
        description="PENDING, CONFIRMED, CANCELLED or ALL",
    ),
    search: str | None = Query(None, description="Student name, reservation no or Aadhar"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Rows per page"),
) -> ReservationListResult:
    """
    List reservations of the current branch.

    A failed ERP read is not an HTTP error: the list comes back empty with
    ``error`` set, so the desk can keep rendering.
    """
    if status_filter.upper() == ALL_STATUSES:
        reservation_status = None
    else:
        try:
            reservation_status = ReservationStatus(status_filter.upper())
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Unknown status: {status_filter}",
            )

    return await reservation_service.get_reservations(
        adapter,
        cache,
        status=reservation_status,
        search=search,
        page=page,
        page_size=page_size,
    )
