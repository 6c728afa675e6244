"""Enrollment panel routes."""

from collections.abc import Awaitable
from typing import Annotated, TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.database import get_db
from admissions.core.deps import Adapter, Panels
from admissions.core.exceptions import (
    AdmissionsError,
    BackendError,
    PanelStateError,
    ReservationValidationError,
)
from admissions.schemas.panel import DraftUpdate, PanelOpen, PanelResponse
from admissions.schemas.payment import AdmissionFeeUpdate, PaymentRequest
from admissions.services import journal as journal_service
from admissions.services.enrollment import EnrollmentPanel
from admissions.services.panels import PanelRegistry

router = APIRouter(prefix="/panels", tags=["Enrollment"])

T = TypeVar("T")


# ============== Helper Functions ==============


def http_error(exc: AdmissionsError) -> HTTPException:
    """Translate a workflow error into an HTTP error."""
    if isinstance(exc, ReservationValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": exc.message, "errors": exc.errors},
        )
    if isinstance(exc, PanelStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)
    if isinstance(exc, BackendError) and exc.status_code == status.HTTP_404_NOT_FOUND:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, BackendError) and exc.status_code is not None and exc.status_code < 500:
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)


def get_panel_or_404(registry: PanelRegistry, panel_id: UUID) -> EnrollmentPanel:
    panel = registry.get(panel_id)
    if panel is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Panel not found",
        )
    return panel


async def run_operation(
    panel: EnrollmentPanel,
    db: AsyncSession,
    operation: Awaitable[T],
) -> T:
    """Await a panel operation and journal whatever it recorded, success or not."""
    try:
        return await operation
    except AdmissionsError as exc:
        raise http_error(exc) from exc
    finally:
        await journal_service.record_events(db, panel.drain_events())


# ============== Endpoints ==============


@router.post("", response_model=PanelResponse, status_code=status.HTTP_201_CREATED)
async def open_panel(
    data: PanelOpen,
    adapter: Adapter,
    registry: Panels,
) -> PanelResponse:
    """Load a reservation into a new detail panel (read-only view)."""
    try:
        panel = await registry.open(adapter, data.reservation_id)
    except AdmissionsError as exc:
        raise http_error(exc) from exc
    return panel.describe()


@router.get("/{panel_id}", response_model=PanelResponse)
async def get_panel(panel_id: UUID, registry: Panels) -> PanelResponse:
    return get_panel_or_404(registry, panel_id).describe()


@router.delete("/{panel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_panel(panel_id: UUID, registry: Panels) -> None:
    """Close a panel; in-flight requests are cancelled and the receipt released."""
    if not registry.close(panel_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Panel not found",
        )


@router.post("/{panel_id}/edit", response_model=PanelResponse)
async def begin_edit(panel_id: UUID, registry: Panels) -> PanelResponse:
    panel = get_panel_or_404(registry, panel_id)
    try:
        panel.begin_edit()
    except AdmissionsError as exc:
        raise http_error(exc) from exc
    return panel.describe()


@router.patch("/{panel_id}/draft", response_model=PanelResponse)
async def update_draft(panel_id: UUID, data: DraftUpdate, registry: Panels) -> PanelResponse:
    """Apply field edits; Aadhar inputs are cut to 12 digits."""
    panel = get_panel_or_404(registry, panel_id)
    try:
        panel.update_fields(data.fields)
    except AdmissionsError as exc:
        raise http_error(exc) from exc
    return panel.describe()


@router.post("/{panel_id}/cancel-edit", response_model=PanelResponse)
async def cancel_edit(panel_id: UUID, registry: Panels) -> PanelResponse:
    panel = get_panel_or_404(registry, panel_id)
    try:
        panel.cancel_edit()
    except AdmissionsError as exc:
        raise http_error(exc) from exc
    return panel.describe()


@router.post("/{panel_id}/save", response_model=PanelResponse)
async def save_draft(
    panel_id: UUID,
    registry: Panels,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PanelResponse:
    """Validate and save the draft, then reload the reservation."""
    panel = get_panel_or_404(registry, panel_id)
    await run_operation(panel, db, panel.save())
    return panel.describe()


@router.post("/{panel_id}/enroll", response_model=PanelResponse)
async def enroll_student(
    panel_id: UUID,
    registry: Panels,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PanelResponse:
    """
    Create the student from the reservation.

    - Only CONFIRMED, not yet enrolled reservations
    - Moves the panel to the payment step
    """
    panel = get_panel_or_404(registry, panel_id)
    await run_operation(panel, db, panel.enroll())
    return panel.describe()


@router.put("/{panel_id}/admission-fee", response_model=PanelResponse)
async def set_admission_fee(
    panel_id: UUID,
    data: AdmissionFeeUpdate,
    registry: Panels,
) -> PanelResponse:
    panel = get_panel_or_404(registry, panel_id)
    try:
        panel.set_admission_fee(data.amount)
    except AdmissionsError as exc:
        raise http_error(exc) from exc
    return panel.describe()


@router.post("/{panel_id}/pay", response_model=PanelResponse)
async def pay_admission_fee(
    panel_id: UUID,
    data: PaymentRequest,
    registry: Panels,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PanelResponse:
    """
    Collect the admission fee.

    A failed payment still ends the payment step; the student stays
    enrolled and unpaid.
    """
    panel = get_panel_or_404(registry, panel_id)
    await run_operation(panel, db, panel.pay(data.payment_method))
    return panel.describe()


@router.get("/{panel_id}/receipt")
async def get_receipt(panel_id: UUID, registry: Panels) -> Response:
    """The receipt PDF of the admission fee payment."""
    panel = get_panel_or_404(registry, panel_id)
    if panel.receipt is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No receipt available",
        )
    return Response(
        content=panel.receipt.content,
        media_type=panel.receipt.media_type,
        headers={"Content-Disposition": f'inline; filename="{panel.receipt.filename}"'},
    )


@router.delete("/{panel_id}/receipt", status_code=status.HTTP_204_NO_CONTENT)
async def release_receipt(panel_id: UUID, registry: Panels) -> None:
    panel = get_panel_or_404(registry, panel_id)
    if not panel.release_receipt():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No receipt available",
        )
