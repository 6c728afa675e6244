"""Pydantic schemas."""

from admissions.schemas.panel import Notice, PanelResponse, PanelState
from admissions.schemas.payment import (
    PayByStudentRequest,
    PaymentContext,
    PaymentDetail,
    PaymentMethod,
    PaymentPurpose,
)
from admissions.schemas.reservation import (
    CollegeReservation,
    Reservation,
    ReservationListItem,
    ReservationListResult,
    ReservationStatus,
)
from admissions.schemas.student import StudentCreated

__all__ = [
    # Panel
    "Notice",
    "PanelResponse",
    "PanelState",
    # Payment
    "PayByStudentRequest",
    "PaymentContext",
    "PaymentDetail",
    "PaymentMethod",
    "PaymentPurpose",
    # Reservation
    "CollegeReservation",
    "Reservation",
    "ReservationListItem",
    "ReservationListResult",
    "ReservationStatus",
    # Student
    "StudentCreated",
]
