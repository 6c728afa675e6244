"""Lifecycle journal model."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from admissions.core.database import BaseModel


class LifecycleEventType(str, Enum):
    """Outcome recorded for a reservation."""

    RESERVATION_UPDATED = "reservation_updated"
    STUDENT_ENROLLED = "student_enrolled"
    ENROLLMENT_FAILED = "enrollment_failed"
    ADMISSION_FEE_PAID = "admission_fee_paid"
    PAYMENT_FAILED = "payment_failed"


class LifecycleEvent(BaseModel):
    """One step of a reservation's way to an enrolled, paid-up student."""

    __tablename__ = "lifecycle_events"

    event_type: Mapped[LifecycleEventType] = mapped_column(
        String(40),
        nullable=False,
        index=True,
    )
    branch_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reservation_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    student_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    admission_no: Mapped[str | None] = mapped_column(String(50))

    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(20))
    receipt_no: Mapped[str | None] = mapped_column(String(50))

    message: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return (
            f"<LifecycleEvent(type={self.event_type}, reservation={self.reservation_id})>"
        )
