"""Lifecycle journal schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from admissions.core.context import BranchType
from admissions.models.journal import LifecycleEventType


class LifecycleEventCreate(BaseModel):
    """Event emitted by an enrollment panel."""

    event_type: LifecycleEventType
    branch_type: BranchType
    reservation_id: int
    student_id: int | None = None
    admission_no: str | None = None
    amount: Decimal | None = None
    payment_method: str | None = None
    receipt_no: str | None = None
    message: str | None = None

    model_config = ConfigDict(use_enum_values=True)


class LifecycleEventResponse(BaseModel):
    """Journal entry."""

    id: UUID
    event_type: LifecycleEventType
    branch_type: BranchType
    reservation_id: int
    student_id: int | None
    admission_no: str | None
    amount: Decimal | None
    payment_method: str | None
    receipt_no: str | None
    message: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LifecycleEventListResponse(BaseModel):
    """Paginated list of journal entries."""

    items: list[LifecycleEventResponse]
    total: int
    skip: int
    limit: int
