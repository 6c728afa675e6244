"""Enrollment panel schemas."""

from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from admissions.core.context import BranchType
from admissions.schemas.payment import ReceiptInfo
from admissions.schemas.student import StudentCreated


class PanelState(str, Enum):
    """Where a detail panel is in the lifecycle."""

    VIEW = "VIEW"
    EDIT = "EDIT"
    ENROLLING = "ENROLLING"
    PAYMENT = "PAYMENT"
    COMPLETED = "COMPLETED"
    CLOSED = "CLOSED"


class NoticeVariant(str, Enum):
    SUCCESS = "success"
    DESTRUCTIVE = "destructive"
    DEFAULT = "default"


class Notice(BaseModel):
    """User-facing message produced by a panel operation."""

    title: str
    description: str
    variant: NoticeVariant = NoticeVariant.DEFAULT


class PanelOpen(BaseModel):
    """Request to open a detail panel."""

    reservation_id: int = Field(gt=0)


class DraftUpdate(BaseModel):
    """Field edits applied to the draft."""

    fields: dict[str, Any] = Field(min_length=1)


class PanelResponse(BaseModel):
    """Everything a client needs to render a panel."""

    panel_id: UUID
    branch_type: BranchType
    state: PanelState
    reservation: dict[str, Any] | None
    draft: dict[str, Any] | None = None
    can_edit: bool
    can_enroll: bool
    is_enrolled: bool
    fee_locked: bool
    fee_paid: bool
    admission_fee: Decimal
    student: StudentCreated | None = None
    receipt: ReceiptInfo | None = None
    errors: dict[str, str] = Field(default_factory=dict)
    notices: list[Notice] = Field(default_factory=list)
