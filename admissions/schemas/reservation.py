"""Reservation schemas."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
)

from admissions.schemas.validators import (
    AadharNumber,
    Amount,
    MobileNumber,
    OptionalMobileNumber,
)


class ReservationStatus(str, Enum):
    """Reservation status in the ERP."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class Sibling(BaseModel):
    """Sibling listed on an application."""

    name: str | None = None
    class_name: str | None = None
    where: str | None = None
    gender: str | None = None


class Reservation(BaseModel):
    """Full reservation detail as returned by the ERP."""

    reservation_id: int
    reservation_no: str
    student_name: str = ""
    aadhar_no: str | None = None
    gender: str | None = None
    dob: date | None = None

    # Guardians
    father_or_guardian_name: str | None = None
    father_or_guardian_aadhar_no: str | None = None
    father_or_guardian_mobile: str | None = None
    father_or_guardian_occupation: str | None = None
    mother_or_guardian_name: str | None = None
    mother_or_guardian_aadhar_no: str | None = None
    mother_or_guardian_mobile: str | None = None
    mother_or_guardian_occupation: str | None = None
    siblings: list[Sibling] = Field(default_factory=list)

    # Academic history and address
    previous_class: str | None = None
    previous_school_details: str | None = None
    present_address: str | None = None
    permanent_address: str | None = None

    # Application
    application_fee: Amount = Decimal("0")
    application_income_id: int | None = None
    preferred_class_id: int | None = None
    class_name: str | None = None

    # Fees and concessions
    tuition_fee: Amount = Decimal("0")
    book_fee: Amount = Decimal("0")
    tuition_concession: Amount = Decimal("0")
    transport_required: bool = False
    preferred_transport_id: int | None = None
    preferred_distance_slab_id: int | None = None
    pickup_point: str | None = None
    transport_fee: Amount = Decimal("0")
    transport_concession: Amount = Decimal("0")
    concession_lock: bool = False

    status: ReservationStatus = ReservationStatus.PENDING
    referred_by: int | None = None
    remarks: str | None = None
    reservation_date: date | None = None

    # Enrollment state
    is_enrolled: bool = False
    admission_income_id: int | None = None

    model_config = ConfigDict(extra="ignore")

    @property
    def can_enroll(self) -> bool:
        return self.status == ReservationStatus.CONFIRMED and not self.is_enrolled

    @property
    def admission_fee_paid(self) -> bool:
        return self.admission_income_id is not None


class CollegeReservation(Reservation):
    """College reservations also carry a group/course choice."""

    preferred_group_id: int | None = None
    group_name: str | None = None
    preferred_course_id: int | None = None
    course_name: str | None = None
    group_fee: Amount | None = None
    course_fee: Amount | None = None
    total_tuition_fee: Amount | None = None


# Fields owned by the ERP; drafts may not change them.
SERVER_OWNED_FIELDS = frozenset(
    {
        "reservation_id",
        "reservation_no",
        "application_income_id",
        "class_name",
        "group_name",
        "course_name",
        "concession_lock",
        "is_enrolled",
        "admission_income_id",
    }
)

# Frozen once concession_lock is set.
LOCKED_FEE_FIELDS = frozenset(
    {
        "tuition_fee",
        "tuition_concession",
        "transport_fee",
        "transport_concession",
        "group_fee",
        "course_fee",
        "total_tuition_fee",
    }
)

IDENTITY_FIELDS = frozenset(
    {
        "aadhar_no",
        "father_or_guardian_aadhar_no",
        "mother_or_guardian_aadhar_no",
    }
)


# ============== Edit validation ==============


REQUIRED_LABELS = {
    "student_name": "Student name",
    "preferred_class_id": "Preferred class",
}


class SchoolReservationEdit(BaseModel):
    """Checks applied to a draft before it is sent to the ERP."""

    student_name: str
    preferred_class_id: int
    aadhar_no: AadharNumber = None
    father_or_guardian_aadhar_no: AadharNumber = None
    mother_or_guardian_aadhar_no: AadharNumber = None
    father_or_guardian_mobile: MobileNumber
    mother_or_guardian_mobile: OptionalMobileNumber = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("student_name", "preferred_class_id", mode="before")
    @classmethod
    def required(cls, value: Any, info):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError(f"{REQUIRED_LABELS[info.field_name]} is required")
        return value

    @field_validator("father_or_guardian_mobile", mode="before")
    @classmethod
    def mobile_required(cls, value: Any):
        if value is None:
            return ""
        return value


class CollegeReservationEdit(SchoolReservationEdit):
    """College drafts must also name a group and a course."""

    preferred_group_id: int | None = Field(default=None, validate_default=True)
    preferred_course_id: int | None = Field(default=None, validate_default=True)

    @field_validator("preferred_group_id")
    @classmethod
    def group_required(cls, value: int | None):
        if value is None:
            raise ValueError("Group is required")
        return value

    @field_validator("preferred_course_id")
    @classmethod
    def course_required(cls, value: int | None, info):
        if value is None:
            if info.data.get("preferred_group_id") is not None:
                raise ValueError("Course is required when a group is selected")
            raise ValueError("Course is required")
        return value


def collect_errors(exc: ValidationError) -> dict[str, str]:
    """Flatten a pydantic error into ``{field: message}``."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "__all__"
        cause = error.get("ctx", {}).get("error")
        errors.setdefault(field, str(cause) if cause else error["msg"])
    return errors


def validate_draft(draft: Reservation) -> dict[str, str]:
    """Return field errors for a draft, empty when it may be saved."""
    edit_model = (
        CollegeReservationEdit
        if isinstance(draft, CollegeReservation)
        else SchoolReservationEdit
    )
    try:
        edit_model.model_validate(draft.model_dump())
    except ValidationError as exc:
        return collect_errors(exc)
    return {}


# ============== Listing ==============


class ReservationListItem(BaseModel):
    """Row of the ERP reservation list."""

    reservation_id: int
    reservation_no: str
    student_name: str = ""
    aadhar_no: str | None = None
    class_name: str | None = None
    group_name: str | None = None
    course_name: str | None = None
    status: ReservationStatus
    reservation_date: date | None = None
    application_income_id: int | None = None
    is_enrolled: bool = False

    model_config = ConfigDict(extra="ignore")

    @computed_field
    @property
    def can_enroll(self) -> bool:
        return self.status == ReservationStatus.CONFIRMED and not self.is_enrolled

    def matches(self, search: str) -> bool:
        """Case-insensitive match on name, reservation number or Aadhar."""
        needle = search.strip().lower()
        if not needle:
            return True
        haystack = (self.student_name, self.reservation_no, self.aadhar_no)
        return any(needle in (value or "").lower() for value in haystack)


class ReservationListPage(BaseModel):
    """ERP list response."""

    reservations: list[ReservationListItem] = Field(default_factory=list)
    total_count: int | None = None

    model_config = ConfigDict(extra="ignore")


class ReservationListResult(BaseModel):
    """Filtered, paginated reservations; ``error`` is set when the read failed."""

    items: list[ReservationListItem]
    total: int
    page: int
    page_size: int
    status: ReservationStatus | None
    search: str | None = None
    error: str | None = None
