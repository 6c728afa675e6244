"""Student creation schemas."""

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from admissions.core.exceptions import BackendError, ResponseShapeError
from admissions.schemas.reservation import Sibling
from admissions.schemas.validators import Amount


class SchoolStudentCreate(BaseModel):
    """Payload for creating a school student from a reservation."""

    reservation_id: int
    student_name: str
    aadhar_no: str | None = None
    gender: str | None = None
    dob: date | None = None
    father_or_guardian_name: str | None = None
    father_or_guardian_aadhar_no: str | None = None
    father_or_guardian_mobile: str | None = None
    father_or_guardian_occupation: str | None = None
    mother_or_guardian_name: str | None = None
    mother_or_guardian_aadhar_no: str | None = None
    mother_or_guardian_mobile: str | None = None
    mother_or_guardian_occupation: str | None = None
    present_address: str | None = None
    permanent_address: str | None = None
    admission_fee: Amount


class CollegeStudentCreate(BaseModel):
    """Payload for creating a college student from a reservation."""

    reservation_id: int
    student_name: str
    aadhar_no: str | None = None
    gender: str | None = None
    dob: date | None = None
    father_name: str | None = None
    father_aadhar_no: str | None = None
    father_mobile: str | None = None
    father_occupation: str | None = None
    mother_name: str | None = None
    mother_aadhar_no: str | None = None
    mother_mobile: str | None = None
    mother_occupation: str | None = None
    siblings: list[Sibling] = Field(default_factory=list)
    previous_class: str | None = None
    previous_school_details: str | None = None
    present_address: str | None = None
    permanent_address: str | None = None
    application_fee: Amount = Decimal("0")
    preferred_class_id: int | None = None
    preferred_group_id: int | None = None
    group_name: str | None = None
    preferred_course_id: int | None = None
    course_name: str | None = None
    group_fee: Amount = Decimal("0")
    course_fee: Amount = Decimal("0")
    book_fee: Amount = Decimal("0")
    total_tuition_fee: Amount = Decimal("0")
    tuition_concession: Amount = Decimal("0")
    transport_required: bool = False
    preferred_transport_id: int | None = None
    preferred_distance_slab_id: int | None = None
    pickup_point: str | None = None
    transport_fee: Amount = Decimal("0")
    transport_concession: Amount = Decimal("0")
    status: str
    referred_by: int | None = None
    remarks: str | None = None
    reservation_date: date | None = None
    admission_fee: Amount


class StudentCreated(BaseModel):
    """Canonical result of student creation."""

    student_id: int = Field(gt=0)
    admission_no: str = ""


def parse_student_created(raw: Any) -> StudentCreated:
    """
    Normalize the ERP's student creation response.

    The ERP answers either ``{"data": {"student_id", "admission_no"}}`` or
    the same keys at top level, and may wrap failures in
    ``{"success": false, "message": ...}``. Anything without a usable
    ``student_id`` is rejected here so callers never see a half-parsed result.
    """
    if not isinstance(raw, dict):
        raise ResponseShapeError("Unexpected response while creating student.")

    if raw.get("success") is False:
        raise BackendError(raw.get("message") or "Failed to enroll student. Please try again.")

    data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
    student_id = data.get("student_id")
    if student_id is None:
        student_id = raw.get("student_id")
    admission_no = data.get("admission_no") or raw.get("admission_no") or ""

    if not student_id:
        raise ResponseShapeError("Student created but student_id not received from server.")

    try:
        return StudentCreated(student_id=student_id, admission_no=admission_no)
    except ValidationError as exc:
        raise ResponseShapeError(
            "Student created but student_id not received from server."
        ) from exc
