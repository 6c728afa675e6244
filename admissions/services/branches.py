"""Branch adapters: one enrollment workflow, two ERP dialects."""

import json
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from admissions.clients.erp import ErpClient
from admissions.core.context import AppContext, BranchType
from admissions.core.exceptions import ResponseShapeError
from admissions.schemas.payment import PayByStudentRequest, PaymentContext, parse_payment_context
from admissions.schemas.reservation import (
    SERVER_OWNED_FIELDS,
    CollegeReservation,
    Reservation,
    ReservationListPage,
    ReservationStatus,
)
from admissions.schemas.student import (
    CollegeStudentCreate,
    SchoolStudentCreate,
    StudentCreated,
    parse_student_created,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

PDF_MEDIA_TYPE = "application/pdf"

# College endpoints name guardian fields father_* / mother_*.
COLLEGE_GUARDIAN_KEYS = {
    "father_or_guardian_name": "father_name",
    "father_or_guardian_aadhar_no": "father_aadhar_no",
    "father_or_guardian_mobile": "father_mobile",
    "father_or_guardian_occupation": "father_occupation",
    "mother_or_guardian_name": "mother_name",
    "mother_or_guardian_aadhar_no": "mother_aadhar_no",
    "mother_or_guardian_mobile": "mother_mobile",
    "mother_or_guardian_occupation": "mother_occupation",
}


def parse_as(model: type[ModelT], raw: Any, what: str) -> ModelT:
    """Validate an ERP body, failing with ``ResponseShapeError``."""
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Unexpected %s payload from ERP: %s", what, exc)
        raise ResponseShapeError(f"Unexpected {what} data received from server") from exc


class BranchAdapter(ABC):
    """ERP operations the enrollment workflow needs, for one branch type."""

    branch_type: BranchType
    reservation_model: type[Reservation] = Reservation

    def __init__(self, erp: ErpClient) -> None:
        self.erp = erp

    @property
    def prefix(self) -> str:
        return f"/{self.branch_type.value}"

    async def list_reservations(
        self,
        *,
        status: ReservationStatus | None,
        page: int = 1,
        page_size: int = 100,
    ) -> ReservationListPage:
        params: dict[str, Any] = {"page": page, "page_size": page_size}
        if status is not None:
            params["status"] = status.value
        raw = await self.erp.get_json(f"{self.prefix}/reservations", params=params)
        return parse_as(ReservationListPage, raw, "reservation list")

    async def get_reservation(self, reservation_id: int) -> Reservation:
        raw = await self.erp.get_json(f"{self.prefix}/reservations/{reservation_id}")
        return parse_as(self.reservation_model, raw, "reservation")

    async def update_reservation(self, reservation: Reservation) -> None:
        """Send the full edited reservation back to the ERP."""
        payload = reservation.model_dump(mode="json", exclude=SERVER_OWNED_FIELDS)
        await self._send_update(reservation.reservation_id, payload)

    async def create_student(
        self, reservation: Reservation, admission_fee: Decimal
    ) -> StudentCreated:
        payload = self.student_payload(reservation, admission_fee)
        raw = await self.erp.post_json(
            f"{self.prefix}/students",
            payload.model_dump(mode="json"),
        )
        return parse_student_created(raw)

    async def pay_by_student(
        self, student_id: int, request: PayByStudentRequest
    ) -> PaymentContext:
        raw = await self.erp.post_json(
            f"{self.prefix}/income/pay-fee-by-student/{student_id}",
            request.model_dump(mode="json", exclude_none=True),
        )
        return parse_payment_context(raw)

    async def fetch_receipt(self, income_id: int) -> tuple[bytes, str]:
        """Download the receipt PDF the ERP renders for an income."""
        content, media_type = await self.erp.get_bytes(
            f"{self.prefix}/income/{income_id}/regenerate-receipt"
        )
        if not content:
            raise ResponseShapeError("Invalid PDF received from server")
        if "pdf" not in media_type.lower():
            media_type = PDF_MEDIA_TYPE
        return content, media_type

    @abstractmethod
    async def _send_update(self, reservation_id: int, payload: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def student_payload(self, reservation: Reservation, admission_fee: Decimal) -> BaseModel:
        """Map a reservation snapshot to the student creation payload."""


class SchoolAdapter(BranchAdapter):
    """School endpoints: multipart updates, guardian-style keys."""

    branch_type = BranchType.SCHOOL
    reservation_model = Reservation

    async def _send_update(self, reservation_id: int, payload: dict[str, Any]) -> None:
        fields: dict[str, str] = {}
        for name, value in payload.items():
            if value is None:
                continue
            if name == "siblings":
                if value:
                    fields[name] = json.dumps(value)
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            fields[name] = str(value)
        await self.erp.put_form(f"{self.prefix}/reservations/{reservation_id}", fields)

    def student_payload(self, reservation: Reservation, admission_fee: Decimal) -> SchoolStudentCreate:
        return SchoolStudentCreate(
            reservation_id=reservation.reservation_id,
            student_name=reservation.student_name,
            aadhar_no=reservation.aadhar_no,
            gender=reservation.gender,
            dob=reservation.dob,
            father_or_guardian_name=reservation.father_or_guardian_name,
            father_or_guardian_aadhar_no=reservation.father_or_guardian_aadhar_no,
            father_or_guardian_mobile=reservation.father_or_guardian_mobile,
            father_or_guardian_occupation=reservation.father_or_guardian_occupation,
            mother_or_guardian_name=reservation.mother_or_guardian_name,
            mother_or_guardian_aadhar_no=reservation.mother_or_guardian_aadhar_no,
            mother_or_guardian_mobile=reservation.mother_or_guardian_mobile,
            mother_or_guardian_occupation=reservation.mother_or_guardian_occupation,
            present_address=reservation.present_address,
            permanent_address=reservation.permanent_address,
            admission_fee=admission_fee,
        )


class CollegeAdapter(BranchAdapter):
    """College endpoints: JSON updates, father_*/mother_* keys, group and course."""

    branch_type = BranchType.COLLEGE
    reservation_model = CollegeReservation

    async def _send_update(self, reservation_id: int, payload: dict[str, Any]) -> None:
        body = {COLLEGE_GUARDIAN_KEYS.get(name, name): value for name, value in payload.items()}
        await self.erp.put_json(f"{self.prefix}/reservations/{reservation_id}", body)

    def student_payload(self, reservation: Reservation, admission_fee: Decimal) -> CollegeStudentCreate:
        if not isinstance(reservation, CollegeReservation):
            raise TypeError("College enrollment needs a CollegeReservation")
        tuition = reservation.total_tuition_fee or reservation.tuition_fee
        return CollegeStudentCreate(
            reservation_id=reservation.reservation_id,
            student_name=reservation.student_name,
            aadhar_no=reservation.aadhar_no,
            gender=reservation.gender,
            dob=reservation.dob,
            father_name=reservation.father_or_guardian_name,
            father_aadhar_no=reservation.father_or_guardian_aadhar_no,
            father_mobile=reservation.father_or_guardian_mobile,
            father_occupation=reservation.father_or_guardian_occupation,
            mother_name=reservation.mother_or_guardian_name,
            mother_aadhar_no=reservation.mother_or_guardian_aadhar_no,
            mother_mobile=reservation.mother_or_guardian_mobile,
            mother_occupation=reservation.mother_or_guardian_occupation,
            siblings=reservation.siblings,
            previous_class=reservation.previous_class,
            previous_school_details=reservation.previous_school_details,
            present_address=reservation.present_address,
            permanent_address=reservation.permanent_address,
            application_fee=reservation.application_fee,
            preferred_class_id=reservation.preferred_class_id,
            preferred_group_id=reservation.preferred_group_id,
            group_name=reservation.group_name,
            preferred_course_id=reservation.preferred_course_id,
            course_name=reservation.course_name,
            group_fee=reservation.group_fee or reservation.tuition_fee,
            course_fee=reservation.course_fee or Decimal("0"),
            book_fee=reservation.book_fee,
            total_tuition_fee=tuition,
            tuition_concession=reservation.tuition_concession,
            transport_required=reservation.transport_required,
            preferred_transport_id=reservation.preferred_transport_id,
            preferred_distance_slab_id=reservation.preferred_distance_slab_id,
            pickup_point=reservation.pickup_point,
            transport_fee=reservation.transport_fee,
            transport_concession=reservation.transport_concession,
            status=reservation.status.value,
            referred_by=reservation.referred_by,
            remarks=reservation.remarks,
            reservation_date=reservation.reservation_date,
            admission_fee=admission_fee,
        )


ADAPTERS: dict[BranchType, type[BranchAdapter]] = {
    BranchType.SCHOOL: SchoolAdapter,
    BranchType.COLLEGE: CollegeAdapter,
}


def get_adapter(http: httpx.AsyncClient, context: AppContext) -> BranchAdapter:
    """Adapter for the context's branch type."""
    return ADAPTERS[context.branch_type](ErpClient(http, context))
