"""Enrollment detail panel: review, edit, enroll, collect the admission fee.

A panel wraps one reservation while an operator works on it::

    VIEW -> EDIT -> VIEW            (save or cancel)
    VIEW -> ENROLLING -> PAYMENT    (student created)
    PAYMENT -> COMPLETED            (fee paid, or payment failed)
    any -> CLOSED

Operations that talk to the ERP hold the panel lock, so one panel never has
two writes in flight. ERP calls run as tasks that ``close()`` cancels; a
result that arrives after close is discarded with ``PanelClosedError``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar
from uuid import UUID, uuid4

from pydantic import ValidationError

from admissions.core.config import settings
from admissions.core.context import BranchType
from admissions.core.exceptions import (
    AdmissionsError,
    PanelClosedError,
    PanelStateError,
    ReservationValidationError,
    ResponseShapeError,
)
from admissions.models.journal import LifecycleEventType
from admissions.schemas.journal import LifecycleEventCreate
from admissions.schemas.panel import Notice, NoticeVariant, PanelResponse, PanelState
from admissions.schemas.payment import (
    PayByStudentRequest,
    PaymentContext,
    PaymentDetail,
    PaymentMethod,
    PaymentPurpose,
)
from admissions.schemas.reservation import (
    IDENTITY_FIELDS,
    LOCKED_FEE_FIELDS,
    SERVER_OWNED_FIELDS,
    Reservation,
    ReservationStatus,
    collect_errors,
    validate_draft,
)
from admissions.schemas.student import StudentCreated
from admissions.schemas.validators import truncate_aadhar_input
from admissions.services.branches import BranchAdapter
from admissions.services.cache import CacheSynchronizer
from admissions.services.receipts import Receipt, ReceiptStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

ADMISSION_FEE_REMARKS = "Admission fee payment"


class EnrollmentPanel:
    """One reservation on its way to an enrolled, paid-up student."""

    def __init__(
        self,
        adapter: BranchAdapter,
        synchronizer: CacheSynchronizer,
        receipts: ReceiptStore,
        *,
        admission_fee: Decimal | None = None,
    ) -> None:
        self.id: UUID = uuid4()
        self.adapter = adapter
        self.synchronizer = synchronizer
        self.receipts = receipts
        self.default_admission_fee = (
            settings.DEFAULT_ADMISSION_FEE if admission_fee is None else admission_fee
        )

        self.state = PanelState.VIEW
        self.snapshot: Reservation | None = None
        self.draft: Reservation | None = None
        self.admission_fee = self.default_admission_fee
        self.student: StudentCreated | None = None
        self.receipt: Receipt | None = None
        self.errors: dict[str, str] = {}
        self.notices: list[Notice] = []

        self._events: list[LifecycleEventCreate] = []
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    # ============== Derived state ==============

    @property
    def branch_type(self) -> BranchType:
        return self.adapter.branch_type

    @property
    def closed(self) -> bool:
        return self.state == PanelState.CLOSED

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def is_enrolled(self) -> bool:
        return self.snapshot is not None and self.snapshot.is_enrolled

    @property
    def fee_paid(self) -> bool:
        return self.snapshot is not None and self.snapshot.admission_fee_paid

    @property
    def fee_locked(self) -> bool:
        return self.snapshot is not None and self.snapshot.concession_lock

    @property
    def can_edit(self) -> bool:
        return self.state == PanelState.VIEW and self.snapshot is not None and not self.is_enrolled

    @property
    def can_enroll(self) -> bool:
        return (
            self.state == PanelState.VIEW
            and self.snapshot is not None
            and self.snapshot.can_enroll
        )

    # ============== Loading ==============

    async def load(self, reservation_id: int) -> Reservation:
        """Load the canonical record and show it read-only."""
        async with self._lock:
            self._ensure_open()
            self.snapshot = await self._call(self.adapter.get_reservation(reservation_id))
            self.draft = None
            self.errors = {}
            self.admission_fee = self.default_admission_fee
            self.state = PanelState.VIEW
            return self.snapshot

    # ============== Editing ==============

    def begin_edit(self) -> None:
        self._ensure_idle()
        self._require(PanelState.VIEW)
        if self.is_enrolled:
            raise PanelStateError("Enrolled reservations can no longer be edited")
        self.draft = self.snapshot.model_copy(deep=True)
        self.errors = {}
        self.state = PanelState.EDIT

    def set_field(self, name: str, value: Any) -> None:
        self.update_fields({name: value})

    def update_fields(self, fields: dict[str, Any]) -> None:
        """Apply edits to the draft; all or nothing."""
        self._ensure_idle()
        self._require(PanelState.EDIT)

        model = type(self.draft)
        data = self.draft.model_dump()
        rejected: dict[str, str] = {}
        for name, value in fields.items():
            if name not in model.model_fields or name in SERVER_OWNED_FIELDS:
                rejected[name] = "Field cannot be edited"
                continue
            if self.draft.concession_lock and name in LOCKED_FEE_FIELDS:
                rejected[name] = "Locked after concession approval"
                continue
            if name in IDENTITY_FIELDS:
                value = truncate_aadhar_input(value)
            data[name] = value
        if rejected:
            raise ReservationValidationError(rejected)

        try:
            self.draft = model.model_validate(data)
        except ValidationError as exc:
            raise ReservationValidationError(collect_errors(exc)) from exc
        for name in fields:
            self.errors.pop(name, None)

    def cancel_edit(self) -> None:
        """Drop the draft and go back to the last loaded record."""
        self._ensure_idle()
        self._require(PanelState.EDIT)
        self.draft = None
        self.errors = {}
        self.state = PanelState.VIEW

    async def save(self) -> Reservation:
        """Validate and send the draft; stays in EDIT with the draft on failure."""
        async with self._lock:
            self._ensure_open()
            self._require(PanelState.EDIT)

            errors = validate_draft(self.draft)
            if errors:
                self.errors = errors
                self._notify("Validation Failed", "Please fix the highlighted fields.", NoticeVariant.DESTRUCTIVE)
                raise ReservationValidationError(errors)

            draft = self.draft
            try:
                await self._call(self.adapter.update_reservation(draft))
                fresh = await self._call(self.adapter.get_reservation(draft.reservation_id))
            except PanelClosedError:
                raise
            except AdmissionsError as exc:
                self._notify("Update Failed", exc.message, NoticeVariant.DESTRUCTIVE)
                raise

            self.snapshot = fresh
            self.draft = None
            self.errors = {}
            self.state = PanelState.VIEW
            await self.synchronizer.refresh()
            self._record(LifecycleEventType.RESERVATION_UPDATED)
            self._notify(
                "Reservation Updated",
                "Reservation details have been updated successfully.",
                NoticeVariant.SUCCESS,
            )
            return fresh

    # ============== Enrollment ==============

    async def enroll(self) -> StudentCreated:
        """Create the student record from the current snapshot."""
        async with self._lock:
            self._ensure_open()
            self._require(PanelState.VIEW)
            snapshot = self.snapshot
            if snapshot.is_enrolled:
                raise PanelStateError("Student is already enrolled")
            if snapshot.status != ReservationStatus.CONFIRMED:
                raise PanelStateError("Only confirmed reservations can be enrolled")

            self.state = PanelState.ENROLLING
            try:
                student = await self._call(
                    self.adapter.create_student(snapshot, self.admission_fee)
                )
            except PanelClosedError:
                raise
            except ResponseShapeError as exc:
                self._enrollment_failed("Enrollment Error", exc)
                raise
            except AdmissionsError as exc:
                self._enrollment_failed("Enrollment Failed", exc)
                raise

            self.student = student
            self.snapshot = snapshot.model_copy(update={"is_enrolled": True})
            self.state = PanelState.COMPLETED if self.fee_paid else PanelState.PAYMENT
            self._record(
                LifecycleEventType.STUDENT_ENROLLED,
                student_id=student.student_id,
                admission_no=student.admission_no or None,
            )
            self._notify(
                "Student Enrolled Successfully",
                f"Student enrolled with admission number {student.admission_no}"
                if student.admission_no
                else "Student enrolled successfully.",
                NoticeVariant.SUCCESS,
            )
            logger.info(
                "Enrolled %s reservation %s as student %s (%s)",
                self.branch_type.value,
                snapshot.reservation_id,
                student.student_id,
                student.admission_no,
            )

            await self._synchronize(lambda fresh: fresh.is_enrolled)
            return student

    def _enrollment_failed(self, title: str, exc: AdmissionsError) -> None:
        self.state = PanelState.VIEW
        self._notify(title, exc.message, NoticeVariant.DESTRUCTIVE)
        self._record(LifecycleEventType.ENROLLMENT_FAILED, message=exc.message)

    # ============== Admission fee ==============

    def set_admission_fee(self, amount: Decimal | int | str) -> None:
        self._ensure_idle()
        self._require(PanelState.VIEW, PanelState.EDIT, PanelState.PAYMENT)
        if self.fee_paid:
            raise PanelStateError("Admission fee already paid")
        try:
            value = Decimal(str(amount))
        except InvalidOperation as exc:
            raise ReservationValidationError({"admission_fee": "Enter a valid amount"}) from exc
        if not value.is_finite() or value <= 0:
            raise ReservationValidationError({"admission_fee": "Admission fee must be greater than 0"})
        self.admission_fee = value.quantize(Decimal("0.01"))

    async def pay(self, payment_method: PaymentMethod = PaymentMethod.CASH) -> PaymentContext:
        """
        Collect the admission fee for the student just created.

        Either way the payment step ends: on failure the student stays
        enrolled without an admission income and the error is reported.
        """
        async with self._lock:
            self._ensure_open()
            self._require(PanelState.PAYMENT)
            if self.fee_paid:
                raise PanelStateError("Admission fee already paid")

            request = PayByStudentRequest(
                details=[
                    PaymentDetail(
                        purpose=PaymentPurpose.ADMISSION_FEE,
                        paid_amount=self.admission_fee,
                        payment_method=payment_method,
                    )
                ],
                remarks=ADMISSION_FEE_REMARKS,
            )
            try:
                context = await self._call(
                    self.adapter.pay_by_student(self.student.student_id, request)
                )
            except PanelClosedError:
                raise
            except AdmissionsError as exc:
                self.state = PanelState.COMPLETED
                self._notify("Payment Failed", exc.message, NoticeVariant.DESTRUCTIVE)
                self._record(
                    LifecycleEventType.PAYMENT_FAILED,
                    student_id=self.student.student_id,
                    amount=self.admission_fee,
                    payment_method=payment_method.value,
                    message=exc.message,
                )
                raise

            self.snapshot = self.snapshot.model_copy(update={"admission_income_id": context.income_id})
            self.state = PanelState.COMPLETED
            self._record(
                LifecycleEventType.ADMISSION_FEE_PAID,
                student_id=self.student.student_id,
                admission_no=self.student.admission_no or None,
                amount=self.admission_fee,
                payment_method=payment_method.value,
                receipt_no=context.receipt_no,
            )

            try:
                content, media_type = await self._call(self.adapter.fetch_receipt(context.income_id))
            except PanelClosedError:
                raise
            except AdmissionsError as exc:
                logger.warning("Receipt for income %s unavailable: %s", context.income_id, exc.message)
                self._notify(
                    "Payment Successful",
                    "Admission fee payment processed successfully",
                    NoticeVariant.SUCCESS,
                )
            else:
                self.receipt = self.receipts.put(context.income_id, context.receipt_no, content, media_type)
                self._notify(
                    "Payment successful",
                    f"Receipt {context.receipt_no} is ready." if context.receipt_no else "Receipt is ready.",
                    NoticeVariant.SUCCESS,
                )

            await self._synchronize(lambda fresh: fresh.admission_income_id is not None)
            return context

    def release_receipt(self) -> bool:
        if self.receipt is None:
            return False
        released = self.receipts.release(self.receipt.token)
        self.receipt = None
        return released

    # ============== Lifecycle ==============

    def close(self) -> None:
        """Close the panel, cancelling in-flight calls and releasing the receipt."""
        if self.closed:
            return
        self.state = PanelState.CLOSED
        for task in list(self._tasks):
            task.cancel()
        self.release_receipt()
        self.draft = None

    def drain_events(self) -> list[LifecycleEventCreate]:
        """Hand over events recorded since the last call."""
        events, self._events = self._events, []
        return events

    def describe(self) -> PanelResponse:
        return PanelResponse(
            panel_id=self.id,
            branch_type=self.branch_type,
            state=self.state,
            reservation=None if self.snapshot is None else self.snapshot.model_dump(mode="json"),
            draft=None if self.draft is None else self.draft.model_dump(mode="json"),
            can_edit=self.can_edit,
            can_enroll=self.can_enroll,
            is_enrolled=self.is_enrolled,
            fee_locked=self.fee_locked,
            fee_paid=self.fee_paid,
            admission_fee=self.admission_fee,
            student=self.student,
            receipt=None if self.receipt is None else self.receipt.info(),
            errors=self.errors,
            notices=self.notices,
        )

    # ============== Internals ==============

    async def _call(self, awaitable: Awaitable[T]) -> T:
        self._ensure_open()
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        try:
            result = await task
        except asyncio.CancelledError:
            if self.closed:
                raise PanelClosedError("Panel was closed while a request was in flight") from None
            raise
        except Exception as exc:
            if self.closed:
                raise PanelClosedError("Panel was closed while a request was in flight") from exc
            raise
        finally:
            self._tasks.discard(task)
        self._ensure_open()
        return result

    async def _synchronize(self, visible: Callable[[Reservation], bool]) -> bool:
        reservation_id = self.snapshot.reservation_id

        async def confirm() -> bool:
            fresh = await self._call(self.adapter.get_reservation(reservation_id))
            if not visible(fresh):
                return False
            self.snapshot = fresh
            return True

        return await self.synchronizer.after_write(confirm)

    def _ensure_open(self) -> None:
        if self.closed:
            raise PanelClosedError()

    def _ensure_idle(self) -> None:
        self._ensure_open()
        if self._lock.locked():
            raise PanelStateError("Another operation is in progress")

    def _require(self, *states: PanelState) -> None:
        if self.snapshot is None:
            raise PanelStateError("Reservation not loaded")
        if self.state not in states:
            raise PanelStateError(
                f"Not allowed while panel is {self.state.value}"
            )

    def _notify(self, title: str, description: str, variant: NoticeVariant) -> None:
        self.notices.append(Notice(title=title, description=description, variant=variant))

    def _record(self, event_type: LifecycleEventType, **fields: Any) -> None:
        self._events.append(
            LifecycleEventCreate(
                event_type=event_type,
                branch_type=self.branch_type,
                reservation_id=self.snapshot.reservation_id,
                **fields,
            )
        )
