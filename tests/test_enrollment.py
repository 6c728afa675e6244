"""Tests for the enrollment detail panel."""

import asyncio
from decimal import Decimal

import pytest

from admissions.clients.erp import NETWORK_ERROR_MESSAGE
from admissions.core.exceptions import (
    BackendError,
    PanelClosedError,
    PanelStateError,
    ReservationValidationError,
    ResponseShapeError,
)
from admissions.models.journal import LifecycleEventType
from admissions.schemas.panel import NoticeVariant, PanelState
from admissions.schemas.payment import PaymentMethod
from admissions.services.enrollment import EnrollmentPanel
from tests.erp_stub import ErpStore, make_school_reservation


def event_types(panel: EnrollmentPanel) -> list[str]:
    return [event.event_type for event in panel.drain_events()]


class TestLoad:
    """Tests for opening a reservation."""

    async def test_opens_read_only(self, school_panel: EnrollmentPanel):
        assert school_panel.state == PanelState.VIEW
        assert school_panel.snapshot.student_name == "John Doe"
        assert school_panel.draft is None
        assert school_panel.can_edit
        assert school_panel.can_enroll

    async def test_default_admission_fee(self, school_panel: EnrollmentPanel):
        assert school_panel.admission_fee == Decimal("3000")

    async def test_context_headers_forwarded(self, school_panel: EnrollmentPanel, erp: ErpStore):
        headers = erp.headers[-1]
        assert headers["authorization"] == "Bearer desk-token"
        assert headers["x-branch-id"] == "1"
        assert headers["x-academic-year-id"] == "2024"

    async def test_missing_reservation(self, school_adapter, synchronizer, receipts):
        panel = EnrollmentPanel(school_adapter, synchronizer, receipts)
        with pytest.raises(BackendError) as exc_info:
            await panel.load(404)
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Reservation not found"


class TestEditing:
    """Tests for editing and saving a reservation."""

    async def test_round_trip_edit(self, school_panel: EnrollmentPanel, erp: ErpStore):
        """Test saving changes only the edited field."""
        before = school_panel.snapshot.model_dump(exclude={"student_name"})

        school_panel.begin_edit()
        school_panel.set_field("student_name", "John A. Doe")
        await school_panel.save()

        assert school_panel.state == PanelState.VIEW
        assert school_panel.draft is None
        assert school_panel.snapshot.student_name == "John A. Doe"
        assert school_panel.snapshot.model_dump(exclude={"student_name"}) == before
        assert school_panel.notices[-1].title == "Reservation Updated"
        assert event_types(school_panel) == [LifecycleEventType.RESERVATION_UPDATED]

    async def test_school_update_is_form_data(self, school_panel: EnrollmentPanel, erp: ErpStore):
        school_panel.begin_edit()
        await school_panel.save()

        assert erp.last_update["student_name"] == "John Doe"
        assert erp.last_update["transport_required"] == "false"
        assert erp.last_update["preferred_class_id"] == "3"
        # server-owned fields are not sent
        assert "is_enrolled" not in erp.last_update
        assert "reservation_no" not in erp.last_update
        assert "referred_by" not in erp.last_update

    async def test_siblings_sent_as_json(self, school_panel: EnrollmentPanel, erp: ErpStore):
        school_panel.begin_edit()
        school_panel.set_field("siblings", [{"name": "Mary Doe", "class_name": "Class 4"}])
        await school_panel.save()

        assert erp.reservation("school", 1)["siblings"][0]["name"] == "Mary Doe"
        assert school_panel.snapshot.siblings[0].class_name == "Class 4"

    async def test_invalid_mobile_blocks_save(self, school_panel: EnrollmentPanel, erp: ErpStore):
        school_panel.begin_edit()
        school_panel.set_field("father_or_guardian_mobile", "98765")

        with pytest.raises(ReservationValidationError) as exc_info:
            await school_panel.save()

        assert exc_info.value.errors == {
            "father_or_guardian_mobile": "Mobile number must be exactly 10 digits"
        }
        assert school_panel.state == PanelState.EDIT
        assert school_panel.draft.father_or_guardian_mobile == "98765"
        assert school_panel.errors == exc_info.value.errors
        assert school_panel.notices[-1].variant == NoticeVariant.DESTRUCTIVE
        assert erp.count("PUT", "/reservations/1") == 0

    async def test_editing_field_clears_its_error(self, school_panel: EnrollmentPanel):
        school_panel.begin_edit()
        school_panel.set_field("father_or_guardian_mobile", "98765")
        with pytest.raises(ReservationValidationError):
            await school_panel.save()

        school_panel.set_field("father_or_guardian_mobile", "9876500000")
        assert school_panel.errors == {}

    async def test_backend_failure_keeps_draft(self, school_panel: EnrollmentPanel, erp: ErpStore):
        erp.fail_update = True
        school_panel.begin_edit()
        school_panel.set_field("student_name", "Johnny")

        with pytest.raises(BackendError):
            await school_panel.save()

        assert school_panel.state == PanelState.EDIT
        assert school_panel.draft.student_name == "Johnny"
        assert school_panel.snapshot.student_name == "John Doe"
        assert school_panel.notices[-1].title == "Update Failed"
        assert school_panel.notices[-1].description == "Reservation update rejected"
        assert event_types(school_panel) == []

    async def test_cancel_edit_restores_snapshot(self, school_panel: EnrollmentPanel):
        school_panel.begin_edit()
        school_panel.set_field("student_name", "Someone Else")
        school_panel.cancel_edit()

        assert school_panel.state == PanelState.VIEW
        assert school_panel.draft is None
        assert school_panel.snapshot.student_name == "John Doe"

    async def test_aadhar_truncated_on_input(self, school_panel: EnrollmentPanel):
        school_panel.begin_edit()
        school_panel.set_field("aadhar_no", "1234 5678 9012 3456")
        assert school_panel.draft.aadhar_no == "123456789012"

    async def test_fees_locked_after_concession(self, erp: ErpStore, school_adapter, synchronizer, receipts):
        erp.add("school", make_school_reservation(2, concession_lock=True))
        panel = EnrollmentPanel(school_adapter, synchronizer, receipts)
        await panel.load(2)
        assert panel.fee_locked

        panel.begin_edit()
        with pytest.raises(ReservationValidationError) as exc_info:
            panel.update_fields({"tuition_fee": 0, "remarks": "waived"})

        assert exc_info.value.errors == {"tuition_fee": "Locked after concession approval"}
        # all or nothing
        assert panel.draft.remarks is None
        assert panel.draft.tuition_fee == Decimal("25000")

    async def test_server_owned_fields_rejected(self, school_panel: EnrollmentPanel):
        school_panel.begin_edit()
        with pytest.raises(ReservationValidationError) as exc_info:
            school_panel.update_fields({"is_enrolled": True, "unknown": 1})
        assert set(exc_info.value.errors) == {"is_enrolled", "unknown"}

    async def test_bad_value_rejected(self, school_panel: EnrollmentPanel):
        school_panel.begin_edit()
        with pytest.raises(ReservationValidationError) as exc_info:
            school_panel.set_field("preferred_class_id", "abc")
        assert "preferred_class_id" in exc_info.value.errors
        assert school_panel.draft.preferred_class_id == 3

    async def test_set_field_requires_edit(self, school_panel: EnrollmentPanel):
        with pytest.raises(PanelStateError):
            school_panel.set_field("student_name", "X")

    async def test_enrolled_cannot_be_edited(self, erp: ErpStore, school_adapter, synchronizer, receipts):
        erp.add("school", make_school_reservation(3, is_enrolled=True))
        panel = EnrollmentPanel(school_adapter, synchronizer, receipts)
        await panel.load(3)

        assert not panel.can_edit
        with pytest.raises(PanelStateError):
            panel.begin_edit()


class TestEnrollment:
    """Tests for student creation."""

    async def test_happy_path(self, school_panel: EnrollmentPanel, erp: ErpStore):
        """Test enrolling then paying the default fee in cash."""
        student = await school_panel.enroll()

        assert student.student_id == 501
        assert student.admission_no == "STU2024999"
        assert school_panel.state == PanelState.PAYMENT
        assert school_panel.is_enrolled
        assert school_panel.notices[-1].title == "Student Enrolled Successfully"
        assert erp.last_student_payload["admission_fee"] == 3000.0
        assert erp.last_student_payload["father_or_guardian_name"] == "Richard Doe"

        context = await school_panel.pay(PaymentMethod.CASH)

        assert context.income_id == 9001
        assert erp.last_payment_payload == {
            "details": [
                {"purpose": "ADMISSION_FEE", "paid_amount": 3000.0, "payment_method": "CASH"}
            ],
            "remarks": "Admission fee payment",
        }
        assert school_panel.state == PanelState.COMPLETED
        assert school_panel.fee_paid
        assert school_panel.snapshot.admission_income_id == 9001
        assert school_panel.receipt.receipt_no == "RCP-9001"
        assert school_panel.receipt.content.startswith(b"%PDF")
        assert school_panel.receipt.media_type == "application/pdf"
        assert event_types(school_panel) == [
            LifecycleEventType.STUDENT_ENROLLED,
            LifecycleEventType.ADMISSION_FEE_PAID,
        ]

    async def test_flat_response_accepted(self, school_panel: EnrollmentPanel, erp: ErpStore):
        erp.student_response = "flat"
        student = await school_panel.enroll()
        assert student.student_id == 501
        assert school_panel.state == PanelState.PAYMENT

    async def test_missing_student_id(self, school_panel: EnrollmentPanel, erp: ErpStore):
        """Test a response without student_id stops before payment."""
        erp.student_response = "missing"

        with pytest.raises(ResponseShapeError):
            await school_panel.enroll()

        assert school_panel.state == PanelState.VIEW
        assert school_panel.student is None
        assert school_panel.notices[-1].title == "Enrollment Error"
        assert school_panel.notices[-1].description == (
            "Student created but student_id not received from server."
        )
        assert erp.count("POST", "pay-fee-by-student") == 0
        with pytest.raises(PanelStateError):
            await school_panel.pay()
        assert event_types(school_panel) == [LifecycleEventType.ENROLLMENT_FAILED]

    async def test_failure_envelope_allows_retry(self, school_panel: EnrollmentPanel, erp: ErpStore):
        erp.student_response = "failure"

        with pytest.raises(BackendError):
            await school_panel.enroll()

        assert school_panel.state == PanelState.VIEW
        assert school_panel.notices[-1].title == "Enrollment Failed"
        assert school_panel.notices[-1].description == "Class capacity exceeded"
        assert school_panel.can_enroll

        erp.student_response = "nested"
        await school_panel.enroll()
        assert school_panel.state == PanelState.PAYMENT

    async def test_network_failure(self, school_panel: EnrollmentPanel, erp: ErpStore):
        erp.unreachable.add("/students")
        with pytest.raises(BackendError) as exc_info:
            await school_panel.enroll()
        assert exc_info.value.message == NETWORK_ERROR_MESSAGE
        assert school_panel.state == PanelState.VIEW

    async def test_pending_reservation_rejected(self, erp: ErpStore, school_adapter, synchronizer, receipts):
        erp.add("school", make_school_reservation(4, status="PENDING"))
        panel = EnrollmentPanel(school_adapter, synchronizer, receipts)
        await panel.load(4)

        assert not panel.can_enroll
        with pytest.raises(PanelStateError):
            await panel.enroll()
        assert erp.count("POST", "/students") == 0

    async def test_enroll_once(self, school_panel: EnrollmentPanel, erp: ErpStore):
        await school_panel.enroll()
        with pytest.raises(PanelStateError):
            await school_panel.enroll()
        assert erp.count("POST", "/students") == 1

    async def test_enroll_only_from_view(self, school_panel: EnrollmentPanel):
        school_panel.begin_edit()
        with pytest.raises(PanelStateError):
            await school_panel.enroll()

    async def test_already_paid_skips_payment(self, erp: ErpStore, school_adapter, synchronizer, receipts):
        erp.add("school", make_school_reservation(5, admission_income_id=8000))
        panel = EnrollmentPanel(school_adapter, synchronizer, receipts)
        await panel.load(5)

        await panel.enroll()
        assert panel.state == PanelState.COMPLETED
        assert panel.fee_paid
        with pytest.raises(PanelStateError):
            await panel.pay()

    async def test_write_confirmed_by_refetch(self, school_panel: EnrollmentPanel, erp: ErpStore):
        reads_before = erp.count("GET", "/reservations/1")
        await school_panel.enroll()
        assert erp.count("GET", "/reservations/1") == reads_before + 1


class TestAdmissionFee:
    """Tests for collecting the admission fee."""

    async def test_custom_amount(self, school_panel: EnrollmentPanel, erp: ErpStore):
        await school_panel.enroll()
        school_panel.set_admission_fee("3500.5")
        assert school_panel.admission_fee == Decimal("3500.50")

        await school_panel.pay(PaymentMethod.ONLINE)
        detail = erp.last_payment_payload["details"][0]
        assert detail["paid_amount"] == 3500.5
        assert detail["payment_method"] == "ONLINE"

    @pytest.mark.parametrize("amount", [0, -10, "abc", "NaN"])
    async def test_invalid_amount(self, school_panel: EnrollmentPanel, amount):
        await school_panel.enroll()
        with pytest.raises(ReservationValidationError) as exc_info:
            school_panel.set_admission_fee(amount)
        assert "admission_fee" in exc_info.value.errors
        assert school_panel.admission_fee == Decimal("3000")

    async def test_payment_failure_leaves_student_enrolled(self, school_panel: EnrollmentPanel, erp: ErpStore):
        """Test a failed payment closes the payment step without rolling back."""
        await school_panel.enroll()
        erp.unreachable.add("pay-fee-by-student")

        with pytest.raises(BackendError):
            await school_panel.pay()

        assert school_panel.state == PanelState.COMPLETED
        assert school_panel.is_enrolled
        assert not school_panel.fee_paid
        assert school_panel.snapshot.admission_income_id is None
        assert school_panel.receipt is None
        assert school_panel.notices[-1].title == "Payment Failed"
        assert erp.reservation("school", 1)["is_enrolled"] is True
        with pytest.raises(PanelStateError):
            await school_panel.pay()
        assert event_types(school_panel) == [
            LifecycleEventType.STUDENT_ENROLLED,
            LifecycleEventType.PAYMENT_FAILED,
        ]

    async def test_rejected_payment(self, school_panel: EnrollmentPanel, erp: ErpStore):
        await school_panel.enroll()
        erp.fail_payment = True
        with pytest.raises(BackendError) as exc_info:
            await school_panel.pay()
        assert exc_info.value.status_code == 503
        assert school_panel.notices[-1].description == "Payment service unavailable"

    async def test_receipt_failure_keeps_payment(self, school_panel: EnrollmentPanel, erp: ErpStore):
        await school_panel.enroll()
        erp.fail_receipt = True

        await school_panel.pay()

        assert school_panel.state == PanelState.COMPLETED
        assert school_panel.fee_paid
        assert school_panel.receipt is None
        assert school_panel.notices[-1].title == "Payment Successful"

    async def test_fee_locked_once_paid(self, school_panel: EnrollmentPanel):
        await school_panel.enroll()
        await school_panel.pay()
        with pytest.raises(PanelStateError):
            school_panel.set_admission_fee(100)

    async def test_release_receipt(self, school_panel: EnrollmentPanel, receipts):
        await school_panel.enroll()
        await school_panel.pay()
        assert len(receipts) == 1

        assert school_panel.release_receipt() is True
        assert len(receipts) == 0
        assert school_panel.receipt is None
        assert school_panel.release_receipt() is False


class TestClose:
    """Tests for closing a panel."""

    async def test_close_releases_receipt(self, school_panel: EnrollmentPanel, receipts):
        await school_panel.enroll()
        await school_panel.pay()
        school_panel.close()

        assert school_panel.state == PanelState.CLOSED
        assert len(receipts) == 0

    async def test_close_cancels_in_flight_enrollment(self, school_panel: EnrollmentPanel, erp: ErpStore):
        erp.create_gate = asyncio.Event()
        task = asyncio.create_task(school_panel.enroll())
        await erp.create_started.wait()

        school_panel.close()

        with pytest.raises(PanelClosedError):
            await task
        assert school_panel.state == PanelState.CLOSED
        assert school_panel.student is None
        assert erp.reservation("school", 1)["is_enrolled"] is False

    async def test_busy_panel_rejects_edits(self, school_panel: EnrollmentPanel, erp: ErpStore):
        erp.create_gate = asyncio.Event()
        task = asyncio.create_task(school_panel.enroll())
        await erp.create_started.wait()

        with pytest.raises(PanelStateError):
            school_panel.set_admission_fee(100)

        erp.create_gate.set()
        await task
        assert school_panel.state == PanelState.PAYMENT

    async def test_closed_panel_rejects_operations(self, school_panel: EnrollmentPanel):
        school_panel.close()
        with pytest.raises(PanelClosedError):
            await school_panel.load(1)
        with pytest.raises(PanelClosedError):
            school_panel.begin_edit()

    async def test_close_is_idempotent(self, school_panel: EnrollmentPanel):
        school_panel.close()
        school_panel.close()
        assert school_panel.closed


class TestCollegeBranch:
    """Tests for the college variant of the workflow."""

    async def test_loads_group_and_course(self, college_panel: EnrollmentPanel):
        assert college_panel.snapshot.group_name == "MPC"
        assert college_panel.snapshot.preferred_course_id == 5

    async def test_enroll_payload(self, college_panel: EnrollmentPanel, erp: ErpStore):
        await college_panel.enroll()

        payload = erp.last_student_payload
        assert payload["father_name"] == "Richard Doe"
        assert payload["mother_mobile"] == "9123456780"
        assert payload["preferred_group_id"] == 2
        assert payload["preferred_course_id"] == 5
        assert payload["total_tuition_fee"] == 50000.0
        assert payload["admission_fee"] == 3000.0
        assert "father_or_guardian_name" not in payload
        assert college_panel.state == PanelState.PAYMENT

    async def test_update_sent_as_json(self, college_panel: EnrollmentPanel, erp: ErpStore):
        college_panel.begin_edit()
        college_panel.set_field("father_or_guardian_mobile", "9000000001")
        await college_panel.save()

        assert erp.reservation("college", 1)["father_or_guardian_mobile"] == "9000000001"
        assert college_panel.snapshot.father_or_guardian_mobile == "9000000001"
        assert erp.last_update["preferred_group_id"] == 2

    async def test_course_required(self, college_panel: EnrollmentPanel, erp: ErpStore):
        college_panel.begin_edit()
        college_panel.set_field("preferred_course_id", None)

        with pytest.raises(ReservationValidationError) as exc_info:
            await college_panel.save()

        assert exc_info.value.errors == {
            "preferred_course_id": "Course is required when a group is selected"
        }
        assert erp.count("PUT", "/college/reservations/1") == 0

    async def test_full_lifecycle(self, college_panel: EnrollmentPanel, erp: ErpStore):
        await college_panel.enroll()
        await college_panel.pay()
        assert college_panel.state == PanelState.COMPLETED
        assert erp.reservation("college", 1)["admission_income_id"] == 9001
        assert erp.count("GET", "/college/income/9001/regenerate-receipt") == 1
