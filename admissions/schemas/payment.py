"""Payment schemas."""

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from admissions.core.exceptions import ResponseShapeError
from admissions.schemas.validators import Amount


class PaymentPurpose(str, Enum):
    """What an income record pays for."""

    APPLICATION_FEE = "APPLICATION_FEE"
    ADMISSION_FEE = "ADMISSION_FEE"
    BOOK_FEE = "BOOK_FEE"
    TUITION_FEE = "TUITION_FEE"
    TRANSPORT_FEE = "TRANSPORT_FEE"
    OTHER = "OTHER"


class PaymentMethod(str, Enum):
    """How payment was received."""

    CASH = "CASH"
    ONLINE = "ONLINE"


class PaymentDetail(BaseModel):
    """One line of a fee payment."""

    purpose: PaymentPurpose
    paid_amount: Amount = Field(gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH


class PayByStudentRequest(BaseModel):
    """Body of the pay-by-student call."""

    details: list[PaymentDetail] = Field(min_length=1)
    remarks: str | None = None


class PaymentContext(BaseModel):
    """Income created by a successful payment."""

    income_id: int = Field(gt=0)
    receipt_no: str | None = None


def parse_payment_context(raw: Any) -> PaymentContext:
    """Read ``context`` from a payment response (nested under ``data`` or flat)."""
    if not isinstance(raw, dict):
        raise ResponseShapeError("Unexpected response while recording payment.")

    data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
    context = data.get("context") or raw.get("context")
    if not isinstance(context, dict):
        raise ResponseShapeError("Payment successful but income_id not found in response context")

    try:
        return PaymentContext.model_validate(context)
    except ValidationError as exc:
        raise ResponseShapeError(
            "Payment successful but income_id not found in response context"
        ) from exc


class ReceiptInfo(BaseModel):
    """Receipt metadata exposed to clients; the PDF is fetched separately."""

    token: str
    income_id: int
    receipt_no: str | None
    media_type: str
    size: int


class AdmissionFeeUpdate(BaseModel):
    """Operator-entered admission fee."""

    amount: Decimal = Field(gt=0, decimal_places=2)


class PaymentRequest(BaseModel):
    """Admission fee collection request."""

    payment_method: PaymentMethod = PaymentMethod.CASH
