"""In-memory receipt documents with explicit release."""

import logging
from uuid import uuid4

from admissions.schemas.payment import ReceiptInfo

logger = logging.getLogger(__name__)


class Receipt:
    """A receipt PDF held until it is released."""

    def __init__(
        self,
        token: str,
        income_id: int,
        receipt_no: str | None,
        content: bytes,
        media_type: str,
    ) -> None:
        self.token = token
        self.income_id = income_id
        self.receipt_no = receipt_no
        self.content = content
        self.media_type = media_type

    @property
    def filename(self) -> str:
        return f"receipt-{self.receipt_no or self.income_id}.pdf"

    def info(self) -> ReceiptInfo:
        return ReceiptInfo(
            token=self.token,
            income_id=self.income_id,
            receipt_no=self.receipt_no,
            media_type=self.media_type,
            size=len(self.content),
        )


class ReceiptStore:
    """Holds receipt bytes by token; nothing is kept after ``release``."""

    def __init__(self) -> None:
        self._receipts: dict[str, Receipt] = {}

    def put(
        self,
        income_id: int,
        receipt_no: str | None,
        content: bytes,
        media_type: str,
    ) -> Receipt:
        receipt = Receipt(uuid4().hex, income_id, receipt_no, content, media_type)
        self._receipts[receipt.token] = receipt
        return receipt

    def release(self, token: str) -> bool:
        receipt = self._receipts.pop(token, None)
        if receipt is None:
            return False
        logger.debug("Released receipt %s (%d bytes)", token, len(receipt.content))
        return True

    def __len__(self) -> int:
        return len(self._receipts)
