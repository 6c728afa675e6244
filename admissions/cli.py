"""CLI commands for management tasks."""

import asyncio
import sys
from decimal import Decimal, InvalidOperation

import httpx

from admissions.core.config import settings
from admissions.core.context import AppContext, BranchType
from admissions.core.database import Base, async_session_maker, engine
from admissions.core.exceptions import AdmissionsError
from admissions.core.logging_config import configure_logging
from admissions.schemas.payment import PaymentMethod
from admissions.services import journal as journal_service
from admissions.services.branches import get_adapter
from admissions.services.cache import QueryCache
from admissions.services.panels import PanelRegistry
from admissions.services.receipts import ReceiptStore

USAGE = """Usage: python -m admissions.cli <command>
Commands:
  init-db
  enroll <school|college> <reservation_id> [admission_fee] [CASH|ONLINE]"""


async def init_db() -> None:
    """Create the journal tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print("✓ Journal tables created")


async def enroll(
    branch_type: BranchType,
    reservation_id: int,
    admission_fee: Decimal | None,
    payment_method: PaymentMethod,
) -> int:
    """Enroll one reservation and collect its admission fee. Returns an exit code."""
    context = AppContext(branch_type=branch_type, access_token=settings.ERP_ACCESS_TOKEN)
    registry = PanelRegistry(QueryCache(), ReceiptStore())

    async with httpx.AsyncClient(
        base_url=settings.ERP_API_URL,
        timeout=settings.ERP_TIMEOUT_SECONDS,
    ) as http:
        try:
            panel = await registry.open(get_adapter(http, context), reservation_id)
        except AdmissionsError as exc:
            print(f"Error: could not load reservation {reservation_id}: {exc.message}")
            return 1

        reservation = panel.snapshot
        print(f"Reservation {reservation.reservation_no}: {reservation.student_name} ({reservation.status.value})")

        exit_code = 0
        try:
            if admission_fee is not None:
                panel.set_admission_fee(admission_fee)
            student = await panel.enroll()
            print(f"✓ Enrolled, admission no: {student.admission_no or '-'}")

            if panel.fee_paid:
                print("  Admission fee already paid")
            else:
                context_info = await panel.pay(payment_method)
                print(f"✓ Admission fee {panel.admission_fee} paid, receipt: {context_info.receipt_no or '-'}")
        except AdmissionsError as exc:
            print(f"Error: {exc.message}")
            exit_code = 1
        finally:
            async with async_session_maker() as db:
                await journal_service.record_events(db, panel.drain_events())
            registry.close_all()

    await engine.dispose()
    return exit_code


def main() -> None:
    """CLI entry point."""
    configure_logging()

    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_db())
    elif command == "enroll":
        if len(sys.argv) not in (4, 5, 6):
            print("Usage: python -m admissions.cli enroll <school|college> <reservation_id> [admission_fee] [CASH|ONLINE]")
            sys.exit(1)

        try:
            branch_type = BranchType(sys.argv[2].lower())
            reservation_id = int(sys.argv[3])
            admission_fee = Decimal(sys.argv[4]) if len(sys.argv) > 4 else None
            payment_method = PaymentMethod(sys.argv[5].upper()) if len(sys.argv) > 5 else PaymentMethod.CASH
        except (ValueError, InvalidOperation) as exc:
            print(f"Error: {exc}")
            sys.exit(1)

        sys.exit(asyncio.run(enroll(branch_type, reservation_id, admission_fee, payment_method)))
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
