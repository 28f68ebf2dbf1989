import asyncio
from datetime import date, datetime, timezone
from typing import Optional

from assetdesk.core.config import settings
from assetdesk.core.logging import get_logger, loan_request_context
from assetdesk.schemas.loan import LoanRequest, LoanRequestStatus
from assetdesk.services.loan import mark_overdue
from assetdesk.stores.registry import Stores

logger = get_logger("services.overdue")


def is_past_due(loan: LoanRequest, today: date) -> bool:
    due_dates = [item.return_date for item in loan.items if item.return_date]
    return bool(due_dates) and min(due_dates) < today


async def check_and_mark_overdue(stores: Stores, today: Optional[date] = None) -> int:
    """Mark on-loan requests past their earliest return date as overdue. Returns the count."""
    today = today or datetime.now(timezone.utc).date()

    candidates = [
        loan for loan in stores.loan_requests.items
        if loan.status == LoanRequestStatus.ON_LOAN and is_past_due(loan, today)
    ]
    for loan in candidates:
        with loan_request_context(loan.id):
            await mark_overdue(stores, loan.id)

    if candidates:
        logger.info(f"Overdue check completed: {len(candidates)} loan requests marked overdue")
    return len(candidates)


async def overdue_checker_loop(stores: Stores) -> None:
    """Background loop that periodically checks for overdue loan requests."""
    logger.info(
        f"Overdue checker started (interval={settings.OVERDUE_CHECK_INTERVAL}s)"
    )
    while True:
        try:
            await asyncio.sleep(settings.OVERDUE_CHECK_INTERVAL)
            await check_and_mark_overdue(stores)
        except asyncio.CancelledError:
            logger.info("Overdue checker loop cancelled")
            break
        except Exception as e:
            logger.error(f"Error in overdue checker loop: {e}")
            # Continue running despite errors
            await asyncio.sleep(60)
