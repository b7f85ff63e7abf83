"""
Scheduled jobs
Links unlock codes back to transactions whose back-link write failed
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.database import async_session
from app.core.config import get_settings
from app.models import Transaction, UnlockCode
import logging

logger = logging.getLogger(__name__)
settings = get_settings()

scheduler = AsyncIOScheduler()


async def reconcile_orphaned_codes(db: AsyncSession) -> int:
    """
    Fill in Transaction.unlock_code_id where a code points at the
    transaction but the reverse reference is missing.

    Returns the number of transactions linked.
    """
    stmt = (
        select(Transaction, UnlockCode)
        .join(UnlockCode, UnlockCode.transaction_id == Transaction.id)
        .where(Transaction.unlock_code_id.is_(None))
        .order_by(UnlockCode.id)
    )
    result = await db.execute(stmt)

    linked = 0
    for transaction, unlock_code in result.all():
        # Only one code is ever issued per transaction; keep the first if not
        if transaction.unlock_code_id is not None:
            continue
        transaction.unlock_code_id = unlock_code.id
        linked += 1

    if linked:
        await db.commit()
        logger.info(f"Reconciliation linked {linked} orphaned unlock codes")
    return linked


async def run_reconciliation():
    """Scheduler entry point, one session per run"""
    async with async_session() as db:
        try:
            await reconcile_orphaned_codes(db)
        except Exception:
            await db.rollback()
            logger.exception("Error while reconciling orphaned unlock codes")


def start_scheduler():
    """Start the scheduler"""
    scheduler.add_job(
        run_reconciliation,
        trigger=IntervalTrigger(minutes=settings.reconcile_interval_minutes),
        id="reconcile_orphaned_codes",
        name="Reconcile orphaned unlock codes",
        replace_existing=True
    )

    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    scheduler.shutdown()
    logger.info("Scheduler stopped")
