import asyncio
import logging

from config.env import WITHDRAWAL_SWEEP_INTERVAL_SECONDS
from database import get_db
from utils.withdrawals import process_pending_withdrawals

logger = logging.getLogger(__name__)


async def withdrawal_sweep_worker():
    db = get_db()

    while True:
        try:
            # no-op outside the end-of-month window
            await process_pending_withdrawals(db)
        except Exception:
            logger.exception("WITHDRAWAL_SWEEP_WORKER_ERROR")

        await asyncio.sleep(WITHDRAWAL_SWEEP_INTERVAL_SECONDS)
