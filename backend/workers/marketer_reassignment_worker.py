import asyncio
import logging

from config.env import REASSIGNMENT_SWEEP_INTERVAL_SECONDS
from database import get_db
from utils.marketers import reassign_expired_orders

logger = logging.getLogger(__name__)


async def marketer_reassignment_worker():
    db = get_db()

    while True:
        try:
            await reassign_expired_orders(db)
        except Exception:
            logger.exception("MARKETER_REASSIGNMENT_WORKER_ERROR")

        await asyncio.sleep(REASSIGNMENT_SWEEP_INTERVAL_SECONDS)
