"""
Scheduled Task Background Worker
Standalone polling loop for deployments without Redis
"""

import asyncio
import logging

from ..config import TASK_POLL_INTERVAL_SECONDS, TASK_POLL_LIMIT
from ..database import SessionLocal
from ..domain.scheduling.runner import build_task_context, process_due_tasks

logger = logging.getLogger(__name__)


async def run_poll_cycle() -> dict:
    db = SessionLocal()
    try:
        return await process_due_tasks(build_task_context(db), limit=TASK_POLL_LIMIT)
    finally:
        db.close()


async def run_task_worker():
    """
    Main worker loop - one poll cycle every TASK_POLL_INTERVAL_SECONDS
    """
    logger.info("🚀 Starting scheduled task worker...")

    while True:
        try:
            await run_poll_cycle()
        except Exception as e:
            logger.error(f"❌ Error in task worker loop: {e}")
        await asyncio.sleep(TASK_POLL_INTERVAL_SECONDS)
