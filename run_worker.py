"""
Scheduled Task Background Worker Runner
Run this as a separate process: python run_worker.py
"""

import asyncio
import logging
import sys

from crewflow.workers.task_worker import run_task_worker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("🚀 Starting scheduled task worker...")
    try:
        asyncio.run(run_task_worker())
    except KeyboardInterrupt:
        logger.info("👋 Task worker stopped by user")
    except Exception as e:
        logger.error(f"❌ Task worker crashed: {e}")
        sys.exit(1)
