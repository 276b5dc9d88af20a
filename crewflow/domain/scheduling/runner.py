"""
Poll cycle

Drains due tasks once: reclaim expired claims, fetch due work oldest-first,
claim each task, run its handler and settle it. Safe to call from a one-shot
HTTP cron trigger or from a long-running worker.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...config import TASK_POLL_LIMIT
from ...models_scheduler import TaskStatus
from ...services.notification_service import Notifier
from ..alerts.service import AlertService, AlertType
from ..assignments.service import AssignmentCascade
from ..rain_day.reschedule import JobRescheduler
from .handlers import InvalidTaskError, TaskContext, TaskDispatcher
from .scheduler import TaskScheduler
from .sequencer import FollowUpSequencer

logger = logging.getLogger(__name__)


def build_task_context(db: Session, notifier=None, scheduler: Optional[TaskScheduler] = None) -> TaskContext:
    """Wire the production collaborators around one session"""
    notifier = notifier or Notifier(db)
    scheduler = scheduler or TaskScheduler(db)
    sequencer = FollowUpSequencer(db, scheduler)
    cascade = AssignmentCascade(
        db,
        notifier,
        rescheduler=JobRescheduler(db, notifier, sequencer=sequencer, now_fn=scheduler.now),
        sequencer=sequencer,
        now_fn=scheduler.now,
    )
    return TaskContext(db=db, notifier=notifier, scheduler=scheduler, sequencer=sequencer, cascade=cascade)


async def process_due_tasks(
    ctx: TaskContext,
    dispatcher: Optional[TaskDispatcher] = None,
    limit: int = TASK_POLL_LIMIT,
) -> dict:
    """
    Run one poll cycle.

    Returns:
        Summary dict: processed, succeeded, failed, skipped, reclaimed, details
    """
    dispatcher = dispatcher or TaskDispatcher()
    scheduler = ctx.scheduler
    summary = {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0, "reclaimed": 0, "details": []}

    reclaimed = scheduler.reclaim_stale()
    summary["reclaimed"] = len(reclaimed)
    for task_id, status in reclaimed:
        if status == TaskStatus.FAILED.value:
            task = scheduler.repo.get_by_id(ctx.db, task_id)
            _alert_if_failed(
                ctx, task_id, task.task_type, task.task_key, status, task.last_error or "claim expired"
            )
    due_ids = [task.id for task in scheduler.due_tasks(limit)]
    if due_ids:
        logger.info(f"⚙️ Processing {len(due_ids)} due task(s)")

    for task_id in due_ids:
        task = scheduler.claim(task_id)
        if task is None:
            summary["skipped"] += 1
            summary["details"].append({"task_id": task_id, "status": "not_claimed"})
            continue

        task_type = task.task_type
        task_key = task.task_key
        summary["processed"] += 1
        try:
            result = await dispatcher.dispatch(ctx, task)
        except InvalidTaskError as e:
            ctx.db.rollback()
            status = scheduler.fail(task_id, str(e), permanent=True)
            summary["failed"] += 1
            summary["details"].append({"task_id": task_id, "type": task_type, "status": status, "error": str(e)})
            _alert_if_failed(ctx, task_id, task_type, task_key, status, str(e))
            continue
        except Exception as e:
            ctx.db.rollback()
            logger.error(f"❌ Task {task_id} ({task_type}) raised: {e}")
            status = scheduler.fail(task_id, str(e))
            summary["failed"] += 1
            summary["details"].append({"task_id": task_id, "type": task_type, "status": status, "error": str(e)})
            _alert_if_failed(ctx, task_id, task_type, task_key, status, str(e))
            continue

        scheduler.complete(task_id)
        if result and result.get("skipped"):
            summary["skipped"] += 1
            summary["details"].append(
                {"task_id": task_id, "type": task_type, "status": "skipped", "reason": result.get("reason")}
            )
        else:
            summary["succeeded"] += 1
            summary["details"].append({"task_id": task_id, "type": task_type, "status": "completed"})

    if summary["processed"] or summary["reclaimed"]:
        logger.info(
            f"✅ Poll cycle: {summary['succeeded']} succeeded, {summary['failed']} failed, "
            f"{summary['skipped']} skipped, {summary['reclaimed']} reclaimed"
        )
    return summary


def _alert_if_failed(ctx: TaskContext, task_id: str, task_type: str, task_key, status, error: str):
    """Terminal failures surface to the owner as task_failed alerts"""
    if status != TaskStatus.FAILED.value:
        return
    task = ctx.scheduler.repo.get_by_id(ctx.db, task_id)
    AlertService(ctx.db, now_fn=ctx.scheduler.now).create_alert(
        AlertType.TASK_FAILED,
        f"Task {task_key or task_id} ({task_type}) failed permanently: {error}",
        tenant_id=task.tenant_id if task else None,
        threshold_value=task.max_attempts if task else None,
        actual_value=task.attempts if task else None,
    )
