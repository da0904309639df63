import logging
from datetime import datetime, timezone

from celery.result import GroupResult
from fastapi import APIRouter
from redis.exceptions import RedisError

from app.errors import ApiError, BadRequestError, NotFoundError
from app.schemas import TaskProgressResponse
from app.tasks.celery_app import celery_app
from app.tasks.progress import FINISHED_STATUSES, get_progress, save_progress

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("/{task_id}/progress", response_model=TaskProgressResponse)
async def get_task_progress(task_id: str):
    """Get progress of a retail CSV import."""
    try:
        progress = get_progress(task_id)
    except RedisError as e:
        logger.error("Redis unavailable while reading %s: %s", task_id, e)
        raise ApiError(503, "Task store unavailable")

    if progress is None:
        raise NotFoundError("Task not found")

    return TaskProgressResponse(**progress)


@router.post("/{task_id}/cancel")
async def cancel_task(task_id: str):
    """Cancel a running import. Chunks that have not started are skipped."""
    try:
        progress = get_progress(task_id)
        if progress is None:
            raise NotFoundError("Task not found")

        if progress["status"] in FINISHED_STATUSES:
            raise BadRequestError(f"Task is already {progress['status']}")

        progress["status"] = "cancelled"
        progress["message"] = "Task cancelled by user"
        progress["completed_at"] = datetime.now(timezone.utc).isoformat()
        save_progress(task_id, progress)
    except RedisError as e:
        logger.error("Redis unavailable while cancelling %s: %s", task_id, e)
        raise ApiError(503, "Task store unavailable")

    group_id = progress.get("celery_group_id")
    if group_id:
        group_result = GroupResult.restore(group_id, app=celery_app)
        if group_result:
            group_result.revoke()

    return {"success": True, "message": "Task cancelled successfully", "task_id": task_id}
