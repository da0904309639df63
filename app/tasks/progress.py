import json
from datetime import datetime, timezone
from typing import Optional

import redis

from app.config import settings
from app.tasks.celery_app import tls_redis_url

PROGRESS_TTL_SECONDS = 3600
FINISHED_STATUSES = ("completed", "failed", "cancelled")

redis_client = redis.from_url(tls_redis_url(settings.redis_url), decode_responses=True)


def progress_key(task_id: str) -> str:
    return f"task_progress:{task_id}"


def get_progress(task_id: str) -> Optional[dict]:
    data = redis_client.get(progress_key(task_id))
    return json.loads(data) if data else None


def save_progress(task_id: str, progress: dict) -> None:
    redis_client.setex(progress_key(task_id), PROGRESS_TTL_SECONDS, json.dumps(progress))


def new_progress(task_id: str, total_rows: int, total_chunks: int, group_id: Optional[str] = None) -> dict:
    return {
        "task_id": task_id,
        "status": "processing",
        "progress": 0.0,
        "total_rows": total_rows,
        "processed_rows": 0,
        "successful_rows": 0,
        "failed_rows": 0,
        "errors": [],
        "created_at": datetime.now(timezone.utc).isoformat(),
        "celery_group_id": group_id,
        "total_chunks": total_chunks,
        "completed_chunks": 0,
        "message": f"Starting import of {total_rows} rows in {total_chunks} chunks...",
    }


def attach_group(task_id: str, group_id: str) -> None:
    with redis_client.lock(f"{progress_key(task_id)}:lock", timeout=10):
        progress = get_progress(task_id)
        if progress is not None:
            progress["celery_group_id"] = group_id
            save_progress(task_id, progress)


def record_chunk(task_id: str, processed: int, successful: int, failed: int, errors: list) -> dict:
    """Accumulate the outcome of one chunk into the stored progress."""
    # Chunks finish concurrently on several workers
    with redis_client.lock(f"{progress_key(task_id)}:lock", timeout=10):
        return _record_chunk(task_id, processed, successful, failed, errors)


def _record_chunk(task_id: str, processed: int, successful: int, failed: int, errors: list) -> dict:
    progress = get_progress(task_id) or new_progress(task_id, 0, 0)

    progress["processed_rows"] += processed
    progress["successful_rows"] += successful
    progress["failed_rows"] += failed
    progress["completed_chunks"] = progress.get("completed_chunks", 0) + 1
    progress["errors"] = (progress.get("errors", []) + errors)[-20:]  # Keep last 20 errors

    total_rows = progress.get("total_rows") or 0
    if total_rows > 0:
        progress["progress"] = min(100.0, progress["processed_rows"] / total_rows * 100.0)

    if progress["status"] == "processing" and progress["completed_chunks"] >= progress.get("total_chunks", 0):
        progress["status"] = "completed"
        progress["progress"] = 100.0
        progress["completed_at"] = datetime.now(timezone.utc).isoformat()

    progress["message"] = (
        f"Processed chunk {progress['completed_chunks']}/{progress.get('total_chunks', '?')} "
        f"({progress['processed_rows']} rows processed)"
    )
    save_progress(task_id, progress)
    return progress


def is_cancelled(task_id: str) -> bool:
    progress = get_progress(task_id)
    return bool(progress) and progress.get("status") == "cancelled"
