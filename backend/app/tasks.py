from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from app.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job | None:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task (``_job_id`` deduplicates)

    Returns:
        Job object from arq, or None if a job with the same id is queued
    """
    pool = await get_redis_pool()
    try:
        return await pool.enqueue_job(task_name, *args, **kwargs)
    finally:
        await pool.close()


async def enqueue_settlement_run(job_id: str | None = None) -> Job | None:
    """Enqueue an out-of-schedule settlement sweep."""
    if job_id is None:
        return await enqueue_task("settle_due_schedules_task")
    return await enqueue_task("settle_due_schedules_task", _job_id=job_id)
