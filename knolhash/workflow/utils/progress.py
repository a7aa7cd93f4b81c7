from __future__ import annotations

import json
import os
from typing import Any, Dict

from redis import Redis as SyncRedis
from redis.asyncio import Redis as AsyncRedis

from knolhash.logging_config import get_logger

logger = get_logger(__name__)

PROGRESS_REDIS_URL = os.getenv("PROGRESS_REDIS_URL", "redis://localhost:6379/2")
_progress_client: AsyncRedis | None = None


def progress_key(job_id: str) -> str:
    return f"job:{job_id}"


def emit_progress(job_id: str | None, status: str, current_step: str, progress: float | int = 0, extra: Dict[str, Any] | None = None) -> None:
    """Push a progress snapshot to the job's Redis hash and pubsub channel."""
    if not job_id:
        return

    payload: Dict[str, Any] = {
        "progress": progress,
        "status": status,
        "current_step": current_step,
    }
    if extra:
        payload.update(extra)

    try:
        client = SyncRedis.from_url(PROGRESS_REDIS_URL, decode_responses=True)
        client.hset(progress_key(job_id), mapping={k: str(v) for k, v in payload.items() if v is not None})
        client.publish(f"progress:{job_id}", json.dumps(payload))
    except Exception:
        logger.warning("Failed to emit progress | job=%s status=%s", job_id, status, exc_info=True)


async def get_progress_client() -> AsyncRedis:
    """Return a shared asyncio Redis client for progress tracking."""
    global _progress_client
    if _progress_client is None:
        _progress_client = AsyncRedis.from_url(PROGRESS_REDIS_URL, decode_responses=True)
    return _progress_client


async def read_progress(job_id: str) -> dict:
    client = await get_progress_client()
    raw = await client.hgetall(progress_key(job_id))
    return raw or {}
