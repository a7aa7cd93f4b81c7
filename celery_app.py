from __future__ import annotations

import os

from celery import Celery

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "").lower() in {"1", "true", "yes"}
# 0 disables the periodic source sync run by `celery beat`.
SYNC_INTERVAL_SECONDS = float(os.getenv("KNOLHASH_SYNC_INTERVAL_SECONDS", "0"))

celery_app = Celery(
    "knolhash",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=["knolhash.task.sync"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_time_limit=int(os.getenv("CELERY_TASK_TIME_LIMIT", "3600")),
    task_always_eager=CELERY_TASK_ALWAYS_EAGER,
    task_eager_propagates=True,
    result_expires=int(os.getenv("CELERY_RESULT_EXPIRES", "86400")),
)

if SYNC_INTERVAL_SECONDS > 0:
    celery_app.conf.beat_schedule = {
        "knolhash-sync-sources": {
            "task": "knolhash.sync.sources",
            "schedule": SYNC_INTERVAL_SECONDS,
        },
    }
