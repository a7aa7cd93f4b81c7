from __future__ import annotations

from typing import Any, Dict

from celery_app import celery_app  # type: ignore
from knolhash.db.store import open_store
from knolhash.logging_config import get_logger
from knolhash.workflow.sync import run_sync
from knolhash.workflow.utils.progress import emit_progress
from knolhash.workflow.utils.settings import default_settings, normalize_settings

logger = get_logger(__name__)


@celery_app.task(name="knolhash.sync.sources", bind=True)
def sync_sources_task(self, payload: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Reconcile every registered source and report per-source counts."""
    settings = default_settings(override=normalize_settings(payload))
    job_id = (payload or {}).get("job_id") or self.request.id

    logger.info("Sync start | job=%s db=%s repos=%s", job_id, settings.db_url, settings.repos_dir)
    emit_progress(job_id=job_id, status="RUNNING", current_step="sync", progress=0)
    try:
        with open_store(settings.db_url) as store:
            reports = run_sync(store, settings.repos_dir)
    except Exception as exc:
        emit_progress(job_id=job_id, status="FAILED", current_step="sync", progress=100, extra={"error": str(exc)})
        logger.error("Sync failed | job=%s", job_id, exc_info=True)
        raise

    summary = {
        "job_id": job_id,
        "sources": [report.as_dict() for report in reports],
        "errors": sum(len(report.errors) for report in reports),
    }
    emit_progress(
        job_id=job_id,
        status="COMPLETED",
        current_step="sync",
        progress=100,
        extra={"sources": len(reports), "errors": summary["errors"]},
    )
    logger.info("Sync done  | job=%s sources=%s errors=%s", job_id, len(reports), summary["errors"])
    return summary
