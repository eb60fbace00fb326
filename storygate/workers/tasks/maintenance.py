"""
Celery beat tasks: ad session sweep, purchase ledger compaction, purchase reconciliation.
"""
import logging

from storygate.core.celery_app import celery_app
from storygate.services.container import get_services

logger = logging.getLogger(__name__)


@celery_app.task(
    name="storygate.workers.tasks.maintenance.sweep_ad_sessions",
    time_limit=60,
    soft_time_limit=55,
)
def sweep_ad_sessions() -> dict:
    """Drop ad sessions older than ad_session_max_age_seconds."""
    try:
        removed = get_services().tracker.sweep_expired()
        return {"ok": True, "removed": removed}
    except Exception:
        logger.exception("sweep_ad_sessions_error")
        return {"ok": False, "removed": 0, "error": "exception"}


@celery_app.task(name="storygate.workers.tasks.maintenance.compact_purchase_ledger")
def compact_purchase_ledger() -> dict:
    """Delete settled purchase records past the retention window."""
    try:
        removed = get_services().ledger.compact()
        logger.info("compact_purchase_ledger_done", extra={"removed": removed})
        return {"ok": True, "removed": removed}
    except Exception:
        logger.exception("compact_purchase_ledger_error")
        return {"ok": False, "removed": 0, "error": "exception"}


@celery_app.task(name="storygate.workers.tasks.maintenance.reconcile_pending_purchases")
def reconcile_pending_purchases() -> dict:
    """Credit purchases recorded in the ledger whose crediting never completed."""
    try:
        return {"ok": True, **get_services().coordinator.reconcile_pending()}
    except Exception:
        logger.exception("reconcile_pending_purchases_error")
        return {"ok": False, "error": "exception"}
