"""
System endpoints: service status and scheduled maintenance jobs.

The maintenance endpoints are meant for a cron/scheduler and require the
X-Ops-Token header.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import text
from sqlalchemy.orm import Session

from screener.core import config
from screener.core.auth_dependency import require_ops_token
from screener.db.session import SessionLocal, get_db
from screener.services.analysis_results import sweep_stuck_analyses
from screener.services.credit_ledger import reset_expired_periods
from screener.services.realtime import CandidateChangeNotifier, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["System"])


@router.get("/health")
def system_health():
    db_ok = True
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        db_ok = False

    return {
        "status": "ok",
        "database": "connected" if db_ok else "error",
        "api_version": "1.0.0",
        "service": "CV Screener API",
        "analysis_backend": config.ANALYSIS_BACKEND,
        "plan_limit_table": config.PLAN_LIMIT_TABLE,
    }


@router.post("/sweep-stuck-analyses", dependencies=[Depends(require_ops_token)])
def sweep_analyses(
    threshold_minutes: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    notifier: CandidateChangeNotifier = Depends(get_notifier),
):
    """Fail analyses dispatched longer ago than ANALYSIS_TIMEOUT_MINUTES so they can be retried."""
    failed_ids = sweep_stuck_analyses(db, threshold_minutes=threshold_minutes, notifier=notifier)
    return {"failed": len(failed_ids), "candidate_ids": failed_ids}


@router.post("/reset-billing-periods", dependencies=[Depends(require_ops_token)])
def reset_billing_periods(db: Session = Depends(get_db)):
    """Start a new credit period for every account whose period has run out."""
    account_ids = reset_expired_periods(db)
    return {"reset": len(account_ids), "account_ids": account_ids}
