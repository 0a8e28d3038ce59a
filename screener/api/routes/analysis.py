"""
Analysis result callback.

The external AI service POSTs its result here once a CV has been scored.
"""
import hmac
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from screener.core import config
from screener.core.logging_config import sanitize_log_data
from screener.core.exceptions import AnalysisPayloadError, CandidateNotFound
from screener.db.session import get_db
from screener.schemas.analysis import AnalysisCallbackPayload, AnalysisCallbackResponse
from screener.services.analysis_results import apply_analysis_result
from screener.services.realtime import CandidateChangeNotifier, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["Analysis"])


def verify_callback_secret(x_callback_secret: Optional[str] = Header(None)) -> None:
    """Require X-Callback-Secret when ANALYSIS_CALLBACK_SECRET is configured."""
    expected = config.ANALYSIS_CALLBACK_SECRET
    if not expected:
        return
    if not x_callback_secret or not hmac.compare_digest(x_callback_secret, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid callback secret")


@router.post(
    "/callback",
    response_model=AnalysisCallbackResponse,
    dependencies=[Depends(verify_callback_secret)],
)
def receive_analysis(
    payload: AnalysisCallbackPayload,
    db: Session = Depends(get_db),
    notifier: CandidateChangeNotifier = Depends(get_notifier),
):
    """
    Store an analysis result on its candidate.

    Repeated deliveries for an already analysed candidate are acknowledged
    and ignored.
    """
    logger.debug(f"Analysis callback received: {sanitize_log_data(payload.model_dump())}")

    try:
        applied = apply_analysis_result(db, payload, notifier)
    except AnalysisPayloadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.user_message)
    except CandidateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)
    except Exception as e:
        db.rollback()
        logger.error(f"Error applying analysis result: candidate_id={payload.candidate_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store analysis result"
        )

    if not applied:
        return {"success": True, "message": "Analysis already recorded"}
    return {"success": True, "message": "Analysis saved"}
