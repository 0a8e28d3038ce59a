"""
Candidate endpoints.

Edit, delete, unlock, CV download links and resume screening (retrying analysis
for candidates that never got one).
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from screener.core import config
from screener.core.auth_dependency import get_current_account
from screener.core.exceptions import CandidateNotFound, CreditLedgerError, StorageNotFound
from screener.db.models.account import Account
from screener.db.session import get_db
from screener.schemas.candidate import (
    BulkDeleteResponse,
    CandidateIdsRequest,
    CandidateResponse,
    CandidateUpdate,
    ResumeScreeningResponse,
    SignedUrlResponse,
)
from screener.schemas.unlock import UnlockResponse
from screener.services.analysis_gateway import AnalysisGateway, get_analysis_gateway
from screener.services.candidate_store import CandidateStore, serialize_candidate
from screener.services.dispatcher import resume_screening
from screener.services.realtime import CandidateChangeNotifier, get_notifier
from screener.services.storage import StorageGateway, get_storage
from screener.services.unlock_service import UNLOCK_LIMIT_MESSAGE, unlock_candidate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/candidates", tags=["Candidates"])


@router.get("/{candidate_id}", response_model=CandidateResponse)
def get_candidate(
    candidate_id: str,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db)
):
    try:
        return CandidateStore(db, account.id).get(candidate_id)
    except CandidateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)


@router.patch("/{candidate_id}", response_model=CandidateResponse)
def update_candidate(
    candidate_id: str,
    candidate_data: CandidateUpdate,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    notifier: CandidateChangeNotifier = Depends(get_notifier),
):
    """
    Update employer-editable fields of a candidate.

    Only provided fields are updated.
    """
    fields = candidate_data.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    try:
        candidate = CandidateStore(db, account.id).update(candidate_id, fields)
    except CandidateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)

    notifier.publish(candidate.job_id, serialize_candidate(candidate))
    return candidate


@router.delete("/{candidate_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_candidate(
    candidate_id: str,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    storage: StorageGateway = Depends(get_storage),
):
    """Delete a candidate and its stored CV. Spent credits are not returned."""
    deleted = CandidateStore(db, account.id, storage=storage).delete([candidate_id])
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=CandidateNotFound.user_message)
    return None


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
def bulk_delete_candidates(
    request: CandidateIdsRequest,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    storage: StorageGateway = Depends(get_storage),
):
    """Delete several candidates. IDs the account does not own are ignored."""
    deleted = CandidateStore(db, account.id, storage=storage).delete(request.candidate_ids)
    return {"deleted": deleted}


@router.get("/{candidate_id}/cv-url", response_model=SignedUrlResponse)
def get_cv_url(
    candidate_id: str,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    storage: StorageGateway = Depends(get_storage),
):
    """Short-lived signed link to the candidate's CV."""
    try:
        candidate = CandidateStore(db, account.id).get(candidate_id)
    except CandidateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)

    if not candidate.cv_file_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=StorageNotFound.user_message)

    try:
        url = storage.get(candidate.cv_file_path)
    except StorageNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)

    return {"url": url, "expires_in": config.SIGNED_URL_TTL_SECONDS}


@router.post("/resume-screening", response_model=ResumeScreeningResponse)
def resume_candidate_screening(
    request: CandidateIdsRequest,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    storage: StorageGateway = Depends(get_storage),
    gateway: AnalysisGateway = Depends(get_analysis_gateway),
    notifier: CandidateChangeNotifier = Depends(get_notifier),
):
    """
    Send the selected candidates for analysis.

    Candidates already analysed are skipped. Dispatching stops when the
    account runs out of credits.
    """
    try:
        summary = resume_screening(
            db,
            account.id,
            request.candidate_ids,
            gateway,
            storage=storage,
            notifier=notifier,
        )
    except CreditLedgerError as e:
        logger.error(f"Resume screening aborted: account_id={account.id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.user_message)

    return {
        "processed": summary.processed,
        "skipped": summary.skipped,
        "failed": summary.failed,
        "remaining_credits": summary.remaining_credits,
        "processed_ids": summary.processed_ids,
        "message": summary.message,
    }


@router.post("/{candidate_id}/unlock", response_model=UnlockResponse)
def unlock(
    candidate_id: str,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    notifier: CandidateChangeNotifier = Depends(get_notifier),
):
    """
    Unlock a candidate's details. Spends one monthly credit.

    Unlocking an already unlocked candidate is free. Returns 403 when the
    account has no credits left.
    """
    try:
        result = unlock_candidate(db, account.id, candidate_id, notifier=notifier)
    except CandidateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)
    except CreditLedgerError as e:
        logger.error(f"Unlock aborted: account_id={account.id}, candidate_id={candidate_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.user_message)

    if not result.unlocked:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=UNLOCK_LIMIT_MESSAGE)

    return {
        "success": True,
        "already_unlocked": result.already_unlocked,
        "used": result.used,
        "remaining": result.remaining,
        "limit": result.limit,
        "candidate": result.candidate,
    }
