"""
CV upload endpoints.

Uploaded PDFs run through the upload queue (extract -> store -> insert ->
dispatch) with bounded concurrency. The batch can be polled and its queued
items cancelled while it runs.
"""
import logging
from typing import Callable, List, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from screener.core import config
from screener.core.auth_dependency import get_current_account
from screener.core.exceptions import JobNotFound
from screener.db.models.account import Account
from screener.db.session import get_db, get_session_factory
from screener.schemas.upload import UploadBatchResponse
from screener.services.analysis_gateway import AnalysisGateway, get_analysis_gateway
from screener.services.candidate_store import CandidateStore
from screener.services.intake_service import IntakeService
from screener.services.realtime import CandidateChangeNotifier, get_notifier
from screener.services.storage import StorageGateway, get_storage
from screener.services.upload_queue import UploadBatchRegistry, UploadQueue, get_upload_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Uploads"])


@router.post(
    "/jobs/{job_id}/candidates/upload",
    status_code=status.HTTP_200_OK,
    response_model=UploadBatchResponse,
)
async def upload_candidates(
    job_id: int,
    files: List[UploadFile] = File(...),
    batch_id: Optional[str] = Form(None),
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    session_factory: Callable = Depends(get_session_factory),
    storage: StorageGateway = Depends(get_storage),
    gateway: AnalysisGateway = Depends(get_analysis_gateway),
    notifier: CandidateChangeNotifier = Depends(get_notifier),
    registry: UploadBatchRegistry = Depends(get_upload_registry),
):
    """
    Upload CV PDFs for a job.

    Each file becomes a candidate and is sent for analysis while credits
    last; files beyond the credit limit are saved as pending analysis.
    Non-PDF or oversized files fail individually without affecting the rest.

    Pass a batch_id to poll GET /uploads/{batch_id} while the upload runs.
    """
    try:
        CandidateStore(db, account.id).get_job(job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)

    if batch_id and registry.get(account.id, batch_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An upload with this batch id already exists"
        )

    queue = UploadQueue(job_id, concurrency=config.UPLOAD_CONCURRENCY, batch_id=batch_id)
    for upload in files:
        data = await upload.read()
        queue.add(upload.filename or "", data, upload.content_type)
    registry.register(account.id, queue)

    logger.info(f"Upload batch received: batch_id={queue.batch_id}, job_id={job_id}, account_id={account.id}, files={len(files)}")

    intake = IntakeService(
        session_factory=session_factory,
        account_id=account.id,
        job_id=job_id,
        storage=storage,
        gateway=gateway,
        notifier=notifier,
    )
    await intake.process(queue)

    return queue.summary()


@router.get("/uploads/{batch_id}", response_model=UploadBatchResponse)
def get_upload_batch(
    batch_id: str,
    account: Account = Depends(get_current_account),
    registry: UploadBatchRegistry = Depends(get_upload_registry),
):
    """Current state of every item of an upload batch."""
    queue = registry.get(account.id, batch_id)
    if not queue:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Upload batch not found")
    return queue.summary()


@router.delete("/uploads/{batch_id}/items/{item_id}")
def cancel_upload_item(
    batch_id: str,
    item_id: str,
    account: Account = Depends(get_current_account),
    registry: UploadBatchRegistry = Depends(get_upload_registry),
):
    """
    Cancel an upload that has not started yet.

    Items already being processed are left alone (cancelled=false).
    """
    queue = registry.get(account.id, batch_id)
    if not queue or not queue.get(item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Upload not found")

    cancelled = queue.cancel(item_id)
    return {"cancelled": cancelled, "item": queue.get(item_id).to_dict()}
