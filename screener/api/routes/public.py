"""
Public job application endpoints.

Applicants need no account. An application becomes a candidate of the job's
owner and is analysed on the owner's credits, like an employer upload.
Requests are rate-limited per client IP.
"""
import logging
from typing import Callable, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from sqlalchemy.orm import Session

from screener.core.exceptions import JobNotFound
from screener.core.rate_limit import public_apply_rate_limit
from screener.db.session import get_db, get_session_factory
from screener.schemas.job import ApplicationResponse, PublicJobResponse
from screener.services.analysis_gateway import AnalysisGateway, get_analysis_gateway
from screener.services.analysis_results import (
    MAX_EMAIL_LENGTH,
    MAX_NAME_LENGTH,
    is_valid_email,
    sanitize_text,
)
from screener.services.candidate_store import get_public_job
from screener.services.intake_service import IntakeService
from screener.services.realtime import CandidateChangeNotifier, get_notifier
from screener.services.storage import StorageGateway, get_storage
from screener.services.upload_queue import UploadQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public", tags=["Public"])

APPLICATION_SOURCE = "link_applied"


@router.get("/jobs/{job_id}", response_model=PublicJobResponse)
def get_job(job_id: int, db: Session = Depends(get_db)):
    try:
        return get_public_job(db, job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)


@router.post("/jobs/{job_id}/apply", response_model=ApplicationResponse)
async def apply_to_job(
    job_id: int,
    response: Response,
    email: str = Form(...),
    name: Optional[str] = Form(None),
    cv: UploadFile = File(...),
    remaining_requests: int = Depends(public_apply_rate_limit),
    db: Session = Depends(get_db),
    session_factory: Callable = Depends(get_session_factory),
    storage: StorageGateway = Depends(get_storage),
    gateway: AnalysisGateway = Depends(get_analysis_gateway),
    notifier: CandidateChangeNotifier = Depends(get_notifier),
):
    """
    Apply to a job with a PDF CV.

    The application is saved even when the employer has no credits left or
    the analysis could not be started; it then waits for resume screening.
    """
    email = email.strip()
    if len(email) > MAX_EMAIL_LENGTH or not is_valid_email(email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email address")

    try:
        job = get_public_job(db, job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)

    intake = IntakeService(
        session_factory=session_factory,
        account_id=job.account_id,
        job_id=job.id,
        storage=storage,
        gateway=gateway,
        notifier=notifier,
        application_source=APPLICATION_SOURCE,
        applicant_name=sanitize_text(name, MAX_NAME_LENGTH) or None,
        applicant_email=email,
    )

    queue = UploadQueue(job.id, concurrency=1)
    item = queue.add(cv.filename or "", await cv.read(), cv.content_type)

    rejection = intake.validate(item)
    if rejection:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=rejection)

    logger.info(f"Public application received: job_id={job.id}, file={item.file_name}, bytes={len(item.data)}")
    await intake.process(queue)

    if not item.candidate_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=item.error)

    response.headers["X-RateLimit-Remaining"] = str(remaining_requests)
    return {
        "success": True,
        "message": "Application submitted successfully",
        "candidate_id": item.candidate_id,
        "analysis_queued": item.dispatched,
    }
