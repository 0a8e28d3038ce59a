"""
Job opening endpoints.

Jobs are owned by one account; CVs are uploaded against a job.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from screener.db.session import get_db
from screener.db.models.account import Account
from screener.db.models.job_opening import JobOpening
from screener.core.auth_dependency import get_current_account
from screener.core.exceptions import JobNotFound
from screener.schemas.job import JobCreate, JobResponse, JobListResponse
from screener.schemas.candidate import CandidateListResponse
from screener.services.candidate_store import CandidateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=JobResponse)
def create_job(
    job_data: JobCreate,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db)
):
    """Create a job opening for the authenticated account."""
    try:
        job = JobOpening(
            account_id=account.id,
            title=job_data.title,
            description=job_data.description or "",
        )
        db.add(job)
        db.commit()
        db.refresh(job)
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating job: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create job"
        )

    logger.info(f"Job created: job_id={job.id}, account_id={account.id}")
    return job


@router.get("", response_model=JobListResponse)
def list_jobs(
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db)
):
    """List the authenticated account's job openings, newest first."""
    jobs = db.query(JobOpening).filter(
        JobOpening.account_id == account.id
    ).order_by(JobOpening.created_at.desc(), JobOpening.id.desc()).all()
    return {"jobs": jobs, "total": len(jobs)}


@router.get("/{job_id}", response_model=JobResponse)
def get_job(
    job_id: int,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db)
):
    try:
        return CandidateStore(db, account.id).get_job(job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)


@router.get("/{job_id}/candidates", response_model=CandidateListResponse)
def list_candidates(
    job_id: int,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db)
):
    """
    List the candidates of a job, best CV score first.

    Candidates still being analysed carry analyzing=true.
    """
    try:
        candidates = CandidateStore(db, account.id).list_by_job(job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.user_message)

    return {"candidates": candidates, "total": len(candidates)}
