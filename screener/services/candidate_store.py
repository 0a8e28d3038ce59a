"""
Candidate record store.

Every read and write is scoped to one account; another account's rows are
indistinguishable from missing rows.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from screener.core.exceptions import CandidateNotFound, JobNotFound, StorageFailure
from screener.db.models.candidate import Candidate, AnalysisStatus
from screener.db.models.job_opening import JobOpening
from screener.schemas.candidate import CandidateResponse
from screener.services.storage import StorageGateway

logger = logging.getLogger(__name__)

# Fields the employer may change through update(); is_unlocked is set by unlock_candidate only
UPDATABLE_FIELDS = {
    "name", "email", "phone", "title", "is_favorite",
}


def serialize_candidate(candidate: Candidate) -> Dict[str, Any]:
    """Full row as JSON-ready dict (realtime payload and API response)."""
    return CandidateResponse.model_validate(candidate).model_dump(mode="json")


def get_public_job(db: Session, job_id: int) -> JobOpening:
    """Job lookup for public applications, not scoped to an account."""
    job = db.query(JobOpening).filter(JobOpening.id == job_id).first()
    if not job:
        raise JobNotFound(f"Public job {job_id} not found")
    return job


class CandidateStore:
    """CRUD for candidates owned by a single account."""

    def __init__(self, db: Session, account_id: int, storage: Optional[StorageGateway] = None):
        self.db = db
        self.account_id = account_id
        self.storage = storage

    def get_job(self, job_id: int) -> JobOpening:
        job = self.db.query(JobOpening).filter(
            JobOpening.id == job_id,
            JobOpening.account_id == self.account_id,
        ).first()
        if not job:
            raise JobNotFound(f"Job {job_id} not found for account {self.account_id}")
        return job

    def get(self, candidate_id: str) -> Candidate:
        candidate = self.db.query(Candidate).filter(
            Candidate.id == candidate_id,
            Candidate.account_id == self.account_id,
        ).first()
        if not candidate:
            raise CandidateNotFound(f"Candidate {candidate_id} not found for account {self.account_id}")
        return candidate

    def insert(
        self,
        job_id: int,
        name: str,
        email: Optional[str] = None,
        cv_text: Optional[str] = None,
        cv_file_path: Optional[str] = None,
        application_source: str = "manual_upload",
    ) -> str:
        """Insert a candidate awaiting analysis. Returns the new id."""
        self.get_job(job_id)

        candidate = Candidate(
            job_id=job_id,
            account_id=self.account_id,
            name=name[:100],
            email=email,
            cv_text=cv_text,
            cv_file_path=cv_file_path,
            application_source=application_source,
            cv_rate=0,
            analysis_status=AnalysisStatus.PENDING.value,
        )
        self.db.add(candidate)
        self.db.commit()

        logger.info(f"Candidate created: candidate_id={candidate.id}, job_id={job_id}, account_id={self.account_id}")
        return candidate.id

    def update(self, candidate_id: str, fields: Dict[str, Any]) -> Candidate:
        """Apply a partial update of employer-editable fields."""
        candidate = self.get(candidate_id)

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {', '.join(sorted(unknown))}")

        for field, value in fields.items():
            setattr(candidate, field, value)

        self.db.commit()
        self.db.refresh(candidate)

        logger.info(f"Candidate updated: candidate_id={candidate_id}, fields={sorted(fields)}")
        return candidate

    def delete(self, candidate_ids: Iterable[str]) -> int:
        """
        Delete candidates (and their stored CVs). Credits are never refunded.

        Returns:
            Number of candidates deleted; ids owned by other accounts are ignored
        """
        ids = list(dict.fromkeys(candidate_ids))
        if not ids:
            return 0

        candidates = self.db.query(Candidate).filter(
            Candidate.id.in_(ids),
            Candidate.account_id == self.account_id,
        ).all()

        file_paths = [c.cv_file_path for c in candidates if c.cv_file_path]
        for candidate in candidates:
            self.db.delete(candidate)
        self.db.commit()

        if self.storage:
            for path in file_paths:
                try:
                    self.storage.delete(path)
                except StorageFailure as e:
                    # The row is gone; an orphaned blob is only logged
                    logger.warning(f"Could not delete stored CV {path}: {e}")

        logger.info(f"Candidates deleted: count={len(candidates)}, account_id={self.account_id}")
        return len(candidates)

    def list_by_job(self, job_id: int) -> List[Candidate]:
        """Candidates of a job, best score first."""
        self.get_job(job_id)
        return self.db.query(Candidate).filter(
            Candidate.job_id == job_id,
            Candidate.account_id == self.account_id,
        ).order_by(Candidate.cv_rate.desc(), Candidate.created_at.desc()).all()
