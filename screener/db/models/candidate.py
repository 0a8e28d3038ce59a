"""
Candidate model - one CV submitted against one job opening.
"""
import enum
import uuid
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, JSON, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from screener.db.base import Base


class AnalysisStatus(str, enum.Enum):
    """
    Lifecycle of the CV analysis for a candidate.

    pending -> dispatched -> completed
    dispatched -> failed (dispatch error or timeout); failed/pending can be dispatched again.
    """
    PENDING = "pending"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_candidate_id() -> str:
    return str(uuid.uuid4())


class Candidate(Base):
    __tablename__ = "candidates"

    id = Column(String(36), primary_key=True, default=generate_candidate_id)
    job_id = Column(Integer, ForeignKey("job_openings.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)

    # Contact fields - derived from the file name at upload, overwritten by analysis
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    title = Column(String(150), nullable=True)

    # CV
    cv_text = Column(Text, nullable=True)
    cv_file_path = Column(String, nullable=True)
    application_source = Column(String, nullable=False, default="manual_upload")

    # Analysis
    cv_rate = Column(Integer, nullable=False, default=0)  # 0-100, meaningful once completed
    analysis_status = Column(String(16), nullable=False, default=AnalysisStatus.PENDING.value, index=True)
    dispatched_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    analysis_error = Column(String, nullable=True)
    dispatch_attempts = Column(Integer, nullable=False, default=0)
    relevance_analysis = Column(JSON, nullable=True)
    insights = Column(JSON, nullable=True)  # {"matching": [...], "not_matching": [...]}
    improvement_tips = Column(JSON, nullable=True)
    extracted_data = Column(JSON, nullable=True)

    # Employer flags
    is_unlocked = Column(Boolean, nullable=False, default=False)
    unlocked_at = Column(DateTime(timezone=True), nullable=True)
    is_favorite = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    job = relationship("JobOpening", back_populates="candidates")

    __table_args__ = (
        Index("idx_candidates_status_dispatched", "analysis_status", "dispatched_at"),
    )

    @property
    def analyzing(self) -> bool:
        return self.analysis_status == AnalysisStatus.DISPATCHED.value

    def __repr__(self):
        return f"<Candidate(id={self.id}, job_id={self.job_id}, status='{self.analysis_status}')>"
