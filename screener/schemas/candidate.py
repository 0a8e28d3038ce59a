"""
Pydantic schemas for candidate endpoints.
"""
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from pydantic import BaseModel, Field


class CandidateResponse(BaseModel):
    """Full candidate row as returned by the API and pushed over realtime."""
    id: str = Field(..., description="Candidate ID (UUID)")
    job_id: int
    account_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None
    cv_file_path: Optional[str] = None
    application_source: str
    cv_rate: int = Field(0, ge=0, le=100, description="CV-to-job fit score, meaningful once analysis completed")
    analysis_status: str = Field(..., description="pending | dispatched | completed | failed")
    analyzing: bool = Field(False, description="True while the analysis is in flight")
    dispatched_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    analysis_error: Optional[str] = None
    dispatch_attempts: int = 0
    relevance_analysis: Optional[Dict[str, Any]] = None
    insights: Optional[Dict[str, Any]] = None
    improvement_tips: Optional[List[Union[Dict[str, Any], str]]] = None
    extracted_data: Optional[Dict[str, Any]] = None
    is_unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    is_favorite: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CandidateListResponse(BaseModel):
    candidates: List[CandidateResponse]
    total: int


class CandidateUpdate(BaseModel):
    """Employer-editable fields. Only provided fields are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    title: Optional[str] = Field(None, max_length=150)
    is_favorite: Optional[bool] = None


class CandidateIdsRequest(BaseModel):
    candidate_ids: List[str] = Field(..., min_length=1, description="Candidate IDs to act on")


class BulkDeleteResponse(BaseModel):
    deleted: int


class ResumeScreeningResponse(BaseModel):
    processed: int = Field(..., description="Candidates dispatched for analysis")
    skipped: int = Field(..., description="Candidates not dispatched (no credits, already analysed, not found)")
    failed: int = Field(0, description="Candidates whose dispatch could not be started")
    remaining_credits: Optional[int] = Field(None, description="Credits left (None for unlimited)")
    processed_ids: List[str] = Field(default_factory=list)
    message: str


class SignedUrlResponse(BaseModel):
    url: str
    expires_in: int
