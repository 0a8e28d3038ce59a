"""
Pydantic schemas for job opening endpoints.
"""
from typing import List
from datetime import datetime
from pydantic import BaseModel, Field


class JobCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", description="Job description used for CV analysis")


class JobResponse(BaseModel):
    id: int
    account_id: int
    title: str
    description: str
    created_at: datetime

    class Config:
        from_attributes = True


class JobListResponse(BaseModel):
    jobs: List[JobResponse]
    total: int


class PublicJobResponse(BaseModel):
    """Fields safe to show applicants; the owning account is not exposed."""
    id: int
    title: str
    description: str

    class Config:
        from_attributes = True


class ApplicationResponse(BaseModel):
    success: bool
    message: str
    candidate_id: str
    analysis_queued: bool = Field(..., description="False when the employer is out of credits or dispatch failed")
