"""
Pydantic schemas for upload batches.
"""
from typing import Optional, List
from pydantic import BaseModel, Field


class UploadItemResponse(BaseModel):
    id: str
    file_name: str
    status: str = Field(..., description="queued | extracting | uploading | analyzing | completed | failed | cancelled")
    progress: int = Field(..., ge=0, le=100)
    error: Optional[str] = None
    candidate_id: Optional[str] = None
    dispatched: bool = False


class UploadBatchResponse(BaseModel):
    batch_id: str
    job_id: int
    items: List[UploadItemResponse]
    uploaded: int = Field(..., description="Items that produced a candidate row")
    failed: int
    dispatched: int = Field(..., description="Items sent for analysis")
    pending_analysis: int = Field(..., description="Items saved without analysis (no credits left)")
    message: str
