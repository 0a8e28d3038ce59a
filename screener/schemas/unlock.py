"""
Pydantic schemas for candidate unlocks.
"""
from typing import Optional
from pydantic import BaseModel, Field

from screener.schemas.candidate import CandidateResponse


class UnlockResponse(BaseModel):
    success: bool
    already_unlocked: bool = False
    used: Optional[int] = Field(None, description="Credits used this period (None when nothing was spent)")
    remaining: Optional[int] = Field(None, description="Credits left (None for unlimited)")
    limit: Optional[int] = None
    candidate: CandidateResponse
