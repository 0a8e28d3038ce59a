"""
Pydantic schemas for credit endpoints.
"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class CreditStatusResponse(BaseModel):
    """Response schema for GET /me/credits."""
    plan: str = Field(..., description="Current plan (free, starter, pro, business, enterprise)")
    limit: Optional[int] = Field(None, description="Monthly analysis limit (None for unlimited)")
    used: int = Field(..., description="Credits used this billing period")
    remaining: Optional[int] = Field(None, description="Credits left (None for unlimited)")
    unlimited: bool
    can_analyze: bool
    is_at_limit: bool
    percentage: float = Field(..., description="Share of the limit used, 0-100")
    billing_period_start: Optional[datetime] = None
    limit_table: str = Field(..., description="Plan limit table being enforced")

    class Config:
        json_schema_extra = {
            "example": {
                "plan": "free",
                "limit": 25,
                "used": 24,
                "remaining": 1,
                "unlimited": False,
                "can_analyze": True,
                "is_at_limit": False,
                "percentage": 96.0,
                "billing_period_start": "2026-10-01T00:00:00Z",
                "limit_table": "billing"
            }
        }
