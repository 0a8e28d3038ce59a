"""
Pydantic schemas for the analysis callback written by the external AI service.
"""
from typing import Optional, List, Union
from pydantic import BaseModel, Field


class ExtractedData(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    current_title: Optional[str] = None

    class Config:
        extra = "allow"


class RelevanceAnalysis(BaseModel):
    overall_score: Optional[float] = Field(None, description="Fit score 0-100")
    matching_skills: List[str] = Field(default_factory=list)
    missing_skills: List[str] = Field(default_factory=list)
    summary: Optional[str] = None

    class Config:
        extra = "allow"


class ImprovementTip(BaseModel):
    category: Optional[str] = None
    tip: str


class AnalysisCallbackPayload(BaseModel):
    """Body POSTed to /analysis/callback once a CV has been scored."""
    candidate_id: str
    extracted_data: Optional[ExtractedData] = None
    relevance_analysis: Optional[RelevanceAnalysis] = None
    improvement_tips: Optional[List[Union[ImprovementTip, str]]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "candidate_id": "0b7f3e8e-6c59-4f0e-9d86-0f3c0a1e2b44",
                "extracted_data": {
                    "name": "Jane Doe",
                    "email": "jane.doe@mail.com",
                    "phone": "+1 555 0100",
                    "current_title": "Backend Engineer"
                },
                "relevance_analysis": {
                    "overall_score": 82,
                    "matching_skills": ["Python", "PostgreSQL"],
                    "missing_skills": ["Kubernetes"],
                    "summary": "Strong backend profile"
                },
                "improvement_tips": [{"category": "skills", "tip": "Add cloud experience"}]
            }
        }


class AnalysisCallbackResponse(BaseModel):
    success: bool
    message: str
