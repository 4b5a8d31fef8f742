from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Optional


class ArtifactPayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    culture: Optional[str] = None
    period: Optional[str] = None
    medium: Optional[str] = None
    artist_name: Optional[str] = None
    location: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    image_urls: List[str] = Field(default_factory=list)

    class Config:
        from_attributes = True


class CuratorApplicationPayload(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    education: Optional[str] = None
    certification: Optional[str] = None
    certification_path: Optional[str] = None
    experience: Optional[str] = None
    portfolio_link: Optional[str] = None
    motivation: Optional[str] = None

    class Config:
        from_attributes = True


class SubmissionResponse(BaseModel):
    submission_id: int
    kind: str
    status: str
    title: Optional[str] = None
    submitter_id: int
    submitter_name: str
    submitted_at: datetime
    assigned_reviewer_id: Optional[int] = None
    # None renders as "Unassigned"
    assigned_reviewer_name: Optional[str] = None
    decided_at: Optional[datetime] = None
    decided_by: Optional[int] = None
    rejection_reason: Optional[str] = None
    can_review: bool = False


class SubmissionDetailResponse(SubmissionResponse):
    artifact: Optional[ArtifactPayload] = None
    application: Optional[CuratorApplicationPayload] = None


class SubmissionPage(BaseModel):
    items: List[SubmissionResponse]
    total: int
    page: int
    size: int


class DecisionRequest(BaseModel):
    reason: Optional[str] = None


class SubmissionCreated(BaseModel):
    submission_id: int
    kind: str
    status: str
    submitted_at: datetime

    class Config:
        from_attributes = True
