from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


class StatusCounts(BaseModel):
    pending: int = 0
    accepted: int = 0
    rejected: int = 0
    total: int = 0


class ReviewStats(BaseModel):
    artifact: StatusCounts
    curator_application: StatusCounts


class DecisionItem(BaseModel):
    event_id: int
    submission_id: int
    kind: str
    title: Optional[str] = None
    status: str
    reviewer_id: int
    reviewer_name: str
    submitter_name: str
    reason: Optional[str] = None
    occurred_at: datetime


class DecisionPage(BaseModel):
    items: List[DecisionItem]
    total: int
    page: int
    size: int
