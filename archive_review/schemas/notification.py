from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class NotificationResponse(BaseModel):
    notification_id: int
    recipient_id: int
    source_id: Optional[int] = None
    related_id: str
    related_type: str
    notification_type: str
    message: str
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True
