from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ShareRequest(BaseModel):
    detection_result_id: str
    expires_in_days: Optional[int] = Field(None, ge=1)


class ShareResponse(BaseModel):
    success: bool
    share_token: str
    share_url: str


class ShareStats(BaseModel):
    view_count: int
    last_viewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
