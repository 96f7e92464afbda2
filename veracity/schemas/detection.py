from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class AnalyzeMediaRequest(BaseModel):
    file_name: str = Field(min_length=1)
    mime_type: str
    file_data: Optional[str] = None    # base64, optionally as a data: URI
    file_url: Optional[str] = None     # previously uploaded object


class AnalyzeAudioRequest(AnalyzeMediaRequest):
    audio_type: Literal["voice", "music"] = "voice"


class AnalyzeTextRequest(BaseModel):
    text: str


class DetectionResponse(BaseModel):
    success: bool
    result_id: Optional[str] = None
    verdict: Literal["ai", "human"]
    confidence: str                     # decimal string, 4 dp
    detected_generator: Optional[str] = None
    file_url: str = ""
    processing_time_ms: int
    is_cached: bool = False


class DetectionRecord(BaseModel):
    """A stored detection result as returned by the read-side routes."""
    id: str
    file_name: str
    file_type: str
    file_size: Optional[int] = None
    storage_key: Optional[str] = None
    verdict: str
    confidence: str
    detected_generator: Optional[str] = None
    generator_scores: Optional[Dict[str, float]] = None
    processing_time_ms: Optional[int] = None
    is_duplicate: bool = False
    created_at: Optional[datetime] = None


class CheckDuplicateRequest(BaseModel):
    content_hash: str = Field(min_length=64, max_length=64)


class CheckDuplicateResponse(BaseModel):
    is_duplicate: bool
    result: Optional[Dict[str, Any]] = None


class ExportRequest(BaseModel):
    ids: List[str] = []
    format: Literal["csv", "json"] = "csv"
