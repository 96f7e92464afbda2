"""
Detection routes: analyze (image / audio / video / text), history, single
result lookup, duplicate check, export, and share-link management.

Every route requires a session. Analyze routes are rate-limited per user.
"""

import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from veracity.config import settings
from veracity.core.auth import get_current_user
from veracity.core.dependencies import (
    get_detection_service,
    get_rate_limiter,
    get_results_repository,
    get_share_service,
)
from veracity.core.rate_limiter import RateLimiter
from veracity.schemas.detection import (
    AnalyzeAudioRequest,
    AnalyzeMediaRequest,
    AnalyzeTextRequest,
    CheckDuplicateRequest,
    CheckDuplicateResponse,
    DetectionRecord,
    DetectionResponse,
    ExportRequest,
)
from veracity.schemas.share import ShareRequest, ShareResponse, ShareStats
from veracity.services.detection_service import DetectionService
from veracity.services.results_repository import ResultsRepository
from veracity.services.share_service import ShareService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/detection", tags=["Detection"])


@router.post("/analyze-image", response_model=DetectionResponse)
async def analyze_image(
    body: AnalyzeMediaRequest,
    user: dict = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    detection: DetectionService = Depends(get_detection_service),
):
    limiter.check(user["id"])
    return await detection.analyze_image(
        user["id"], body.file_name, body.mime_type,
        file_data=body.file_data, file_url=body.file_url,
    )


@router.post("/analyze-audio", response_model=DetectionResponse)
async def analyze_audio(
    body: AnalyzeAudioRequest,
    user: dict = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    detection: DetectionService = Depends(get_detection_service),
):
    limiter.check(user["id"])
    return await detection.analyze_audio(
        user["id"], body.file_name, body.mime_type, audio_type=body.audio_type,
        file_data=body.file_data, file_url=body.file_url,
    )


@router.post("/analyze-video", response_model=DetectionResponse)
async def analyze_video(
    body: AnalyzeMediaRequest,
    user: dict = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    detection: DetectionService = Depends(get_detection_service),
):
    limiter.check(user["id"])
    return await detection.analyze_video(
        user["id"], body.file_name, body.mime_type,
        file_data=body.file_data, file_url=body.file_url,
    )


@router.post("/analyze-text", response_model=DetectionResponse)
async def analyze_text(
    body: AnalyzeTextRequest,
    user: dict = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    detection: DetectionService = Depends(get_detection_service),
):
    limiter.check(user["id"])
    return await detection.analyze_text(user["id"], body.text)


# ---- History / lookup ----

@router.get("/history", response_model=List[DetectionRecord])
def get_history(
    limit: int = Query(settings.history_default_limit, ge=1, le=500),
    user: dict = Depends(get_current_user),
    results: ResultsRepository = Depends(get_results_repository),
):
    return results.history(user["id"], limit=limit)


@router.get("/history/filter", response_model=List[DetectionRecord])
def get_filtered_history(
    verdict: Optional[Literal["ai", "human"]] = None,
    file_type: Optional[Literal["image", "audio", "video", "text"]] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(settings.history_default_limit, ge=1, le=500),
    user: dict = Depends(get_current_user),
    results: ResultsRepository = Depends(get_results_repository),
):
    return results.history(
        user["id"], limit=limit, verdict=verdict, file_type=file_type,
        start_date=start_date, end_date=end_date,
    )


@router.get("/results/{result_id}", response_model=DetectionRecord)
def get_result(
    result_id: str,
    user: dict = Depends(get_current_user),
    results: ResultsRepository = Depends(get_results_repository),
):
    record = results.get(result_id, user_id=user["id"])
    if not record:
        raise HTTPException(status_code=404, detail="Detection result not found")
    return record


@router.post("/check-duplicate", response_model=CheckDuplicateResponse)
def check_duplicate(
    body: CheckDuplicateRequest,
    user: dict = Depends(get_current_user),
    detection: DetectionService = Depends(get_detection_service),
):
    return detection.check_duplicate(user["id"], body.content_hash)


@router.post("/export")
def export_results(
    body: ExportRequest,
    user: dict = Depends(get_current_user),
    detection: DetectionService = Depends(get_detection_service),
):
    return detection.export_results(user["id"], body.ids, body.format)


# ---- Share links ----

@router.post("/share", response_model=ShareResponse, status_code=201)
def create_share_link(
    body: ShareRequest,
    user: dict = Depends(get_current_user),
    shares: ShareService = Depends(get_share_service),
):
    return shares.create_share_link(user["id"], body.detection_result_id, body.expires_in_days)


@router.get("/share")
def get_user_share_links(
    user: dict = Depends(get_current_user),
    shares: ShareService = Depends(get_share_service),
):
    return shares.get_user_share_links(user["id"])


@router.get("/share/{share_token}/stats", response_model=ShareStats)
def get_share_stats(
    share_token: str,
    user: dict = Depends(get_current_user),
    shares: ShareService = Depends(get_share_service),
):
    return shares.get_share_stats(user["id"], share_token)
