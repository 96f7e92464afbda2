"""
Public share route. No session required.
"""

from fastapi import APIRouter, Depends

from veracity.core.dependencies import get_share_service
from veracity.schemas.detection import DetectionRecord
from veracity.services.share_service import ShareService

router = APIRouter(tags=["Share"])


@router.get("/api/share/{share_token}", response_model=DetectionRecord)
def view_shared_result(share_token: str, shares: ShareService = Depends(get_share_service)):
    """Fetches a shared detection result and counts the view."""
    return shares.view_shared_result(share_token)
