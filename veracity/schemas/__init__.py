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
from veracity.schemas.storage import (
    PresignedUrlRequest,
    PresignedUrlResponse,
    UploadFileRequest,
    UploadFileResponse,
)
from veracity.schemas.auth import AuthResponse, LoginRequest, RegisterRequest

__all__ = [
    "AnalyzeAudioRequest",
    "AnalyzeMediaRequest",
    "AnalyzeTextRequest",
    "CheckDuplicateRequest",
    "CheckDuplicateResponse",
    "DetectionRecord",
    "DetectionResponse",
    "ExportRequest",
    "ShareRequest",
    "ShareResponse",
    "ShareStats",
    "PresignedUrlRequest",
    "PresignedUrlResponse",
    "UploadFileRequest",
    "UploadFileResponse",
    "AuthResponse",
    "LoginRequest",
    "RegisterRequest",
]
