"""
Per-media-class validation, filename sanitization, and log sanitization.

Checks run before any network call: MIME type against the class allow-list
(415) and size against the class ceiling (413). A payload exactly at the
ceiling is accepted.
"""

import re
import logging
from dataclasses import dataclass

from fastapi import HTTPException

from veracity.config import settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
ALLOWED_AUDIO_TYPES = ("audio/mpeg", "audio/wav", "audio/x-m4a", "audio/mp4")
ALLOWED_VIDEO_TYPES = ("video/mp4", "video/quicktime", "video/webm")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class MediaRule:
    media: str
    label: str
    allowed_types: tuple
    max_bytes: int

    @property
    def max_mb(self) -> int:
        return self.max_bytes // 1024 // 1024


MEDIA_RULES = {
    "image": MediaRule("image", "Image", ALLOWED_IMAGE_TYPES, settings.max_image_bytes),
    "audio": MediaRule("audio", "Audio", ALLOWED_AUDIO_TYPES, settings.max_audio_bytes),
    "video": MediaRule("video", "Video", ALLOWED_VIDEO_TYPES, settings.max_video_bytes),
}


def validate_mime_type(media: str, mime_type: str) -> MediaRule:
    rule = MEDIA_RULES[media]
    if (mime_type or "").lower() not in rule.allowed_types:
        raise HTTPException(
            status_code=415,
            detail=f"Invalid {media} type. Allowed: {', '.join(rule.allowed_types)}",
        )
    return rule


def validate_size(media: str, filesize: int) -> None:
    rule = MEDIA_RULES[media]
    if filesize > rule.max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"{rule.label} too large. Maximum size: {rule.max_mb}MB",
        )


def validate_text(text: str, max_chars: int = settings.max_text_chars) -> bool:
    if not text:
        raise HTTPException(status_code=400, detail="Text must not be empty")
    if len(text) > max_chars:
        raise HTTPException(
            status_code=400,
            detail=f"Text too long. Maximum length: {max_chars} characters",
        )
    return True


def sanitize_filename(filename: str) -> str:
    """Whitespace → '_', anything outside [A-Za-z0-9._-] → '_', no leading dots."""
    name = (filename or "").strip().replace("\\", "/").split("/")[-1]
    name = _WHITESPACE.sub("_", name)
    name = _UNSAFE_FILENAME_CHARS.sub("_", name)
    name = name.lstrip(".")
    return name or "file"


def sanitize_log_message(message: str) -> str:
    """Strip sensitive file paths and signed-URL query strings from log messages."""
    msg = re.sub(r'\/[^\s]+\/tmp[a-zA-Z0-9_]+', '[TEMP_FILE]', message)
    msg = re.sub(r'(https?://[^\s?]+)\?[^\s]+', r'\1?[REDACTED]', msg)
    msg = re.sub(r'(Bearer\s+)[A-Za-z0-9._\-]+', r'\1[REDACTED]', msg)
    return msg
