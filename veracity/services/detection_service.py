"""
Detection orchestrator.

For every analyze call:
  1. validate MIME type / size (or text length) before any network call
  2. load the content from inline base64 or a previously uploaded URL
  3. hash it and consult the per-user duplicate cache → short-circuit on hit
  4. call the matching AI or Not route, timing only that call
  5. normalize the upstream payload into a Verdict
  6. store the original bytes (not for text) and record the result
  7. return the uniform result shape

Upstream plan restrictions surface as 403; every other upstream, storage or
database failure collapses to a 500 with a safe message, the detail is only
logged.
"""

import base64
import asyncio
import binascii
import csv
import io
import logging
import time
from typing import Awaitable, Callable, Optional

import aiohttp
from fastapi import HTTPException

from veracity.config import settings
from veracity.core.file_validator import (
    MEDIA_RULES,
    sanitize_filename,
    sanitize_log_message,
    validate_mime_type,
    validate_size,
    validate_text,
)
from veracity.detection.cache import DuplicateCache
from veracity.detection.hashing import hash_content
from veracity.detection.normalize import format_confidence, normalize_response
from veracity.integrations import http_client
from veracity.integrations.aiornot import AIOrNotClient, UpstreamError
from veracity.integrations.storage import StorageService
from veracity.services.results_repository import ResultsRepository

logger = logging.getLogger(__name__)

STORAGE_DIRS = {"image": "images", "audio": "audio", "video": "video"}
FETCH_CHUNK_BYTES = 64 * 1024
EXPORT_HEADERS = ["ID", "File Name", "File Type", "Verdict", "Confidence", "Generator", "Date"]


def decode_base64(file_data: str) -> bytes:
    if file_data.startswith("data:"):
        file_data = file_data.split(",", 1)[-1]
    try:
        return base64.b64decode(file_data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Invalid base64 file data")


class DetectionService:
    def __init__(
        self,
        results: ResultsRepository,
        storage: StorageService,
        detector: AIOrNotClient,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self.results = results
        self.storage = storage
        self.detector = detector
        self.cache = DuplicateCache(results)
        self.http_session = http_session

    # ------------------------------------------------------------------ #
    # Public operations                                                   #
    # ------------------------------------------------------------------ #

    async def analyze_image(
        self,
        user_id: str,
        file_name: str,
        mime_type: str,
        file_data: Optional[str] = None,
        file_url: Optional[str] = None,
    ) -> dict:
        return await self._analyze_media(
            user_id, "image", file_name, mime_type, file_data, file_url,
            lambda content: self.detector.detect_image(content, file_name),
        )

    async def analyze_audio(
        self,
        user_id: str,
        file_name: str,
        mime_type: str,
        audio_type: str = "voice",
        file_data: Optional[str] = None,
        file_url: Optional[str] = None,
    ) -> dict:
        if audio_type == "music":
            call = lambda content: self.detector.detect_audio_music(content, file_name)
        else:
            call = lambda content: self.detector.detect_audio_voice(content, file_name)
        return await self._analyze_media(
            user_id, "audio", file_name, mime_type, file_data, file_url, call
        )

    async def analyze_video(
        self,
        user_id: str,
        file_name: str,
        mime_type: str,
        file_data: Optional[str] = None,
        file_url: Optional[str] = None,
    ) -> dict:
        return await self._analyze_media(
            user_id, "video", file_name, mime_type, file_data, file_url,
            lambda content: self.detector.detect_video(content, file_name),
        )

    async def analyze_text(self, user_id: str, text: str) -> dict:
        validate_text(text)
        content = text.encode("utf-8")
        return await self._run(
            user_id, "text", "text_input", content, None,
            lambda _: self.detector.detect_text(text),
        )

    def check_duplicate(self, user_id: str, content_hash: str) -> dict:
        duplicate = self.cache.lookup(user_id, content_hash.lower())
        if duplicate:
            duplicate.pop("raw_response", None)
        return {"is_duplicate": duplicate is not None, "result": duplicate}

    def export_results(self, user_id: str, ids: list, fmt: str = "csv") -> dict:
        try:
            results = self.results.for_export(user_id, ids)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"[DETECTION] Export failed: {e}")
            raise HTTPException(status_code=500, detail="Failed to export results.")

        for record in results:
            record.pop("raw_response", None)
            record.pop("content_hash", None)

        if fmt == "json":
            return {"success": True, "data": results, "format": "json"}

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(EXPORT_HEADERS)
        for r in results:
            created_at = r.get("created_at")
            writer.writerow([
                r["id"],
                r.get("file_name", ""),
                r.get("file_type", ""),
                r.get("verdict", ""),
                f"{float(r.get('confidence') or 0) * 100:.2f}%",
                r.get("detected_generator") or "N/A",
                created_at.isoformat() if created_at else "",
            ])
        return {"success": True, "data": buffer.getvalue(), "format": "csv"}

    # ------------------------------------------------------------------ #
    # Content loading                                                     #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _fetch_timeout() -> aiohttp.ClientTimeout:
        # No total cap: only a stalled connection or read is cut off.
        return aiohttp.ClientTimeout(
            total=None,
            sock_connect=settings.url_fetch_connect_timeout_sec,
            sock_read=settings.url_fetch_read_timeout_sec,
        )

    async def fetch_url(self, url: str, max_bytes: int, label: str = "File") -> bytes:
        """Fetch a previously uploaded object into memory, stopping at the size ceiling."""
        try:
            async with http_client.request_session(self.http_session) as session:
                async with session.get(url, timeout=self._fetch_timeout()) as response:
                    if response.status != 200:
                        raise HTTPException(
                            status_code=400,
                            detail=f"Failed to fetch file from URL: Status {response.status}",
                        )
                    buffer = bytearray()
                    async for chunk in response.content.iter_chunked(FETCH_CHUNK_BYTES):
                        buffer.extend(chunk)
                        if len(buffer) > max_bytes:
                            raise HTTPException(
                                status_code=413,
                                detail=f"{label} too large. Maximum size: {max_bytes // 1024 // 1024}MB",
                            )
                    return bytes(buffer)
        except asyncio.TimeoutError:
            logger.warning(sanitize_log_message(f"[DETECTION] URL fetch timed out for {url}"))
            raise HTTPException(status_code=504, detail="Timed out fetching file from URL")
        except aiohttp.ClientError as e:
            logger.warning(sanitize_log_message(f"[DETECTION] URL fetch failed for {url}: {e}"))
            raise HTTPException(status_code=400, detail="Error fetching file from URL")

    async def _load_content(
        self, media: str, file_data: Optional[str], file_url: Optional[str]
    ) -> bytes:
        rule = MEDIA_RULES[media]
        if file_url:
            return await self.fetch_url(file_url, rule.max_bytes, rule.label)
        if file_data:
            return decode_base64(file_data)
        raise HTTPException(status_code=400, detail="No file data provided")

    # ------------------------------------------------------------------ #
    # Orchestration                                                       #
    # ------------------------------------------------------------------ #

    async def _analyze_media(
        self,
        user_id: str,
        media: str,
        file_name: str,
        mime_type: str,
        file_data: Optional[str],
        file_url: Optional[str],
        call: Callable[[bytes], Awaitable[dict]],
    ) -> dict:
        validate_mime_type(media, mime_type)
        content = await self._load_content(media, file_data, file_url)
        validate_size(media, len(content))
        return await self._run(user_id, media, file_name, content, mime_type, call)

    async def _cached_response(self, duplicate: dict) -> dict:
        storage_key = duplicate.get("storage_key")
        file_url = (await self.storage.get(storage_key)).url if storage_key else ""
        return {
            "success": True,
            "result_id": duplicate.get("id"),
            "verdict": duplicate["verdict"],
            "confidence": format_confidence(duplicate["confidence"]),
            "detected_generator": duplicate.get("detected_generator"),
            "file_url": file_url,
            "processing_time_ms": 0,
            "is_cached": True,
        }

    async def _run(
        self,
        user_id: str,
        media: str,
        file_name: str,
        content: bytes,
        mime_type: Optional[str],
        call: Callable[[bytes], Awaitable[dict]],
    ) -> dict:
        content_hash = hash_content(content)
        duplicate = self.cache.lookup(user_id, content_hash)

        try:
            if duplicate:
                return await self._cached_response(duplicate)

            start_time = time.perf_counter()
            payload = await call(content)
            processing_time_ms = int((time.perf_counter() - start_time) * 1000)

            verdict = normalize_response(media, payload)

            storage_key = None
            file_url = ""
            if media in STORAGE_DIRS:
                storage_key = (
                    f"detections/{user_id}/{STORAGE_DIRS[media]}/"
                    f"{int(time.time() * 1000)}-{sanitize_filename(file_name)}"
                )
                stored = await self.storage.put(storage_key, content, mime_type)
                file_url = stored.url

            record = self.results.create({
                "user_id": user_id,
                "file_name": file_name,
                "file_type": media,
                "file_size": len(content),
                "content_hash": content_hash,
                "storage_key": storage_key,
                "verdict": verdict.verdict,
                "confidence": verdict.confidence_str,
                "detected_generator": verdict.detected_generator,
                "generator_scores": verdict.generator_scores,
                "raw_response": payload.get("report", {}),
                "processing_time_ms": processing_time_ms,
                "is_duplicate": False,
            })

            logger.info(
                f"[DETECTION] {media} {file_name}: verdict={verdict.verdict} "
                f"confidence={verdict.confidence_str} generator={verdict.detected_generator} "
                f"in {processing_time_ms}ms"
            )
            return {
                "success": True,
                "result_id": record["id"],
                "verdict": verdict.verdict,
                "confidence": verdict.confidence_str,
                "detected_generator": verdict.detected_generator,
                "file_url": file_url,
                "processing_time_ms": processing_time_ms,
                "is_cached": False,
            }

        except HTTPException:
            raise
        except UpstreamError as e:
            logger.error(sanitize_log_message(f"[DETECTION] {media} analysis failed: {e}"))
            if e.is_plan_restricted:
                raise HTTPException(
                    status_code=403,
                    detail=(
                        f"{media.capitalize()} detection is not available with the current "
                        "API plan. Please upgrade your account."
                    ),
                )
            raise HTTPException(
                status_code=500, detail=f"Failed to analyze {media}. Please try again."
            )
        except Exception as e:
            logger.error(
                sanitize_log_message(f"[DETECTION] {media} analysis failed: {e}"), exc_info=True
            )
            raise HTTPException(
                status_code=500, detail=f"Failed to analyze {media}. Please try again."
            )
