"""
Streaming upload route: /api/upload

Browsers post multipart/form-data with a single `file` field; the body is
streamed into object storage and the response carries the object's URL.
Responses always carry permissive CORS headers.
"""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from veracity.core.dependencies import get_upload_service
from veracity.services.upload_service import UploadError, UploadService

router = APIRouter(tags=["Upload"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@router.options("/api/upload")
async def upload_preflight():
    return Response(status_code=204, headers=CORS_HEADERS)


@router.api_route("/api/upload", methods=["GET", "PUT", "PATCH", "DELETE"])
async def upload_method_not_allowed():
    return JSONResponse({"error": "Method Not Allowed"}, status_code=405, headers=CORS_HEADERS)


@router.post("/api/upload")
async def upload(request: Request, uploads: UploadService = Depends(get_upload_service)):
    try:
        result = await uploads.handle(request)
    except UploadError as e:
        return JSONResponse(e.payload, status_code=e.status_code, headers=CORS_HEADERS)
    return JSONResponse(result, headers=CORS_HEADERS)
