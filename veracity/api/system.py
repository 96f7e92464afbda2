"""
Health and crawler routes.
"""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["System"])


@router.get("/health")
async def health(request: Request):
    state = request.app.state
    storage = getattr(state, "storage", None)
    return {
        "status": "healthy",
        "database": getattr(state, "db", None) is not None,
        "storage": [b.name for b in storage.backends] if storage else [],
        "rate_limit_backend": "redis" if getattr(state, "redis", None) else "memory",
    }


@router.get("/robots.txt", response_class=PlainTextResponse)
def robots():
    return "User-agent: *\nDisallow: /"
