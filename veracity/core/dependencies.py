"""
FastAPI dependency providers.

Every shared component is built once in the lifespan (`veracity.main`) and
parked on `app.state`; these providers hand them to route handlers. Tests
replace any of them through `app.dependency_overrides`.
"""

from fastapi import Request

from veracity.core.rate_limiter import RateLimiter
from veracity.integrations.storage import StorageService
from veracity.services.detection_service import DetectionService
from veracity.services.results_repository import ResultsRepository
from veracity.services.share_service import ShareService
from veracity.services.upload_service import UploadService
from veracity.services.user_service import UserService


def get_db(request: Request):
    return getattr(request.app.state, "db", None)


def get_storage(request: Request) -> StorageService:
    return request.app.state.storage


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_results_repository(request: Request) -> ResultsRepository:
    return ResultsRepository(get_db(request))


def get_user_service(request: Request) -> UserService:
    return UserService(get_db(request))


def get_share_service(request: Request) -> ShareService:
    return ShareService(get_db(request), get_results_repository(request))


def get_detection_service(request: Request) -> DetectionService:
    state = request.app.state
    return DetectionService(
        get_results_repository(request),
        state.storage,
        state.detector,
        http_session=getattr(state, "http_session", None),
    )


def get_upload_service(request: Request) -> UploadService:
    return UploadService(request.app.state.storage)
