"""
Central application configuration.

Every tunable value lives here as a typed, documented field.
Any field can be overridden at runtime via an environment variable of the
same name (case-insensitive), e.g.:

    MAX_VIDEO_MB=200 uvicorn veracity.main:app    # one-off raise
    export S3_PUBLIC_BASE=https://cdn.example.com  # public bucket

A `.env` file at the project root is loaded automatically.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,   # S3_BUCKET == s3_bucket
        extra="ignore",         # silently drop unknown env vars
    )

    environment: str = Field(
        "development", description="'production' enables secure cookies"
    )

    # ------------------------------------------------------------------ #
    # Object storage: proxy backend                                       #
    # ------------------------------------------------------------------ #
    storage_proxy_url: Optional[str] = Field(
        None, description="Base URL of the bearer-token storage proxy"
    )
    storage_proxy_key: Optional[str] = Field(
        None, description="Bearer token for the storage proxy"
    )

    # ------------------------------------------------------------------ #
    # Object storage: direct bucket backend (S3 API)                      #
    # ------------------------------------------------------------------ #
    s3_bucket: Optional[str] = Field(None, description="Target bucket name")
    s3_region: str = Field("us-east-1", description="Bucket region")
    s3_access_key_id: Optional[str] = Field(None, description="Bucket access key")
    s3_secret_access_key: Optional[str] = Field(None, description="Bucket secret key")
    s3_endpoint: Optional[str] = Field(
        None, description="S3-compatible endpoint (B2, MinIO). Empty → AWS default"
    )
    s3_public_base: Optional[str] = Field(
        None, description="Public base URL for uploaded objects. Empty → signed GET URLs"
    )
    signed_url_ttl_sec: int = Field(
        3_600, description="1 h, lifetime of signed GET URLs and presigned POSTs"
    )
    presigned_post_max_mb: int = Field(
        120, description="content-length-range ceiling for browser uploads (MB)"
    )
    storage_timeout_sec: int = Field(
        600, description="Total timeout for a single proxy storage request"
    )
    url_fetch_connect_timeout_sec: int = Field(
        30, description="Connect timeout when fetching a previously uploaded object"
    )
    url_fetch_read_timeout_sec: int = Field(
        60, description="Max wait for the next chunk of a fetched object; no total cap"
    )

    # ------------------------------------------------------------------ #
    # Streaming upload                                                    #
    # ------------------------------------------------------------------ #
    upload_queue_depth: int = Field(
        8, description="Chunks buffered between request stream and storage write"
    )

    # ------------------------------------------------------------------ #
    # AI or Not detection API                                             #
    # ------------------------------------------------------------------ #
    aiornot_api_url: str = Field(
        "https://api.aiornot.com/v2", description="Detection API base URL"
    )
    aiornot_api_key: str = Field("", description="Detection API key")
    aiornot_timeout_sec: int = Field(
        300, description="Total timeout for a single sync detection call"
    )

    # ------------------------------------------------------------------ #
    # Session / auth                                                      #
    # ------------------------------------------------------------------ #
    jwt_secret: str = Field("", description="HS256 signing secret for session JWTs")
    jwt_algorithm: str = Field("HS256", description="Session JWT algorithm")
    session_cookie_name: str = Field("app_session_id", description="Session cookie name")
    session_ttl_days: int = Field(7, description="Session lifetime (days)")
    password_hash_rounds: int = Field(12, description="bcrypt cost factor")

    # ------------------------------------------------------------------ #
    # Firestore                                                           #
    # ------------------------------------------------------------------ #
    firebase_service_account: Optional[str] = Field(
        None, description="Service account JSON. Empty → Application Default Credentials"
    )

    # ------------------------------------------------------------------ #
    # Redis / rate limiting                                               #
    # ------------------------------------------------------------------ #
    upstash_redis_host: Optional[str] = Field(None, description="Upstash REST URL")
    upstash_redis_password: Optional[str] = Field(None, description="Upstash REST token")
    rate_limit_request_window_sec: int = Field(
        60, description="Sliding window for per-user request rate (seconds)"
    )
    rate_limit_max_requests: int = Field(
        10, description="Max analyze requests allowed within the rate-limit window"
    )
    rate_limit_memory_limit: int = Field(
        1000, description="Max keys before in-memory rate-limit map is pruned"
    )

    # ------------------------------------------------------------------ #
    # Per-media limits                                                    #
    # ------------------------------------------------------------------ #
    max_image_mb: int = Field(10, description="Image size ceiling (MB)")
    max_audio_mb: int = Field(50, description="Audio size ceiling (MB)")
    max_video_mb: int = Field(100, description="Video size ceiling (MB)")
    max_text_chars: int = Field(50_000, description="Text length ceiling (characters)")

    # ------------------------------------------------------------------ #
    # History / sharing                                                   #
    # ------------------------------------------------------------------ #
    history_default_limit: int = Field(50, description="Default page size for history")
    share_token_bytes: int = Field(
        16, description="Random bytes per share token (hex-encoded → 32 chars)"
    )

    # ------------------------------------------------------------------ #
    # Derived byte-level properties (computed from MB fields)             #
    # ------------------------------------------------------------------ #
    @property
    def max_image_bytes(self) -> int:
        return self.max_image_mb * 1024 * 1024

    @property
    def max_audio_bytes(self) -> int:
        return self.max_audio_mb * 1024 * 1024

    @property
    def max_video_bytes(self) -> int:
        return self.max_video_mb * 1024 * 1024

    @property
    def presigned_post_max_bytes(self) -> int:
        return self.presigned_post_max_mb * 1024 * 1024

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# Single shared instance, import this everywhere.
settings = Settings()
