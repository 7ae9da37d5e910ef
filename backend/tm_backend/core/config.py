"""Application settings."""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """App config from env."""

    app_name: str = "Task Manager Uploads"
    debug: bool = False
    # Structured logging: set LOG_JSON=1 for one-JSON-object-per-line (CloudWatch, etc.)
    log_json: bool = False
    # If set, /metrics requires the X-Metrics-Secret header to match
    metrics_secret: str | None = None

    # CORS (comma-separated allowlist)
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Local uploads tree (used when S3 credentials are incomplete)
    uploads_dir: str = "./uploads"
    # Stream chunk size for local reads and S3 bodies
    stream_chunk_bytes: int = 64 * 1024

    # S3: remote mode is selected only when region, both keys and bucket are all set.
    # Session token is optional (temporary credentials, e.g. Learner Lab / STS).
    aws_region: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_session_token: str | None = None
    aws_bucket_name: str | None = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
