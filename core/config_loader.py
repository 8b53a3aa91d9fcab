import yaml
import os
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, PositiveInt, field_validator

PDF_MIME = "application/pdf"
MSWORD_MIME = "application/msword"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

DEFAULT_LLM_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-haiku-20240307",
}


class DatabaseConfig(BaseModel):
    url: str


class ExtractionConfig(BaseModel):
    """
    Limits and timings of the CV extraction pipeline.

    All durations are expressed in milliseconds except the debounce, which
    is the minimum age (seconds) of a row before the worker touches it.
    """
    max_retries: PositiveInt = 3
    worker_tick_ms: PositiveInt = 30_000
    lm_timeout_ms: PositiveInt = 60_000
    import_tx_timeout_ms: PositiveInt = 30_000
    max_upload_bytes: PositiveInt = 10 * 1024 * 1024
    accepted_mime_types: List[str] = Field(
        default_factory=lambda: [PDF_MIME, MSWORD_MIME, DOCX_MIME]
    )
    debounce_seconds: int = 5
    pending_batch_size: PositiveInt = 5
    extracted_batch_size: PositiveInt = 10
    auto_import: bool = True  # run the import phase right after a successful extraction

    @field_validator("accepted_mime_types")
    @classmethod
    def _mime_types_not_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("accepted_mime_types must list at least one type")
        return [v.lower() for v in value]


class S3LikeConfig(BaseModel):
    endpoint: str = "localhost:9000"
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    bucket: str = "cv-uploads"
    secure: bool = False


class StorageConfig(BaseModel):
    backend: Literal["local_path", "s3_like"] = "local_path"
    base_path: str = "uploads/cvs"
    temp_path: str = "uploads/temp"
    s3: S3LikeConfig = Field(default_factory=S3LikeConfig)


class LlmConfig(BaseModel):
    provider: Literal["openai", "anthropic"] = "openai"
    model: Optional[str] = None  # None = provider default
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.0
    max_tokens: PositiveInt = 4096

    @property
    def resolved_model(self) -> str:
        return self.model or DEFAULT_LLM_MODELS[self.provider]


class QueueConfig(BaseModel):
    # Redis queue settings
    use_async_queue: bool = False
    redis_url: Optional[str] = None
    queue_name: str = "cv_extraction"


class LoggingConfig(BaseModel):
    level: str = "INFO"


class AppConfig(BaseModel):
    database: DatabaseConfig
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    llm: LlmConfig = Field(default_factory=LlmConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # If not found at relative path (e.g. running from root), try absolute or adjusted path
    if not os.path.exists(config_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(base_dir, "..", "config.yaml")

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    # Allow env var override for DB URL
    env_db_url = os.environ.get("DATABASE_URL")
    if env_db_url:
        data.setdefault('database', {})
        data['database']['url'] = env_db_url

    env_storage_backend = os.environ.get("STORAGE_BACKEND")
    if env_storage_backend:
        data.setdefault('storage', {})
        data['storage']['backend'] = env_storage_backend

    # Allow env var override for LLM credentials and endpoint
    env_llm_api_key = os.environ.get("LLM_API_KEY")
    if env_llm_api_key:
        data.setdefault('llm', {})
        data['llm']['api_key'] = env_llm_api_key

    env_llm_base_url = os.environ.get("LLM_BASE_URL")
    if env_llm_base_url:
        data.setdefault('llm', {})
        data['llm']['base_url'] = env_llm_base_url

    # Allow env var override for Redis URL
    env_redis_url = os.environ.get("REDIS_URL")
    if env_redis_url:
        data.setdefault('queue', {})
        data['queue']['redis_url'] = env_redis_url

    return AppConfig(**data)
