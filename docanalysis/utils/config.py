from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    # Document Intelligence service
    document_intelligence_key: str = Field(default="")
    document_intelligence_endpoint: str = Field(default="")
    api_version: str = Field(default="2024-11-30")
    default_model_id: str = Field(default="prebuilt-layout")

    # Polling
    poll_interval: float = Field(default=5.0)
    max_wait: float = Field(default=300.0)

    # HTTP client
    request_timeout: int = Field(default=30)
    connect_timeout: int = Field(default=10)

    # Local documents
    max_file_size: int = Field(default=50 * 1024 * 1024)
    allowed_extensions: List[str] = Field(
        default_factory=lambda: [
            "pdf", "jpg", "jpeg", "png", "bmp", "tiff", "heif",
            "docx", "xlsx", "pptx", "html",
        ]
    )

    # Output
    output_dir: str = Field(default="./results")

    # Performance
    max_batch_size: int = Field(default=5)

    # Gateway
    api_key: str = Field(default="")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Redis result cache
    cache_enabled: bool = Field(default=False)
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_ttl: int = Field(default=3600)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("allowed_extensions", mode="before")
    def validate_allowed_ext(cls, v):
        if isinstance(v, str):
            return [ext.strip().lower().lstrip(".") for ext in v.split(",") if ext.strip()]
        return v

    @field_validator("poll_interval", "max_wait")
    def validate_positive(cls, v, info):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be greater than 0")
        return v

    @field_validator("max_batch_size")
    def validate_batch_size(cls, v):
        if v < 1:
            raise ValueError("max_batch_size must be at least 1")
        return v

    @field_validator("log_level")
    def validate_log_level(cls, v):
        return v.upper()

    def is_development(self) -> bool:
        return self.environment.lower() == "development"


settings = Settings()
