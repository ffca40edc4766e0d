"""
Centralized configuration management using pydantic-settings.
This module provides a single source of truth for all application configuration.
"""


import os

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.utils.logger import setup_logger

load_dotenv(override=True)


logger = setup_logger("core_config")


class Settings(BaseSettings):
    """
    Application settings managed by pydantic-settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_prefix="",
    )

    # ===== OpenAI Configuration =====
    openai_api_key: str | None = Field(
        default=None,
        alias="OPENAI_API_KEY",
        description="OpenAI API key used for extraction and transcription",
    )

    openai_base_url: str | None = Field(
        default=None,
        alias="OPENAI_BASE_URL",
        description="OpenAI API base URL, defaults to https://api.openai.com/v1",
    )

    openai_extraction_model: str = Field(
        default="gpt-4o-mini",
        alias="OPENAI_EXTRACTION_MODEL",
        description="Chat model used for schema-constrained extraction",
    )

    openai_transcription_model: str = Field(
        default="whisper-1",
        alias="OPENAI_TRANSCRIPTION_MODEL",
        description="Speech-to-text model used by the transcription adapter",
    )

    openai_input_cost_per_1k: float = Field(
        default=0.0,
        alias="OPENAI_INPUT_COST_PER_1K",
        description="USD cost per 1K prompt tokens, used for cost accounting",
    )

    openai_output_cost_per_1k: float = Field(
        default=0.0,
        alias="OPENAI_OUTPUT_COST_PER_1K",
        description="USD cost per 1K completion tokens, used for cost accounting",
    )

    # ===== LLM Call Configuration =====
    llm_timeout_extract: int = Field(
        default=120,
        alias="LLM_TIMEOUT_EXTRACT",
        description="Upstream timeout for extraction and transcription calls in seconds",
    )

    llm_extraction_max_tokens: int = Field(
        default=4096,
        alias="LLM_EXTRACTION_MAX_TOKENS",
        description="Maximum completion tokens for extraction calls",
    )

    llm_extraction_temperature: float = Field(
        default=0.2,
        alias="LLM_EXTRACTION_TEMPERATURE",
        description="Sampling temperature for extraction calls",
    )

    transcription_language: str = Field(
        default="en",
        alias="TRANSCRIPTION_LANGUAGE",
        description="Language hint passed to the speech-to-text model",
    )

    # ===== Database Configuration =====
    daylight_schema: str = Field(
        default="daylight",
        alias="DAYLIGHT_SCHEMA",
        description="Database schema name",
    )

    app_database_url: str | None = Field(
        default=None,
        alias="DAYLIGHT_DATABASE_URL",
        description="Application database URL",
    )

    # ===== Storage Configuration =====
    supabase_url: str | None = Field(
        default=None,
        alias="SUPABASE_URL",
        description="Base URL of the Supabase project hosting evidence files",
    )

    supabase_service_role_key: str | None = Field(
        default=None,
        alias="SUPABASE_SERVICE_ROLE_KEY",
        description="Service role key used for storage uploads and signed URLs",
    )

    storage_bucket: str = Field(
        default="daylight-files",
        alias="STORAGE_BUCKET",
        description="Bucket holding uploaded evidence files",
    )

    signed_url_ttl_seconds: int = Field(
        default=900,
        alias="SIGNED_URL_TTL_SECONDS",
        description="Lifetime of signed URLs handed to the vision model",
    )

    storage_http_timeout: float = Field(
        default=30.0,
        alias="STORAGE_HTTP_TIMEOUT",
        description="HTTP timeout for storage calls in seconds",
    )

    # ===== Media Intake Limits =====
    max_audio_bytes: int = Field(
        default=25 * 1024 * 1024,
        alias="MAX_AUDIO_BYTES",
        description="Largest accepted audio upload (speech-to-text API limit)",
    )

    max_image_bytes: int = Field(
        default=20 * 1024 * 1024,
        alias="MAX_IMAGE_BYTES",
        description="Largest accepted image for extraction",
    )

    max_evidence_bytes: int = Field(
        default=50 * 1024 * 1024,
        alias="MAX_EVIDENCE_BYTES",
        description="Largest accepted evidence upload",
    )

    # ===== Job Configuration =====
    job_max_attempts: int = Field(
        default=3,
        alias="JOB_MAX_ATTEMPTS",
        description="Delivery attempts for a background extraction job (first try plus retries)",
    )

    job_retry_delay_seconds: float = Field(
        default=2.0,
        alias="JOB_RETRY_DELAY_SECONDS",
        description="Base delay between job attempts, multiplied by the attempt number",
    )

    ws_poll_interval_seconds: float = Field(
        default=1.0,
        alias="WS_POLL_INTERVAL_SECONDS",
        description="How often the job status websocket re-reads the job row",
    )

    # ===== Auth Configuration =====
    jwt_secret_key: str = Field(
        default="your-secret-key-change-this-in-production",
        alias="JWT_SECRET_KEY",
        description="Secret used to sign access tokens",
    )

    access_token_expire_minutes: int = Field(
        default=1440,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
        description="Access token lifetime in minutes",
    )

    # ===== Server Configuration =====
    server_host: str = Field(
        default="0.0.0.0", alias="SERVER_HOST", description="Server host address"
    )

    server_port: int = Field(
        default=8080, alias="SERVER_PORT", description="Server port number"
    )

    server_workers: int = Field(
        default=1, alias="SERVER_WORKERS", description="Number of uvicorn workers"
    )

    # ===== CORS Configuration =====
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        alias="CORS_ALLOW_ORIGINS",
        description="CORS allowed origins",
    )

    cors_allow_credentials: bool = Field(
        default=True,
        alias="CORS_ALLOW_CREDENTIALS",
        description="Whether to allow credentials in CORS requests",
    )

    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["*"],
        alias="CORS_ALLOW_METHODS",
        description="CORS allowed methods",
    )

    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        alias="CORS_ALLOW_HEADERS",
        description="CORS allowed headers",
    )

    db_unavailable_hint: str = os.getenv(
        "DB_UNAVAILABLE_HINT",
        "Database connection failed. The server may be offline or network connectivity is down.",
    )

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Validate settings and log warnings for missing critical configurations."""

        if not self.openai_api_key:
            logger.warning(
                "OPENAI_API_KEY environment variable not set. Extraction and transcription are disabled."
            )

        if not self.app_database_url:
            logger.warning("DAYLIGHT_DATABASE_URL environment variable not set.")

        if not self.supabase_url or not self.supabase_service_role_key:
            logger.warning(
                "SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY not set. Evidence uploads will fail."
            )

        if self.job_max_attempts < 1:
            logger.warning(
                f"JOB_MAX_ATTEMPTS={self.job_max_attempts} is invalid, using 1."
            )
            self.job_max_attempts = 1

        logger.debug(f"Using database schema: {self.daylight_schema}")
        return self

    @property
    def schema_name(self) -> str:
        return self.daylight_schema


# Global settings instance
settings = Settings()

SCHEMA_NAME = settings.schema_name
