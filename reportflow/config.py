"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_anon_key: str = ""
    storage_bucket: str = "eeg-files"

    # Collaborator wiring
    backend_mode: str = "simulated"  # "simulated" or "supabase"

    # Document processor
    processor_api_url: str = "https://api.pidpro.com/v1"
    processor_api_key: Optional[str] = None
    processor_poll_interval_seconds: float = 5.0
    processor_max_wait_seconds: float = 300.0
    simulated_processor_polls: int = 2

    # Assessment engine
    assessment_api_url: str = "https://api.neurosense.cloud/v2"
    assessment_api_key: Optional[str] = None

    # Workflow processing
    estimated_duration_minutes: int = 8
    stage_max_attempts: int = 1
    stage_retry_backoff_seconds: float = 0.0
    quality_failed_step_penalty: int = 20
    quality_time_threshold_seconds: int = 600
    quality_time_penalty: int = 10
    max_upload_bytes: int = 500 * 1024 * 1024
    shutdown_timeout_seconds: float = 10.0

    # Server
    compute_port: int = 8001
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
