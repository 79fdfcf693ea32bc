"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_anon_key: str = ""

    # Task store
    task_store_backend: str = "memory"  # "memory" or "supabase"
    task_table: str = "analysis_tasks"
    task_result_ttl_hours: int = 24

    # Worker
    run_embedded_worker: bool = False
    worker_pool_size: int = 1
    worker_poll_interval_s: float = 1.0
    worker_shutdown_grace_s: float = 30.0
    worker_stale_lease_minutes: int = 30

    # Stage one (vision / analysis)
    ollama_base_url: str = "http://127.0.0.1:11434"
    ollama_vision_model: str = "llava:7b-v1.6-mistral-q4_K_M"
    stage_one_timeout_s: float = 180.0

    # Stage two (recommendations)
    stage_two_provider: str = "openai"  # "openai" or "ollama"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    ollama_text_model: str = "mistral:7b-instruct"
    stage_two_timeout_s: float = 60.0

    # Transport retries (timeouts and upstream failures only)
    stage_max_attempts: int = 2
    stage_retry_min_wait_s: float = 2.0
    stage_retry_max_wait_s: float = 10.0

    # Image payloads
    max_upload_bytes: int = 10 * 1024 * 1024
    max_image_dimension: int = 1024

    # Collaborators
    persist_results: bool = False
    publish_completion_events: bool = False
    auth_enabled: bool = False

    # Service
    compute_port: int = 8001
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
