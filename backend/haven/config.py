"""
Haven Configuration
===================
All environment variables in one place. Pydantic Settings validates
types at startup so a bad cache window or a missing key shows up
immediately instead of on the first request.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Loaded from environment variables or a .env file."""

    # --- Supabase ---
    supabase_url: str = "http://localhost:54321"
    supabase_service_key: str = ""  # service_role key for backend operations

    # --- OpenAI text-to-speech ---
    openai_api_key: str = ""
    openai_tts_url: str = "https://api.openai.com/v1/audio/speech"
    tts_timeout_seconds: float = 30.0

    # --- App settings ---
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8080"]

    # --- Offline-first data access ---
    # When False, failed fetches leave stores empty instead of showing
    # demo records. The is_using_fallback flag is still raised.
    enable_fallback_data: bool = True
    mood_cache_ttl_seconds: int = 60 * 60
    profile_cache_ttl_seconds: int = 5 * 60
    storage_namespace: str = "haven"
    snapshot_path: str = ".haven/storage.json"

    # --- Plan limits (used when a profile leaves them unset) ---
    default_ai_messages_limit: int = 20
    default_journal_entries_limit: int = 10

    # --- AI chat ---
    max_free_chat_messages: int = 10  # per calendar month

    # --- Subscription (mock checkout, no payment gateway) ---
    checkout_success_url: str = "https://example.com/checkout/success?session_id=mock_session"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
