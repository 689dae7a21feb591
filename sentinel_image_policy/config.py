"""Settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Image policy configuration.

    All settings can be overridden via environment variables prefixed
    with ``IMAGE_POLICY_`` (e.g., IMAGE_POLICY_POLICY_PATH).
    """

    # Policy document
    policy_path: str = "/etc/containers/policy.json"

    # Lookaside signature store
    lookaside_url: str | None = None
    lookaside_timeout_seconds: float = 10.0
    lookaside_max_attempts: int = 3
    lookaside_retry_base_delay_seconds: float = 0.5
    lookaside_retry_max_delay_seconds: float = 8.0

    model_config = {"env_prefix": "IMAGE_POLICY_", "case_sensitive": False}


settings = Settings()
