"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Proactive check-in engine configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: check-ins carry medication and calendar details.
    carecheck_host: str = "127.0.0.1"
    carecheck_port: int = 8001
    carecheck_log_level: str = "info"
    # Binding to a non-loopback host is refused unless this is set true
    # (there is currently no auth layer).
    carecheck_allow_insecure_bind: bool = False

    # Message generation LLM
    llm_provider: Literal["anthropic", "openai", "mock"] = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    generation_timeout_seconds: float = 8.0
    enhancement_confidence_threshold: float = 0.8

    # Storage
    db_path: str = "~/.carecheck/checkins.db"
    encryption_key: str = ""

    # Rule catalog (directory or single YAML file; empty = bundled defaults)
    rules_path: str = ""

    # Scheduling and budgets
    check_interval_minutes: int = 15
    global_max_nudges_per_day: int = 5
    check_in_ttl_minutes: int = 60
    # 0 disables throttling of concerning-pattern alerts.
    concern_alert_cooldown_minutes: int = 240

    # Prompt content
    privacy_mode: Literal["strict", "standard"] = "strict"
    user_name: str = ""


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
