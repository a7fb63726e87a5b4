from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Database (SQLite file, created on first start)
    database_path: str = "data/taskflow.db"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    cors_origins: list[str] = ["http://localhost:3001"]
    environment: str = "development"

    # Liveness monitor cadences (seconds)
    probe_interval: float = 30
    cleanup_interval: float = 3600
    stats_interval: float = 300
    probe_log_every: int = 10  # log one "OK" line per N successful probes
    escalate_after: int = 10  # consecutive failures before escalating, 0 = never

    # Auth
    refresh_token_ttl_days: int = 30

    # Logging
    log_level: str = "INFO"

    # Notifications (optional: Slack / Telegram)
    slack_webhook_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""


settings = Settings()
