"""HawkEye configuration system using Pydantic Settings."""

from __future__ import annotations

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HawkeyeConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "HawkEye"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    base_url: str = "http://localhost:3000"

    # Database
    database_url: str = "sqlite+aiosqlite:///./hawkeye.db"

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Scan intervals
    domain_monitoring_interval_hours: int = 6
    dark_web_scan_interval_hours: int = 2
    social_media_scan_interval_hours: int = 1
    scan_interval_minutes: int = 30  # pastebin + password store
    alert_dispatch_interval_minutes: int = 5
    alert_expiry_interval_hours: int = 6
    scan_concurrency: int = 1  # targets processed in parallel per category

    # Domain analysis
    monitoring_history_cap: int = 100
    threat_indicator_cap: int = 50
    whois_timeout: float = 15.0
    dns_timeout: float = 5.0
    http_timeout: float = 10.0
    ssl_timeout: float = 10.0
    expiry_warning_days: int = 30

    # Threat intelligence (absent key disables the provider)
    virustotal_api_key: Optional[str] = None
    shodan_api_key: Optional[str] = None

    # Email
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_from: str = "noreply@hawkeye.com"

    # Chat channels
    alert_slack_webhook_url: Optional[str] = None
    alert_discord_webhook_url: Optional[str] = None
    telegram_bot_token: Optional[str] = None

    # Screenshots
    screenshots_enabled: bool = True
    screenshots_dir: str = "screenshots"

    # Realtime
    realtime_queue_size: int = 10000
    ws_max_connections: int = 100
    ws_queue_size: int = 50
    ws_heartbeat_interval: int = 30

    @field_validator(
        "domain_monitoring_interval_hours",
        "dark_web_scan_interval_hours",
        "social_media_scan_interval_hours",
        "scan_interval_minutes",
        "alert_dispatch_interval_minutes",
        "alert_expiry_interval_hours",
        "scan_concurrency",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("interval and concurrency settings must be >= 1")
        return v

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_pass)


def get_config() -> HawkeyeConfig:
    """Factory function to create config instance."""
    return HawkeyeConfig()
