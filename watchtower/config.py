from __future__ import annotations

from pydantic_settings import BaseSettings


class ConfigurationError(Exception):
    """Raised when a required setting is missing at startup."""


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Monitored service
    primary_url: str = "http://localhost:3000"
    service_name: str = "primary"

    # SQLite file (required)
    db_path: str = ""
    retention_days: int = 30  # status rows older than this are purged daily; 0 disables

    # Probing
    probe_interval: int = 30  # seconds between health probes
    probe_timeout_ms: int = 10_000
    record_failures: bool = False  # also persist a StatusRecord for failed probes

    # Recovery (best-effort wake requests while the primary is down)
    recovery_interval: int = 120
    recovery_timeout_ms: int = 3_000
    recovery_delay_ms: int = 1_000  # pause between endpoints
    recovery_endpoints: list[str] = ["/", "/api/health", "/login", "/home"]

    # Seconds to wait for in-flight work on shutdown
    shutdown_grace: float = 15.0

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3001

    # Logging
    log_level: str = "INFO"

    def require(self) -> None:
        """Fail fast before any timer is armed."""
        if not self.db_path:
            raise ConfigurationError("DB_PATH environment variable is not set")
        if not self.primary_url:
            raise ConfigurationError("PRIMARY_URL environment variable is not set")


settings = Settings()
