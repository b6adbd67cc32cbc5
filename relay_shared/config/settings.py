"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Relay settings with defaults for local development."""

    # Server binding
    # PORT is set by the hosting platform; 8080 is the local default
    host: str = "0.0.0.0"
    port: int = 8080

    # Environment
    environment: str = "development"
    debug: bool = False

    # Comma-separated list of allowed origins (empty accepts any origin)
    allowed_origins: str = ""

    # Heartbeat: probe period in seconds. A connection that misses one full
    # cycle is evicted on the next one.
    heartbeat_interval: float = 30.0

    # Shutdown: seconds allowed for notifying and closing every connection
    # before the process is force-terminated
    shutdown_grace_period: float = 5.0

    # Periodic server status log (5 minutes)
    status_log_interval: float = 300.0

    # WebSocket limits
    ws_max_message_size: int = 64 * 1024  # 64 KB
    ws_broadcast_batch_size: int = 50  # Connections to send to in parallel

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def origins(self) -> list[str]:
        """Allowed origins as a list, ``["*"]`` when unrestricted."""
        origins = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return origins or ["*"]

    def validate_production(self) -> list[str]:
        """
        Validate timing and environment settings.
        Returns a list of problems. Empty list means all checks pass.
        """
        errors = []

        if self.heartbeat_interval <= 0:
            errors.append("HEARTBEAT_INTERVAL must be positive")

        if self.shutdown_grace_period <= 0:
            errors.append("SHUTDOWN_GRACE_PERIOD must be positive")
        elif self.shutdown_grace_period >= self.heartbeat_interval:
            errors.append(
                "SHUTDOWN_GRACE_PERIOD should be shorter than HEARTBEAT_INTERVAL"
            )

        if self.ws_broadcast_batch_size <= 0:
            errors.append("WS_BROADCAST_BATCH_SIZE must be positive")

        if self.environment == "production" and self.debug:
            errors.append("DEBUG must be False in production")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
