import os

from pathlib import Path
from typing import Any, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the legacy Bungee environment variable for the API key."""

        super().model_post_init(__context)

        if not self.socket_api_key:
            fallback = os.getenv("BUNGEE_API_KEY")
            if fallback:
                object.__setattr__(self, "socket_api_key", fallback)

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="auto",
        description="Log renderer: json, console, or auto (console on a terminal or at DEBUG)",
    )

    # Planning service (Socket / Bungee)
    socket_api_key: str = Field(default="", description="Socket API key")
    socket_base_url: str = Field(
        default="https://api.socket.tech",
        description="Base URL for the Socket planning API",
    )
    request_timeout_seconds: int = Field(default=20, ge=1, description="HTTP request timeout")

    # Route status polling
    status_check_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How often to poll the planning service for a submitted step's status",
    )
    status_check_timeout_seconds: Optional[float] = Field(
        default=None,
        description="Give up polling step status after this many seconds (None waits forever)",
    )

    # Retries for recoverable planning errors
    planning_max_attempts: int = Field(default=3, ge=1, description="Attempts per next-step fetch")
    planning_retry_delay_seconds: float = Field(default=1.0, ge=0, description="Initial retry delay")
    planning_retry_max_delay_seconds: float = Field(default=30.0, ge=0, description="Retry delay cap")

    # Wallet
    wallet_rpc_url: str = Field(
        default="http://127.0.0.1:8545",
        description="JSON-RPC endpoint of the wallet used to sign and broadcast",
    )
    receipt_poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Interval between receipt lookups while waiting for confirmation",
    )
    confirmation_timeout_seconds: Optional[float] = Field(
        default=None,
        description="Maximum time to wait for a receipt (None waits forever)",
    )

    # Chain metadata
    chain_cache_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        description="TTL for the supported chains cache",
    )

    @property
    def has_socket_key(self) -> bool:
        return bool(self.socket_api_key)


# Global settings instance
settings = Settings()
