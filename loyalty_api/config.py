"""
Configuration for Loyalty API.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    API configuration settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # API Server
    host: str = Field(
        default="127.0.0.1",
        description="API host (127.0.0.1 for local only, 0.0.0.0 for external)",
        alias="HOST",
    )
    port: int = Field(
        default=3000,
        description="API port",
        validation_alias="PORT",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="CORS allowed origins"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for a JSON activity log (e.g. user_activity.log)",
    )

    # Governance token (voting power)
    evm_rpc_url: str = Field(
        default="http://localhost:8545",
        description="EVM RPC URL used for read-only balance lookups"
    )
    governance_token_address: Optional[str] = Field(
        default=None,
        description="ERC-20 governance token contract address"
    )
    evm_timeout_seconds: float = Field(default=10.0, description="EVM RPC request timeout")

    # Outbound mail relay
    mail_relay_url: Optional[str] = Field(
        default=None,
        description="HTTP mail relay endpoint; when unset, notifications are only logged",
    )
    mail_from: str = Field(default="rewards@localhost", description="Sender address for notifications")
    mail_timeout_seconds: float = Field(default=5.0, description="Mail relay request timeout")

    # Activity points
    register_points: int = Field(default=5, ge=0, description="Points awarded at registration")
    deposit_points: int = Field(default=10, ge=0, description="Points per deposited unit")
    proof_points: int = Field(default=15, ge=0, description="Base points for a Merkle proof")
    referral_bonus: int = Field(default=10, ge=0, description="Balance credited to a referrer")
    proof_random_min: int = Field(default=1, ge=1, le=1000, description="Lower bound of the proof bonus draw")
    proof_random_max: int = Field(default=1000, ge=1, le=1000, description="Upper bound of the proof bonus draw")

    @model_validator(mode="after")
    def check_proof_random_range(self) -> "Settings":
        if self.proof_random_min > self.proof_random_max:
            raise ValueError("proof_random_min must not exceed proof_random_max")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
