"""Settings loader for the payroll backend.

Every field is read from the environment with the ``PAYROLL_`` prefix, e.g.
``PAYROLL_ETH_RPC_URL`` or ``PAYROLL_PAYOUT_PERIOD_DAYS``.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class PayrollSettings(BaseSettings):
    eth_rpc_url: str = Field(default="http://localhost:8545")
    chain_id: int = Field(default=8453)

    payment_private_key: Optional[str] = Field(default=None)
    payment_keystore_path: Optional[Path] = Field(default=None)
    payment_keystore_password: Optional[str] = Field(default=None)

    payment_dry_run: bool = Field(default=True)

    tick_interval_seconds: int = Field(default=3600)
    payout_period_days: int = Field(default=30)
    strict_role_filtering: bool = Field(default=True)

    payout_confirmations: int = Field(default=1)
    payout_receipt_timeout_seconds: int = Field(default=300)

    tenants_path: Optional[Path] = Field(default=Path("/app/data/tenants.json"))
    memberships_path: Optional[Path] = Field(default=Path("/app/data/memberships.json"))
    history_path: Optional[Path] = Field(default=Path("/app/data/history.log"))

    notification_webhook_url: Optional[str] = Field(default=None)
    notification_timeout: float = Field(default=5.0)

    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8081)
    api_root_path: str = Field(default="")
    api_admin_token: Optional[str] = Field(default=None)
    viewer_tokens: Annotated[List[str], NoDecode] = Field(default_factory=list)

    model_config = SettingsConfigDict(
        env_prefix="PAYROLL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator(
        "tick_interval_seconds",
        "payout_period_days",
        "payout_confirmations",
        "payout_receipt_timeout_seconds",
        "api_port",
    )
    def validate_positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator("notification_timeout")
    def validate_positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator("payment_private_key")
    def validate_private_key(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        candidate = value.strip()
        if not candidate:
            return None
        if not re.fullmatch(r"(0x)?[0-9a-fA-F]{64}", candidate):
            raise ValueError("PAYROLL_PAYMENT_PRIVATE_KEY must be a 32-byte hex string")
        return candidate

    @field_validator("viewer_tokens", mode="before")
    @classmethod
    def parse_viewer_tokens(cls, value):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, str):
            parts = re.split(r"[\s,]+", value.strip())
            return [part for part in parts if part]
        return value


settings = PayrollSettings()
