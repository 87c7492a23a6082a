"""Domain types shared by the disbursement engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from eth_utils import is_hex_address

NATIVE_TOKEN = "ETH"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso8601(value: str) -> datetime:
    candidate = value
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    parsed = datetime.fromisoformat(candidate)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_address(value: str) -> str:
    """Return the lower-cased form of a 0x-prefixed 20-byte hex address.

    Raises ``ValueError`` for anything that is not a well-formed address.
    """
    candidate = (value or "").strip()
    if not candidate.startswith("0x") or len(candidate) != 42 or not is_hex_address(candidate):
        raise ValueError(f"Invalid address: {value!r}")
    return candidate.lower()


def is_configured_address(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        return normalize_address(value) != ZERO_ADDRESS
    except ValueError:
        return False


def normalize_token(value: str) -> str:
    candidate = (value or "").strip()
    if candidate.upper() == NATIVE_TOKEN:
        return NATIVE_TOKEN
    try:
        return normalize_address(candidate)
    except ValueError as exc:
        raise ValueError(
            'Invalid token. Use "ETH" for the native currency or a contract address (0x...)'
        ) from exc


@dataclass
class RolePayout:
    role_id: str
    amount: int
    token: str = NATIVE_TOKEN

    def to_dict(self) -> Dict[str, Any]:
        return {"role_id": self.role_id, "amount": str(self.amount), "token": self.token}

    @classmethod
    def from_dict(cls, role_id: str, raw: Dict[str, Any]) -> "RolePayout":
        return cls(
            role_id=str(raw.get("role_id") or role_id),
            amount=int(raw.get("amount", 0)),
            token=str(raw.get("token") or NATIVE_TOKEN),
        )


@dataclass
class TenantConfig:
    tenant_id: str
    treasury_address: str = ZERO_ADDRESS
    token: str = NATIVE_TOKEN
    role_payouts: Dict[str, RolePayout] = field(default_factory=dict)
    enabled: bool = False
    last_run_at: Optional[datetime] = None
    notification_target: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "treasury_address": self.treasury_address,
            "token": self.token,
            "role_payouts": {role_id: payout.to_dict() for role_id, payout in self.role_payouts.items()},
            "enabled": self.enabled,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "notification_target": self.notification_target,
        }

    @classmethod
    def from_dict(cls, tenant_id: str, raw: Dict[str, Any]) -> "TenantConfig":
        role_payouts: Dict[str, RolePayout] = {}
        raw_roles = raw.get("role_payouts")
        if isinstance(raw_roles, dict):
            for role_id, value in raw_roles.items():
                if isinstance(value, dict):
                    role_payouts[str(role_id)] = RolePayout.from_dict(str(role_id), value)
        last_run_raw = raw.get("last_run_at")
        return cls(
            tenant_id=tenant_id,
            treasury_address=str(raw.get("treasury_address") or ZERO_ADDRESS),
            token=str(raw.get("token") or NATIVE_TOKEN),
            role_payouts=role_payouts,
            enabled=bool(raw.get("enabled", False)),
            last_run_at=parse_iso8601(last_run_raw) if isinstance(last_run_raw, str) and last_run_raw else None,
            notification_target=raw.get("notification_target") or None,
        )


@dataclass(frozen=True)
class Obligation:
    recipient: str
    amount: int
    token: str


@dataclass(frozen=True)
class NativeTransfer:
    to: str
    amount: int


@dataclass(frozen=True)
class ContractTransfer:
    contract: str
    recipient: str
    amount: int


TransferOperation = Union[NativeTransfer, ContractTransfer]


@dataclass(frozen=True)
class DisbursementResult:
    success: bool
    recipients: int
    total_amount: int
    timestamp: datetime
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, reason: str, *, timestamp: Optional[datetime] = None) -> "DisbursementResult":
        return cls(
            success=False,
            recipients=0,
            total_amount=0,
            timestamp=timestamp or utcnow(),
            error=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "tx_hash": self.tx_hash,
            "recipients": self.recipients,
            "total_amount": str(self.total_amount),
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DisbursementResult":
        return cls(
            success=bool(raw.get("success", False)),
            recipients=int(raw.get("recipients", 0)),
            total_amount=int(raw.get("total_amount", 0)),
            timestamp=parse_iso8601(str(raw["timestamp"])),
            tx_hash=raw.get("tx_hash") or None,
            error=raw.get("error") or None,
        )


@dataclass(frozen=True)
class DisbursementRecord:
    tenant_id: str
    run_at: datetime
    result: DisbursementResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "run_at": self.run_at.isoformat(),
            "result": self.result.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DisbursementRecord":
        return cls(
            tenant_id=str(raw["tenant_id"]),
            run_at=parse_iso8601(str(raw["run_at"])),
            result=DisbursementResult.from_dict(raw["result"]),
        )
