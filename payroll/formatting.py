"""Human-readable amounts and notification texts."""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from .models import NATIVE_TOKEN, DisbursementResult, TenantConfig

DEFAULT_DECIMALS = 18


def format_amount(amount: int, token: str, decimals: int = DEFAULT_DECIMALS) -> str:
    value = Decimal(int(amount)) / (Decimal(10) ** decimals)
    unit = "ETH" if token == NATIVE_TOKEN else "tokens"
    return f"{value:.6f} {unit}"


def parse_amount(value: str, decimals: int = DEFAULT_DECIMALS) -> int:
    """Convert a decimal string (``"0.5"``) into smallest-unit integer amount."""
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError("Invalid amount. Must be a valid number.") from exc
    if not parsed.is_finite() or parsed < 0:
        raise ValueError("Invalid amount. Must be a non-negative number.")
    scaled = parsed * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Invalid amount. At most {decimals} decimal places are supported.")
    return int(scaled)


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "Never"
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


def next_run_at(config: TenantConfig, period: timedelta) -> Optional[datetime]:
    if config.last_run_at is None:
        return None
    return config.last_run_at + period


def success_message(result: DisbursementResult, token: str) -> str:
    return (
        "Payout complete\n\n"
        f"- Recipients: {result.recipients}\n"
        f"- Total amount: {format_amount(result.total_amount, token)}\n"
        f"- Transaction: {result.tx_hash}\n"
        f"- Date: {format_timestamp(result.timestamp)}"
    )


def failure_message(result: DisbursementResult) -> str:
    return (
        "Payout failed\n\n"
        f"- Error: {result.error}\n"
        f"- Date: {format_timestamp(result.timestamp)}"
    )


def result_message(result: DisbursementResult, token: str) -> str:
    if result.success:
        return success_message(result, token)
    return failure_message(result)


def error_message(exc: BaseException) -> str:
    return f"Payout error\n\nError: {str(exc) or type(exc).__name__}"
