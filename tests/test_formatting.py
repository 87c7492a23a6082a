from datetime import datetime, timedelta, timezone

import pytest

from payroll.formatting import (
    error_message,
    format_amount,
    format_timestamp,
    next_run_at,
    parse_amount,
    result_message,
)
from payroll.models import NATIVE_TOKEN, DisbursementResult, TenantConfig

AT = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


def test_format_amount_uses_six_places():
    assert format_amount(10**16, NATIVE_TOKEN) == "0.010000 ETH"
    assert format_amount(5 * 10**18, "0x" + "1" * 40) == "5.000000 tokens"


@pytest.mark.parametrize(
    "raw,expected",
    [("0.01", 10**16), ("1", 10**18), (" 2.5 ", 25 * 10**17), ("0", 0)],
)
def test_parse_amount_accepts_decimals(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "-1", "NaN", "Infinity", "0." + "1" * 19])
def test_parse_amount_rejects_invalid_values(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_timestamps_and_next_run():
    assert format_timestamp(None) == "Never"
    assert format_timestamp(AT) == "2024-06-01 09:30:00 UTC"

    config = TenantConfig(tenant_id="t", enabled=True)
    assert next_run_at(config, timedelta(days=30)) is None
    config.last_run_at = AT
    assert next_run_at(config, timedelta(days=30)) == AT + timedelta(days=30)


def test_result_messages():
    success = DisbursementResult(
        success=True, recipients=3, total_amount=3 * 10**16, timestamp=AT, tx_hash="0xdead"
    )
    failure = DisbursementResult.failure("No eligible recipients found", timestamp=AT)

    text = result_message(success, NATIVE_TOKEN)
    assert text.startswith("Payout complete")
    assert "- Recipients: 3" in text
    assert "- Total amount: 0.030000 ETH" in text
    assert "0xdead" in text

    assert result_message(failure, NATIVE_TOKEN).startswith("Payout failed\n\n- Error: No eligible recipients found")
    assert error_message(RuntimeError()) == "Payout error\n\nError: RuntimeError"
