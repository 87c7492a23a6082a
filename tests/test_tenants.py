import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from payroll.models import NATIVE_TOKEN, ZERO_ADDRESS
from payroll.tenants import TenantError, TenantStore

TREASURY = "0x" + "Ab" * 20
TOKEN = "0x" + "CD" * 20


def test_first_access_creates_safe_defaults():
    store = TenantStore()

    config = store.get("space-1")

    assert config.enabled is False
    assert config.treasury_address == ZERO_ADDRESS
    assert config.token == NATIVE_TOKEN
    assert config.role_payouts == {}
    assert config.last_run_at is None
    assert config.notification_target is None
    assert store.tenant_ids() == ["space-1"]


def test_enable_requires_treasury_first():
    store = TenantStore()

    with pytest.raises(TenantError) as excinfo:
        store.enable("space-1")

    assert "treasury" in str(excinfo.value)
    assert store.get("space-1").enabled is False

    store.set_treasury("space-1", TREASURY)
    assert store.enable("space-1").enabled is True
    assert store.get("space-1").treasury_address == TREASURY.lower()


def test_invalid_treasury_and_token_are_rejected():
    store = TenantStore()

    with pytest.raises(TenantError):
        store.set_treasury("space-1", "0x1234")
    with pytest.raises(TenantError):
        store.set_token("space-1", "USDC")


def test_treasury_cannot_be_cleared_while_enabled():
    store = TenantStore()
    store.set_treasury("space-1", TREASURY)
    store.enable("space-1")

    with pytest.raises(TenantError):
        store.set_treasury("space-1", ZERO_ADDRESS)


def test_role_payout_uses_current_default_token():
    store = TenantStore()
    store.set_role_payout("space-1", "admin", 50)
    store.set_token("space-1", TOKEN)
    store.set_role_payout("space-1", "member", 10)

    config = store.get("space-1")

    assert list(config.role_payouts) == ["admin", "member"]
    assert config.role_payouts["admin"].token == NATIVE_TOKEN
    assert config.role_payouts["member"].token == TOKEN.lower()

    store.remove_role_payout("space-1", "admin")
    assert list(store.get("space-1").role_payouts) == ["member"]
    with pytest.raises(TenantError) as excinfo:
        store.remove_role_payout("space-1", "admin")
    assert excinfo.value.status_code == 404


def test_config_survives_reload(tmp_path: Path):
    path = tmp_path / "tenants.json"
    store = TenantStore(path)
    store.set_treasury("space-1", TREASURY)
    store.set_role_payout("space-1", "member", 10**18)
    store.enable("space-1")
    store.set_notification_target("space-1", "channel-9")
    run_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    store.record_run("space-1", run_at)

    reloaded = TenantStore(path).get("space-1")

    assert reloaded.enabled is True
    assert reloaded.role_payouts["member"].amount == 10**18
    assert reloaded.last_run_at == run_at
    assert reloaded.notification_target == "channel-9"
    raw = json.loads(path.read_text())
    assert raw["space-1"]["role_payouts"]["member"]["amount"] == str(10**18)
