"""Per-tenant payroll configuration store."""
from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from .models import (
    RolePayout,
    TenantConfig,
    is_configured_address,
    normalize_address,
    normalize_token,
)

logger = logging.getLogger(__name__)


class TenantError(Exception):
    """Raised when an administrative change would break a tenant invariant."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class TenantStore:
    """JSON-backed tenant configuration, created lazily with safe defaults.

    ``path=None`` keeps everything in memory. Writers for one tenant serialise
    on ``lock(tenant_id)``; mutation helpers re-read the record under that lock
    so a concurrent admin change and an executor timestamp update cannot
    overwrite each other.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path
        self._lock = threading.RLock()
        self._tenant_locks: Dict[str, threading.RLock] = {}
        self._records: Dict[str, Dict[str, object]] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None:
            return
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return
        with self.path.open("r", encoding="utf-8") as handle:
            try:
                data = json.load(handle)
            except json.JSONDecodeError:
                logger.error("Tenant store %s is not valid JSON; starting empty", self.path)
                data = {}
        if isinstance(data, dict):
            self._records = {str(key): dict(value) for key, value in data.items() if isinstance(value, dict)}

    def _persist(self) -> None:
        if self.path is None:
            return
        tmp = self.path.with_suffix(".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(self._records, handle, indent=2, sort_keys=True)
        tmp.replace(self.path)

    @contextmanager
    def lock(self, tenant_id: str) -> Iterator[None]:
        with self._lock:
            tenant_lock = self._tenant_locks.setdefault(tenant_id, threading.RLock())
        with tenant_lock:
            yield

    def get(self, tenant_id: str) -> TenantConfig:
        with self._lock:
            raw = self._records.get(tenant_id)
            if raw is None:
                config = TenantConfig(tenant_id=tenant_id)
                self._records[tenant_id] = config.to_dict()
                self._persist()
                return config
            return TenantConfig.from_dict(tenant_id, raw)

    def save(self, config: TenantConfig) -> None:
        with self._lock:
            self._records[config.tenant_id] = config.to_dict()
            self._persist()

    def tenant_ids(self) -> List[str]:
        with self._lock:
            return list(self._records.keys())

    # ------------------------------------------------------------------
    # Administrative mutations
    # ------------------------------------------------------------------
    def set_treasury(self, tenant_id: str, address: str) -> TenantConfig:
        try:
            normalized = normalize_address(address)
        except ValueError as exc:
            raise TenantError("Invalid wallet address. Must be a 0x-prefixed 20-byte address.") from exc
        with self.lock(tenant_id):
            config = self.get(tenant_id)
            if config.enabled and not is_configured_address(normalized):
                raise TenantError("Cannot clear the treasury while payouts are enabled")
            config.treasury_address = normalized
            self.save(config)
        logger.info("[%s] Treasury set to %s", tenant_id, normalized)
        return config

    def set_token(self, tenant_id: str, token: str) -> TenantConfig:
        try:
            normalized = normalize_token(token)
        except ValueError as exc:
            raise TenantError(str(exc)) from exc
        with self.lock(tenant_id):
            config = self.get(tenant_id)
            config.token = normalized
            self.save(config)
        return config

    def set_role_payout(self, tenant_id: str, role_id: str, amount: int) -> TenantConfig:
        """Set a role's amount; the role pays in the tenant's current default token."""
        role_id = (role_id or "").strip()
        if not role_id:
            raise TenantError("role_id must not be empty")
        if amount < 0:
            raise TenantError("Invalid amount. Must be a non-negative number.")
        with self.lock(tenant_id):
            config = self.get(tenant_id)
            config.role_payouts[role_id] = RolePayout(role_id=role_id, amount=int(amount), token=config.token)
            self.save(config)
        return config

    def remove_role_payout(self, tenant_id: str, role_id: str) -> TenantConfig:
        with self.lock(tenant_id):
            config = self.get(tenant_id)
            if role_id not in config.role_payouts:
                raise TenantError(f"No payout configured for role {role_id}", status_code=404)
            del config.role_payouts[role_id]
            self.save(config)
        return config

    def enable(self, tenant_id: str) -> TenantConfig:
        with self.lock(tenant_id):
            config = self.get(tenant_id)
            if not is_configured_address(config.treasury_address):
                raise TenantError("Please set a treasury address before enabling payouts")
            config.enabled = True
            self.save(config)
        logger.info("[%s] Automatic payouts enabled", tenant_id)
        return config

    def disable(self, tenant_id: str) -> TenantConfig:
        with self.lock(tenant_id):
            config = self.get(tenant_id)
            config.enabled = False
            self.save(config)
        logger.info("[%s] Automatic payouts disabled", tenant_id)
        return config

    def set_notification_target(self, tenant_id: str, target: Optional[str]) -> TenantConfig:
        with self.lock(tenant_id):
            config = self.get(tenant_id)
            config.notification_target = (target or "").strip() or None
            self.save(config)
        return config

    def record_run(self, tenant_id: str, run_at: datetime) -> TenantConfig:
        """Advance ``last_run_at`` after a confirmed disbursement."""
        with self.lock(tenant_id):
            config = self.get(tenant_id)
            config.last_run_at = run_at
            self.save(config)
        return config
