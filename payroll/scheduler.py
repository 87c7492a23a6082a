"""Recurring payout loop with per-tenant run states."""
from __future__ import annotations

import enum
import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from .executor import DisbursementExecutor
from .formatting import error_message, result_message
from .models import DisbursementResult, TenantConfig, utcnow
from .notifications import NotificationSink
from .tenants import TenantStore

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = timedelta(days=30)
DEFAULT_TICK_SECONDS = 60 * 60


class RunState(str, enum.Enum):
    IDLE = "idle"
    DUE = "due"
    RUNNING = "running"
    SETTLED = "settled"


class RunInProgressError(Exception):
    """A payout for the tenant is already in flight."""

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"A payout is already running for tenant {tenant_id}")
        self.tenant_id = tenant_id


def is_due(config: TenantConfig, now: datetime, period: timedelta = DEFAULT_PERIOD) -> bool:
    if not config.enabled:
        return False
    if config.last_run_at is None:
        return True
    return now - config.last_run_at >= period


class RunScheduler:
    """Drives scheduled and manual payouts through one executor.

    A tenant leaves ``IDLE`` only through ``_claim``; any tenant not ``IDLE``
    has a run in flight and is skipped by ticks and rejected by manual
    triggers, so no tenant ever has two executions at once.
    """

    def __init__(
        self,
        tenants: TenantStore,
        executor: DisbursementExecutor,
        notifier: Optional[NotificationSink] = None,
        *,
        period: timedelta = DEFAULT_PERIOD,
        tick_interval_seconds: int = DEFAULT_TICK_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.tenants = tenants
        self.executor = executor
        self.notifier = notifier
        self.period = period
        self.tick_interval_seconds = tick_interval_seconds
        self.clock = clock or utcnow
        self._lock = threading.Lock()
        self._states: Dict[str, RunState] = {}
        self._stop = threading.Event()

    def state(self, tenant_id: str) -> RunState:
        with self._lock:
            return self._states.get(tenant_id, RunState.IDLE)

    def _claim(self, tenant_id: str) -> bool:
        with self._lock:
            if self._states.get(tenant_id, RunState.IDLE) is not RunState.IDLE:
                return False
            self._states[tenant_id] = RunState.DUE
            return True

    def _set_state(self, tenant_id: str, state: RunState) -> None:
        with self._lock:
            if state is RunState.IDLE:
                self._states.pop(tenant_id, None)
            else:
                self._states[tenant_id] = state

    def tick(self, now: Optional[datetime] = None) -> Dict[str, DisbursementResult]:
        """Run every due tenant once; returns the results keyed by tenant id."""
        now = now or self.clock()
        results: Dict[str, DisbursementResult] = {}
        for tenant_id in self.tenants.tenant_ids():
            try:
                config = self.tenants.get(tenant_id)
                if not is_due(config, now, self.period):
                    continue
                if not self._claim(tenant_id):
                    logger.info("[%s] Payout already running; skipping this tick", tenant_id)
                    continue
            except Exception as exc:
                logger.exception("[%s] Eligibility check failed: %s", tenant_id, exc)
                continue
            # A manual run may have settled between the read above and the claim.
            try:
                still_due = is_due(self.tenants.get(tenant_id), now, self.period)
            except Exception as exc:
                logger.exception("[%s] Eligibility check failed: %s", tenant_id, exc)
                still_due = False
            if not still_due:
                self._set_state(tenant_id, RunState.IDLE)
                continue
            results[tenant_id] = self._run_claimed(tenant_id)
        return results

    def trigger_now(self, tenant_id: str) -> DisbursementResult:
        """Manual payout; raises ``RunInProgressError`` if one is in flight."""
        if not self._claim(tenant_id):
            raise RunInProgressError(tenant_id)
        logger.info("[%s] Manual payout triggered", tenant_id)
        return self._run_claimed(tenant_id)

    def _run_claimed(self, tenant_id: str) -> DisbursementResult:
        try:
            self._set_state(tenant_id, RunState.RUNNING)
            try:
                result = self.executor.execute(tenant_id)
            except Exception as exc:
                logger.exception("[%s] Unexpected error executing payout: %s", tenant_id, exc)
                self._send(tenant_id, lambda config: error_message(exc))
                return DisbursementResult.failure(f"Unexpected error: {exc}", timestamp=self.clock())

            self._set_state(tenant_id, RunState.SETTLED)
            self._send(tenant_id, lambda config: result_message(result, config.token))
            return result
        finally:
            self._set_state(tenant_id, RunState.IDLE)

    def _send(self, tenant_id: str, render: Callable[[TenantConfig], str]) -> None:
        if self.notifier is None:
            return
        try:
            config = self.tenants.get(tenant_id)
            if not config.notification_target:
                return
            self.notifier.notify(config.notification_target, render(config))
        except Exception as exc:
            logger.exception("[%s] Failed to dispatch payout notification: %s", tenant_id, exc)

    def stop(self) -> None:
        self._stop.set()

    def run_forever(self) -> None:
        """Blocking loop that ticks every configured interval."""
        interval = self.tick_interval_seconds
        logger.info("Starting payout scheduler with interval %s seconds", interval)
        self._stop.clear()
        try:
            while not self._stop.is_set():
                start = time.time()
                try:
                    self.tick()
                except Exception as exc:  # pragma: no cover
                    logger.exception("Unexpected error in payout tick: %s", exc)
                elapsed = time.time() - start
                self._stop.wait(max(interval - elapsed, 0))
        except KeyboardInterrupt:
            logger.info("Payout scheduler stopped via keyboard interrupt")
