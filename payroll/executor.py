"""Single-batch disbursement for one tenant."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from .batch import build_batch, operations_total
from .chain import BatchChainClient, ChainError
from .history import HistoryLedger
from .membership import MembershipSource
from .models import DisbursementRecord, DisbursementResult, is_configured_address, utcnow
from .resolver import resolve_obligations
from .tenants import TenantStore

logger = logging.getLogger(__name__)


class DisbursementExecutor:
    """Resolve, batch, submit and settle one payout run.

    ``execute`` never raises for business conditions: precondition failures
    come back as a failed ``DisbursementResult`` without touching the chain or
    any stored state, and chain failures come back as a failed result that is
    also written to the history ledger. ``last_run_at`` only moves after the
    batch is confirmed.
    """

    def __init__(
        self,
        tenants: TenantStore,
        history: HistoryLedger,
        membership: MembershipSource,
        chain: BatchChainClient,
        *,
        strict_roles: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.tenants = tenants
        self.history = history
        self.membership = membership
        self.chain = chain
        self.strict_roles = strict_roles
        self.clock = clock or utcnow

    def execute(self, tenant_id: str) -> DisbursementResult:
        config = self.tenants.get(tenant_id)

        if not config.enabled:
            return self._precondition_failed(tenant_id, "Payouts are not enabled for this tenant")
        if not is_configured_address(config.treasury_address):
            return self._precondition_failed(tenant_id, "Treasury address not configured")

        members = self.membership.list_members(tenant_id)
        if not members:
            return self._precondition_failed(tenant_id, "No members found for this tenant")

        obligations = resolve_obligations(
            tenant_id,
            members,
            config.role_payouts,
            self.membership,
            strict=self.strict_roles,
        )
        if not obligations:
            return self._precondition_failed(tenant_id, "No eligible recipients found")

        operations = build_batch(obligations)
        if not operations:
            return self._precondition_failed(tenant_id, "No valid payout calls to execute")

        total_amount = operations_total(operations)
        logger.info(
            "[%s] Submitting payout batch: recipients=%s transfers=%s total=%s treasury=%s",
            tenant_id,
            len(obligations),
            len(operations),
            total_amount,
            config.treasury_address,
        )
        try:
            tx_hash = self.chain.submit_batch(config.treasury_address, operations)
            self.chain.confirm(tx_hash)
        except ChainError as exc:
            logger.error("[%s] Payout batch failed; last run left unchanged: %s", tenant_id, exc)
            result = DisbursementResult.failure(
                str(exc) or "Unknown error during payout execution",
                timestamp=self.clock(),
            )
            self.history.append(tenant_id, DisbursementRecord(tenant_id, result.timestamp, result))
            return result

        settled_at = self.clock()
        result = DisbursementResult(
            success=True,
            recipients=len(operations),
            total_amount=total_amount,
            timestamp=settled_at,
            tx_hash=tx_hash,
        )
        logger.info("[%s] Payout batch confirmed (tx=%s total=%s)", tenant_id, tx_hash, total_amount)
        # Funds have moved; bookkeeping errors must not turn this into a failure.
        try:
            self.tenants.record_run(tenant_id, settled_at)
        except Exception as exc:
            logger.exception("[%s] Failed to record last run for confirmed tx %s: %s", tenant_id, tx_hash, exc)
        try:
            self.history.append(tenant_id, DisbursementRecord(tenant_id, settled_at, result))
        except Exception as exc:
            logger.exception("[%s] Failed to append history for confirmed tx %s: %s", tenant_id, tx_hash, exc)
        return result

    def _precondition_failed(self, tenant_id: str, reason: str) -> DisbursementResult:
        logger.info("[%s] Payout skipped: %s", tenant_id, reason)
        return DisbursementResult.failure(reason, timestamp=self.clock())
