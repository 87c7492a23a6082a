"""CLI entrypoint for the payroll backend."""
from __future__ import annotations

import logging
import sys
import threading
from datetime import timedelta

from .api import create_app, run_api
from .chain import ChainClient
from .config import settings
from .executor import DisbursementExecutor
from .history import HistoryLedger
from .membership import MembershipStore
from .notifications import LogNotifier, NotificationSink, WebhookNotifier
from .scheduler import RunScheduler
from .signer import SignerError, load_signer
from .tenants import TenantStore


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s:%(lineno)d | %(message)s",
        stream=sys.stdout,
    )


def main() -> None:
    configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting payroll backend")

    try:
        signer = load_signer(
            private_key=settings.payment_private_key,
            keystore_path=settings.payment_keystore_path,
            keystore_password=settings.payment_keystore_password,
        )
    except SignerError as exc:
        if not settings.payment_dry_run:
            raise
        logger.warning("Signer unavailable (dry-run mode): %s", exc)
        signer = None

    chain = ChainClient(
        rpc_url=settings.eth_rpc_url,
        chain_id=settings.chain_id,
        signer=signer,
        dry_run=settings.payment_dry_run,
        confirmations=settings.payout_confirmations,
        receipt_timeout_seconds=settings.payout_receipt_timeout_seconds,
    )
    if signer is not None:
        logger.info("Payout sender %s (dry-run=%s)", signer.address, settings.payment_dry_run)

    tenants = TenantStore(settings.tenants_path)
    history = HistoryLedger(settings.history_path)
    memberships = MembershipStore(settings.memberships_path)

    notifier: NotificationSink
    if settings.notification_webhook_url:
        notifier = WebhookNotifier(settings.notification_webhook_url, timeout=settings.notification_timeout)
    else:
        notifier = LogNotifier()

    executor = DisbursementExecutor(
        tenants,
        history,
        memberships,
        chain,
        strict_roles=settings.strict_role_filtering,
    )
    scheduler = RunScheduler(
        tenants,
        executor,
        notifier,
        period=timedelta(days=settings.payout_period_days),
        tick_interval_seconds=settings.tick_interval_seconds,
    )

    app = create_app(tenants, history, memberships, scheduler, settings)
    api_thread = threading.Thread(
        target=run_api,
        name="payroll-api",
        args=(app, settings),
        daemon=True,
    )
    api_thread.start()
    logger.info(
        "HTTP API available at http://%s:%s", settings.api_host, settings.api_port
    )

    scheduler.run_forever()


if __name__ == "__main__":
    main()
