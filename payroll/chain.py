"""Batch payout submission through an ERC-7821 treasury account, built on web3.py."""
from __future__ import annotations

import logging
import time
from typing import Any, Optional, Protocol, Sequence

from eth_utils import keccak
from web3 import Web3
from web3.middleware.proof_of_authority import ExtraDataToPOAMiddleware

from .batch import encode_execute_calldata
from .models import TransferOperation
from .signer import Signer

logger = logging.getLogger(__name__)


class ChainError(Exception):
    """Submission or confirmation of a batch failed."""


class BatchChainClient(Protocol):
    def submit_batch(self, treasury: str, operations: Sequence[TransferOperation]) -> str: ...

    def confirm(self, tx_hash: str) -> None: ...


class ChainClient:
    """Sends every batch as one ``execute(mode, calls)`` transaction to the treasury.

    The treasury is a smart account implementing ERC-7821 that authorises the
    configured sender; transfers are funded from the treasury's own balance.
    """

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        signer: Optional[Signer] = None,
        *,
        dry_run: bool = True,
        confirmations: int = 1,
        receipt_timeout_seconds: int = 300,
        web3: Optional[Web3] = None,
    ) -> None:
        if web3 is None:
            web3 = Web3(Web3.HTTPProvider(rpc_url))
            # Ensure compatibility with rollups that use Clique-like consensus
            web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        self.web3 = web3
        self.chain_id = chain_id
        self.signer = signer
        self.dry_run = dry_run
        self.confirmations = max(int(confirmations), 1)
        self.receipt_timeout_seconds = int(receipt_timeout_seconds)
        self._simulated: set[str] = set()
        if signer is None:
            logger.info("Chain client running without signing key (dry-run=%s)", dry_run)

    @property
    def sender(self) -> Optional[str]:
        if self.signer is None:
            return None
        return self.signer.address

    def submit_batch(self, treasury: str, operations: Sequence[TransferOperation]) -> str:
        if not operations:
            raise ChainError("Refusing to submit an empty batch")
        try:
            to_checksum = Web3.to_checksum_address(treasury)
        except ValueError as exc:
            raise ChainError(f"Invalid treasury address {treasury}") from exc
        data = encode_execute_calldata(operations)

        if self.signer is None or self.dry_run:
            tx_hash = "0x" + keccak(bytes.fromhex(to_checksum[2:]) + data).hex()
            self._simulated.add(tx_hash)
            logger.info(
                "Dry-run batch: would call execute on %s with %s transfers (sender=%s tx=%s)",
                to_checksum,
                len(operations),
                self.sender,
                tx_hash,
            )
            return tx_hash

        sender = self.sender
        try:
            gas_price = self.web3.eth.gas_price
            nonce = self.web3.eth.get_transaction_count(sender, block_identifier="pending")
            estimate_payload: dict[str, Any] = {"from": sender, "to": to_checksum, "value": 0, "data": data}
            try:
                gas_limit = int(self.web3.eth.estimate_gas(estimate_payload))
            except Exception as exc:
                raise ChainError(f"Batch rejected during gas estimation: {exc}") from exc

            tx: dict[str, Any] = {
                "chainId": self.chain_id,
                "nonce": nonce,
                "to": to_checksum,
                "value": 0,
                "gas": gas_limit,
                "data": data,
            }
            try:
                priority_fee: Optional[int] = int(self.web3.eth.max_priority_fee)
            except Exception:  # pragma: no cover - node without eth_maxPriorityFeePerGas
                priority_fee = None
            if priority_fee is not None:
                tx.update(
                    {
                        "maxPriorityFeePerGas": priority_fee,
                        "maxFeePerGas": max(gas_price, priority_fee) * 2,
                    }
                )
            else:
                tx["gasPrice"] = gas_price * 2

            raw_tx = self.signer.sign_transaction(tx)
            tx_hash = Web3.to_hex(self.web3.eth.send_raw_transaction(raw_tx))
        except ChainError:
            raise
        except Exception as exc:
            raise ChainError(f"Batch submission failed: {exc}") from exc

        logger.info("Submitted batch %s to %s (%s transfers)", tx_hash, to_checksum, len(operations))
        return tx_hash

    def confirm(self, tx_hash: str) -> None:
        """Block until ``tx_hash`` is mined and deep enough; raise ``ChainError`` otherwise."""
        if tx_hash in self._simulated:
            self._simulated.discard(tx_hash)
            return

        start = time.time()
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout_seconds)
        except Exception as exc:
            raise ChainError(f"Timed out waiting for receipt of {tx_hash}: {exc}") from exc

        raw_status = _receipt_field(receipt, "status", 1)
        status = 1 if raw_status is None else int(raw_status)
        if status != 1:
            raise ChainError(f"Batch transaction reverted (tx={tx_hash} status={status})")

        if self.confirmations <= 1:
            return
        mined_block = _receipt_field(receipt, "blockNumber", None)
        if mined_block is None:
            return

        target_block = int(mined_block) + self.confirmations - 1
        while True:
            current_block = int(self.web3.eth.block_number)
            if current_block >= target_block:
                return
            if time.time() - start > self.receipt_timeout_seconds:
                raise ChainError(
                    f"Timed out waiting for {self.confirmations} confirmations on {tx_hash} "
                    f"(mined={mined_block} current={current_block})"
                )
            time.sleep(1)


def _receipt_field(receipt: Any, name: str, default: Any) -> Any:
    if isinstance(receipt, dict):
        return receipt.get(name, default)
    return getattr(receipt, name, default)
