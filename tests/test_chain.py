from typing import Optional

import pytest
from eth_abi import decode

from payroll import chain as chain_module
from payroll.batch import EXECUTE_SELECTOR
from payroll.chain import ChainClient, ChainError
from payroll.models import ContractTransfer, NativeTransfer

TREASURY = "0x" + "9" * 40
SENDER = "0x" + "5" * 40
ALICE = "0x" + "a" * 40
TOKEN = "0x" + "1" * 40


class FakeReceipt:
    def __init__(self, *, status: int = 1, block_number: int = 1):
        self.status = status
        self.blockNumber = block_number


class FakeEth:
    def __init__(
        self,
        receipt: Optional[FakeReceipt] = None,
        *,
        raise_on_wait: Optional[Exception] = None,
        raise_on_estimate: Optional[Exception] = None,
    ):
        self._receipt = receipt or FakeReceipt()
        self._raise_on_wait = raise_on_wait
        self._raise_on_estimate = raise_on_estimate
        self.block_number = self._receipt.blockNumber
        self.gas_price = 1_000
        self.max_priority_fee = 100
        self.sent = []
        self.estimates = []

    def get_transaction_count(self, address, block_identifier="latest"):
        return 7

    def estimate_gas(self, payload):
        if self._raise_on_estimate:
            raise self._raise_on_estimate
        self.estimates.append(payload)
        return 90_000

    def send_raw_transaction(self, raw):
        self.sent.append(raw)
        return b"\x12" * 32

    def wait_for_transaction_receipt(self, tx_hash: str, timeout: int = 300):
        if self._raise_on_wait:
            raise self._raise_on_wait
        return self._receipt


class FakeWeb3:
    def __init__(self, eth: FakeEth):
        self.eth = eth


class FakeSigner:
    address = SENDER

    def __init__(self):
        self.signed = []

    def sign_transaction(self, tx):
        self.signed.append(tx)
        return b"signed"


OPERATIONS = [NativeTransfer(to=ALICE, amount=10), ContractTransfer(contract=TOKEN, recipient=ALICE, amount=5)]


def make_client(eth: FakeEth, *, dry_run: bool = False, confirmations: int = 1, signer=None) -> ChainClient:
    return ChainClient(
        "http://localhost:8545",
        8453,
        signer if signer is not None else FakeSigner(),
        dry_run=dry_run,
        confirmations=confirmations,
        receipt_timeout_seconds=30,
        web3=FakeWeb3(eth),
    )


def test_dry_run_returns_simulated_hash_and_confirms_immediately():
    eth = FakeEth(raise_on_wait=RuntimeError("node must not be contacted"))
    client = make_client(eth, dry_run=True)

    tx_hash = client.submit_batch(TREASURY, OPERATIONS)

    assert tx_hash.startswith("0x") and len(tx_hash) == 66
    assert eth.sent == []
    client.confirm(tx_hash)


def test_dry_run_hash_is_deterministic_for_same_batch():
    client = make_client(FakeEth(), dry_run=True)

    assert client.submit_batch(TREASURY, OPERATIONS) == client.submit_batch(TREASURY, OPERATIONS)


def test_empty_batch_is_refused():
    client = make_client(FakeEth())

    with pytest.raises(ChainError):
        client.submit_batch(TREASURY, [])


def test_submit_sends_single_execute_call_to_treasury():
    eth = FakeEth()
    signer = FakeSigner()
    client = make_client(eth, signer=signer)

    tx_hash = client.submit_batch(TREASURY, OPERATIONS)

    assert tx_hash == "0x" + "12" * 32
    assert eth.sent == [b"signed"]
    tx = signer.signed[0]
    assert tx["to"].lower() == TREASURY
    assert tx["value"] == 0
    assert tx["nonce"] == 7
    assert tx["chainId"] == 8453
    assert tx["gas"] == 90_000
    assert tx["maxPriorityFeePerGas"] == 100
    assert tx["maxFeePerGas"] == 2_000
    assert tx["data"][:4] == EXECUTE_SELECTOR
    _, calls = decode(["bytes32", "bytes"], tx["data"][4:])
    (decoded,) = decode(["(address,uint256,bytes)[]"], calls)
    assert len(decoded) == 2
    assert decoded[0][1] == 10
    assert decoded[1][0].lower() == TOKEN


def test_gas_estimation_failure_is_reported():
    eth = FakeEth(raise_on_estimate=ValueError("execution reverted: unauthorized"))
    client = make_client(eth)

    with pytest.raises(ChainError) as excinfo:
        client.submit_batch(TREASURY, OPERATIONS)

    assert "unauthorized" in str(excinfo.value)
    assert eth.sent == []


def test_confirm_raises_on_revert():
    client = make_client(FakeEth(FakeReceipt(status=0)))

    with pytest.raises(ChainError) as excinfo:
        client.confirm("0xabc")

    assert "reverted" in str(excinfo.value)


def test_confirm_raises_on_receipt_timeout():
    client = make_client(FakeEth(raise_on_wait=TimeoutError("timeout")))

    with pytest.raises(ChainError) as excinfo:
        client.confirm("0xabc")

    assert "Timed out" in str(excinfo.value)


def test_confirm_waits_for_requested_depth(monkeypatch):
    eth = FakeEth(FakeReceipt(status=1, block_number=10))
    client = make_client(eth, confirmations=3)
    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        eth.block_number += 1

    monkeypatch.setattr(chain_module.time, "sleep", fake_sleep)

    client.confirm("0xabc")

    assert eth.block_number == 12
    assert len(sleeps) == 2
