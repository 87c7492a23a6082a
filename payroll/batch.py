"""Group obligations into the transfer calls of a single ERC-7821 batch."""
from __future__ import annotations

from typing import Dict, List, Mapping, Sequence, Tuple

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from .models import NATIVE_TOKEN, ContractTransfer, NativeTransfer, Obligation, TransferOperation

ERC20_TRANSFER_SELECTOR = function_signature_to_4byte_selector("transfer(address,uint256)")
EXECUTE_SELECTOR = function_signature_to_4byte_selector("execute(bytes32,bytes)")
# ERC-7821 mode: single batch call type, revert on failure, no opData.
BATCH_EXECUTION_MODE = bytes.fromhex("01" + "00" * 31)


def build_batch(obligations: Mapping[str, Obligation]) -> List[TransferOperation]:
    """Native transfers first, then one group per token contract.

    Contract groups are ordered by the first obligation that uses them and keep
    obligation order inside the group. Zero amounts never produce an operation.
    """
    native: List[TransferOperation] = []
    by_contract: Dict[str, List[TransferOperation]] = {}

    for obligation in obligations.values():
        if obligation.amount <= 0:
            continue
        if obligation.token == NATIVE_TOKEN:
            native.append(NativeTransfer(to=obligation.recipient, amount=obligation.amount))
        else:
            by_contract.setdefault(obligation.token, []).append(
                ContractTransfer(
                    contract=obligation.token,
                    recipient=obligation.recipient,
                    amount=obligation.amount,
                )
            )

    operations = list(native)
    for group in by_contract.values():
        operations.extend(group)
    return operations


def operations_total(operations: Sequence[TransferOperation]) -> int:
    return sum(operation.amount for operation in operations)


def encode_erc20_transfer(recipient: str, amount: int) -> bytes:
    return ERC20_TRANSFER_SELECTOR + encode(["address", "uint256"], [to_checksum_address(recipient), int(amount)])


def operation_call(operation: TransferOperation) -> Tuple[str, int, bytes]:
    """Render an operation as an ERC-7821 ``(target, value, data)`` call."""
    if isinstance(operation, NativeTransfer):
        return (to_checksum_address(operation.to), int(operation.amount), b"")
    return (
        to_checksum_address(operation.contract),
        0,
        encode_erc20_transfer(operation.recipient, operation.amount),
    )


def encode_batch_execution(operations: Sequence[TransferOperation]) -> Tuple[bytes, bytes]:
    calls = [operation_call(operation) for operation in operations]
    execution_data = encode(["(address,uint256,bytes)[]"], [calls])
    return BATCH_EXECUTION_MODE, execution_data


def encode_execute_calldata(operations: Sequence[TransferOperation]) -> bytes:
    mode, execution_data = encode_batch_execution(operations)
    return EXECUTE_SELECTOR + encode(["bytes32", "bytes"], [mode, execution_data])

