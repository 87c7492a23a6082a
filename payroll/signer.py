"""Keys that authorise payout batches on the treasury account."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount


class SignerError(RuntimeError):
    """The payout sender key could not be loaded."""


class Signer(Protocol):
    @property
    def address(self) -> str: ...

    def sign_transaction(self, tx: Mapping[str, Any]) -> bytes: ...


class KeySigner:
    """Sender key held in process memory."""

    def __init__(self, account: LocalAccount) -> None:
        self._account = account

    @classmethod
    def from_private_key(cls, private_key: str) -> "KeySigner":
        return cls(Account.from_key(private_key))

    @classmethod
    def from_keystore(cls, path: Path, password: str) -> "KeySigner":
        try:
            keyfile = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
            key = Account.decrypt(keyfile, password)
        except (OSError, ValueError) as exc:
            raise SignerError(f"Failed to decrypt keystore {path}: {exc}") from exc
        return cls(Account.from_key(key))

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, tx: Mapping[str, Any]) -> bytes:
        signed = self._account.sign_transaction(dict(tx))
        return bytes(signed.raw_transaction)


def load_signer(
    private_key: Optional[str] = None,
    keystore_path: Optional[Path] = None,
    keystore_password: Optional[str] = None,
) -> Optional[Signer]:
    """Raw key wins over keystore; ``None`` when neither is configured."""
    if private_key:
        return KeySigner.from_private_key(private_key)
    if keystore_path and keystore_password:
        return KeySigner.from_keystore(keystore_path, keystore_password)
    return None
