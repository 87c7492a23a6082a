"""Tenant membership source and role-capability checks."""
from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from .models import normalize_address


class MembershipSource(Protocol):
    def list_members(self, tenant_id: str) -> Sequence[str]: ...

    def has_role(self, tenant_id: str, member: str, role_id: str) -> bool: ...


class MembershipStore:
    """Members of each tenant and the roles they hold.

    Stored as ``{tenant_id: {member_address: [role_id, ...]}}``; member order
    is insertion order so resolution stays deterministic.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path
        self._lock = threading.RLock()
        self._members: Dict[str, Dict[str, List[str]]] = {}
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
                data = {}
        if not isinstance(data, dict):
            return
        for tenant_id, members in data.items():
            if not isinstance(members, dict):
                continue
            self._members[str(tenant_id)] = {
                str(member): [str(role) for role in roles]
                for member, roles in members.items()
                if isinstance(roles, list)
            }

    def _persist(self) -> None:
        if self.path is None:
            return
        tmp = self.path.with_suffix(".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(self._members, handle, indent=2)
        tmp.replace(self.path)

    def set_member_roles(self, tenant_id: str, member: str, roles: Iterable[str]) -> List[str]:
        address = normalize_address(member)
        cleaned: List[str] = []
        for role in roles:
            candidate = str(role).strip()
            if candidate and candidate not in cleaned:
                cleaned.append(candidate)
        with self._lock:
            self._members.setdefault(tenant_id, {})[address] = cleaned
            self._persist()
        return list(cleaned)

    def remove_member(self, tenant_id: str, member: str) -> bool:
        address = normalize_address(member)
        with self._lock:
            members = self._members.get(tenant_id, {})
            if address not in members:
                return False
            del members[address]
            self._persist()
            return True

    def roles_of(self, tenant_id: str, member: str) -> List[str]:
        with self._lock:
            return list(self._members.get(tenant_id, {}).get(member.lower(), []))

    def list_members(self, tenant_id: str) -> List[str]:
        with self._lock:
            return list(self._members.get(tenant_id, {}).keys())

    def has_role(self, tenant_id: str, member: str, role_id: str) -> bool:
        return role_id in self.roles_of(tenant_id, member)
