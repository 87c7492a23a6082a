"""Turn a tenant's membership and role table into per-recipient obligations.

Token policy: when a member matches several roles, the amounts are summed and
the obligation is paid in the token of the *last* matching role in table
order. Role tables are ordered dicts, so this is stable across runs.
"""
from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence

from .membership import MembershipSource
from .models import Obligation, RolePayout


def resolve_obligations(
    tenant_id: str,
    members: Sequence[str],
    role_payouts: Mapping[str, RolePayout],
    membership: Optional[MembershipSource] = None,
    *,
    strict: bool = True,
) -> Dict[str, Obligation]:
    """Aggregate role payouts per member.

    With ``strict`` only roles confirmed by ``membership.has_role`` count;
    otherwise every positive role applies to every member. The returned dict
    follows first appearance in ``members`` and omits zero totals. An empty
    result means there is nobody to pay.
    """
    if strict and membership is None:
        raise ValueError("strict role filtering requires a membership source")

    obligations: Dict[str, Obligation] = {}
    seen = set()
    for member in members or ():
        if member in seen:
            continue
        seen.add(member)

        total = 0
        token: Optional[str] = None
        for role_id, payout in role_payouts.items():
            if payout.amount <= 0:
                continue
            if strict and not membership.has_role(tenant_id, member, role_id):
                continue
            total += payout.amount
            token = payout.token

        if total > 0 and token is not None:
            obligations[member] = Obligation(recipient=member, amount=total, token=token)
    return obligations


def total_owed(obligations: Mapping[str, Obligation]) -> int:
    return sum(obligation.amount for obligation in obligations.values())
