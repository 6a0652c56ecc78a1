"""
splits.py - turn an expense amount and a split policy into owed shares

evaluate() works purely on integer minor units so the shares of an Equal
split always add up to the amount with nothing lost to rounding.
"""

from typing import Dict, Sequence

from groupledger.errors import InvalidPolicy
from groupledger.models import EqualSplit, ExactSplit, Member, SplitPolicy
from groupledger.money import to_minor


def split_equal(amount_minor: int, member_ids: Sequence[str]) -> Dict[str, int]:
    """
    floor(amount / n) for everyone, then the leftover units (always fewer
    than n) go one each to the first members in the given order.
    """
    n = len(member_ids)
    if n == 0:
        raise InvalidPolicy("Equal split needs at least one member.")
    base, remainder = divmod(amount_minor, n)
    return {mid: base + (1 if i < remainder else 0) for i, mid in enumerate(member_ids)}


def evaluate(amount_minor: int, policy: SplitPolicy, members: Sequence[Member], digits: int = 2) -> Dict[str, int]:
    """
    Owed share per member id, in minor units.

    `members` fixes both the population and the order used to hand out an
    Equal split's remainder. For an Exact split every member needs an entry;
    entries for ids outside `members` are tolerated only when zero.
    """
    member_ids = [m.id for m in members]

    if isinstance(policy, EqualSplit):
        if policy.participants is None:
            return split_equal(amount_minor, member_ids)
        wanted = set(policy.participants)
        unknown = sorted(wanted - set(member_ids))
        if unknown:
            raise InvalidPolicy("Equal split names non-members: " + ", ".join(unknown))
        return split_equal(amount_minor, [mid for mid in member_ids if mid in wanted])

    if isinstance(policy, ExactSplit):
        missing = [mid for mid in member_ids if mid not in policy.shares]
        if missing:
            raise InvalidPolicy("Exact split has no entry for: " + ", ".join(missing))
        owed = {mid: to_minor(policy.shares[mid], digits) for mid in member_ids}
        strays = [k for k, v in policy.shares.items() if k not in owed and to_minor(v, digits) != 0]
        if strays:
            raise InvalidPolicy("Exact split charges non-members: " + ", ".join(sorted(strays)))
        return owed

    raise InvalidPolicy(f"Unsupported split policy: {policy!r}")
