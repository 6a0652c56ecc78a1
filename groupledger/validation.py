"""
validation.py - gatekeeper between expense drafts and the stored ledger

validate() is a pure transform: it either returns a frozen Expense ready to
be stored or raises the first ValidationError it finds. Checks run in a fixed
order (amount, payer, split) so the same bad draft always reports the same
problem.
"""

from decimal import Decimal
from typing import Dict, List

from groupledger.errors import (
    EmptyGroup,
    IncompleteSplit,
    InvalidPolicy,
    NonPositiveAmount,
    SplitMismatch,
    UnknownPayer,
)
from groupledger.models import EqualSplit, ExactSplit, Expense, ExpenseDraft, Group, SplitPolicy
from groupledger.money import half_unit, to_decimal, to_decimal_input, to_minor


def _check_amount(draft: ExpenseDraft, digits: int) -> int:
    try:
        amount_minor = to_minor(draft.amount, digits)
    except ValueError as exc:
        raise NonPositiveAmount(f"Amount {draft.amount!r} is not usable: {exc}.")
    if amount_minor <= 0:
        raise NonPositiveAmount(f"Amount must be greater than 0 (got {draft.amount}).")
    return amount_minor


def _exact_shares(policy: ExactSplit, group: Group) -> Dict[str, Decimal]:
    values: Dict[str, Decimal] = {}
    missing: List[str] = []
    negative: List[str] = []
    unreadable: List[str] = []
    for mid in group.member_ids():
        if mid not in policy.shares:
            missing.append(mid)
            continue
        try:
            value = to_decimal_input(policy.shares[mid])
        except ValueError:
            unreadable.append(mid)
            continue
        if value < 0:
            negative.append(mid)
        values[mid] = value
    # completeness is reported before malformed entries
    if missing or negative:
        raise IncompleteSplit(missing=missing, negative=negative)
    if unreadable:
        raise InvalidPolicy("Shares are not numbers for: " + ", ".join(unreadable))
    strays = sorted(set(policy.shares) - set(values))
    if strays:
        raise InvalidPolicy("Exact split names non-members: " + ", ".join(strays))
    return values


def _reconcile(values: Dict[str, Decimal], amount_minor: int, digits: int) -> Dict[str, int]:
    """
    Round each share to minor units, then push the sub-unit residual back one
    unit at a time in member order so the shares sum to the amount exactly.
    Negative residual is only taken from shares that can afford it.
    """
    owed = {mid: to_minor(v, digits) for mid, v in values.items()}
    residual = amount_minor - sum(owed.values())
    order = list(owed)
    while residual != 0:
        step = 1 if residual > 0 else -1
        for mid in order:
            if residual == 0:
                break
            if step < 0 and owed[mid] == 0:
                continue
            owed[mid] += step
            residual -= step
    return owed


def _freeze_equal(policy: EqualSplit, group: Group) -> EqualSplit:
    member_ids = group.member_ids()
    if not member_ids:
        raise EmptyGroup()
    if policy.participants is None:
        return EqualSplit(tuple(member_ids))
    wanted = set(policy.participants)
    if not wanted:
        raise InvalidPolicy("Pick at least one participant for an equal split.")
    unknown = sorted(wanted - set(member_ids))
    if unknown:
        raise InvalidPolicy("Equal split names non-members: " + ", ".join(unknown))
    return EqualSplit(tuple(mid for mid in member_ids if mid in wanted))


def _freeze_split(policy: SplitPolicy, group: Group, amount_minor: int) -> SplitPolicy:
    digits = group.minor_digits
    if isinstance(policy, ExactSplit):
        values = _exact_shares(policy, group)
        amount = to_decimal(amount_minor, digits)
        total = sum(values.values(), Decimal(0))
        discrepancy = amount - total
        if abs(discrepancy) > half_unit(digits):
            raise SplitMismatch(discrepancy=discrepancy, amount=amount, total=total)
        owed = _reconcile(values, amount_minor, digits)
        return ExactSplit({mid: to_decimal(v, digits) for mid, v in owed.items()})
    if isinstance(policy, EqualSplit):
        return _freeze_equal(policy, group)
    raise InvalidPolicy(f"Unsupported split policy: {policy!r}")


def validate(draft: ExpenseDraft, group: Group, expense_id: int = 0) -> Expense:
    """
    Validate `draft` against `group` and return the Expense that would be
    stored under `expense_id`.

    Raises (first failure wins):
      NonPositiveAmount, UnknownPayer, IncompleteSplit, SplitMismatch,
      EmptyGroup, InvalidPolicy
    """
    amount_minor = _check_amount(draft, group.minor_digits)
    if group.find_member(draft.paid_by) is None:
        raise UnknownPayer(draft.paid_by)
    split = _freeze_split(draft.split, group, amount_minor)
    return Expense(
        id=expense_id,
        description=(draft.description or "").strip(),
        amount_minor=amount_minor,
        paid_by=draft.paid_by,
        date=(draft.date or "").strip(),
        split=split,
        category=(draft.category or "general").strip() or "general",
        minor_digits=group.minor_digits,
    )
