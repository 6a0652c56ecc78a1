"""
aggregation.py - fold validated expenses into per-member balances

Interpretation:
  - the payer of an expense is credited the full amount
  - every participant is debited their evaluated share
  - positive balance => the group owes this member
  - negative balance => this member owes the group

The fold is a plain sum, so the order of expenses never matters. Integer
minor units are used internally; Decimals appear only in the returned view.
"""

from decimal import Decimal
from typing import Dict, Iterable, Sequence

from groupledger.errors import LedgerInvariantError
from groupledger.models import Expense, Member
from groupledger.money import to_decimal
from groupledger.settings import get_logger
from groupledger.splits import evaluate

logger = get_logger(__name__)


def owed_shares(expense: Expense, members: Sequence[Member]) -> Dict[str, int]:
    """
    Shares of one stored expense. Evaluated against the members the expense
    actually involves, so members who joined later are not pulled into it.
    """
    involved = set(expense.split.participant_ids())
    scoped = [m for m in members if m.id in involved]
    return evaluate(expense.amount_minor, expense.split, scoped, expense.minor_digits)


def aggregate_minor(expenses: Iterable[Expense], members: Sequence[Member]) -> Dict[str, int]:
    balances = {m.id: 0 for m in members}
    for e in expenses:
        balances[e.paid_by] = balances.get(e.paid_by, 0) + e.amount_minor
        for mid, share in owed_shares(e, members).items():
            balances[mid] = balances.get(mid, 0) - share

    total = sum(balances.values())
    if total != 0:
        logger.critical("Balance vector does not net to zero (off by %d minor units): %r", total, balances)
        raise LedgerInvariantError(f"balances net to {total} minor units instead of 0")
    return balances


def aggregate(expenses: Iterable[Expense], members: Sequence[Member], digits: int = 2) -> Dict[str, Decimal]:
    """Balance vector keyed by member id, in group member order."""
    return {mid: to_decimal(v, digits) for mid, v in aggregate_minor(expenses, members).items()}


def paid_totals(expenses: Iterable[Expense], members: Sequence[Member]) -> Dict[str, int]:
    paid = {m.id: 0 for m in members}
    for e in expenses:
        paid[e.paid_by] = paid.get(e.paid_by, 0) + e.amount_minor
    return paid


def owed_totals(expenses: Iterable[Expense], members: Sequence[Member]) -> Dict[str, int]:
    owed = {m.id: 0 for m in members}
    for e in expenses:
        for mid, share in owed_shares(e, members).items():
            owed[mid] = owed.get(mid, 0) + share
    return owed
