"""
errors.py - exception taxonomy for the group ledger

Three families:
  - validation errors: bad expense input, always recoverable, never mutate state
  - reference errors: stale or inconsistent ids supplied by the caller
  - LedgerInvariantError: a broken zero-sum fold; a defect, never user input
"""

from decimal import Decimal
from typing import Iterable, Optional, Sequence


class LedgerError(Exception):
    """Base class for every error raised by the ledger."""


class ValidationError(LedgerError, ValueError):
    """
    Recoverable input error. `field` names the draft attribute the UI should
    highlight next to the message.
    """

    field = ""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        if field is not None:
            self.field = field


class NonPositiveAmount(ValidationError):
    field = "amount"


class UnknownPayer(ValidationError):
    field = "paid_by"

    def __init__(self, payer_id: str):
        super().__init__(f"Payer {payer_id!r} is not a member of this group.")
        self.payer_id = payer_id


class IncompleteSplit(ValidationError):
    field = "split"

    def __init__(self, missing: Sequence[str] = (), negative: Sequence[str] = ()):
        parts = []
        if missing:
            parts.append("missing shares for " + ", ".join(missing))
        if negative:
            parts.append("negative shares for " + ", ".join(negative))
        super().__init__("Exact split is incomplete: " + "; ".join(parts) + ".")
        self.missing = tuple(missing)
        self.negative = tuple(negative)


class SplitMismatch(ValidationError):
    field = "split"

    def __init__(self, discrepancy: Decimal, amount: Decimal, total: Decimal):
        super().__init__(
            f"Exact shares sum to {total} but the amount is {amount} (discrepancy {discrepancy})."
        )
        # amount - sum(shares): positive means shares fall short of the amount
        self.discrepancy = discrepancy
        self.amount = amount
        self.total = total


class EmptyGroup(ValidationError):
    field = "split"

    def __init__(self, message: str = "Cannot split an expense in a group with no members."):
        super().__init__(message)


class InvalidPolicy(ValidationError):
    field = "split"


class NotFound(LedgerError, LookupError):
    def __init__(self, kind: str, ref):
        super().__init__(f"{kind} {ref!r} not found.")
        self.kind = kind
        self.ref = ref


class MemberHasHistory(LedgerError):
    def __init__(self, member_id: str, expense_ids: Iterable[int]):
        self.member_id = member_id
        self.expense_ids = tuple(sorted(expense_ids))
        refs = ", ".join(f"#{i}" for i in self.expense_ids)
        super().__init__(f"Member {member_id!r} is referenced by expenses {refs}.")


class DuplicateMember(LedgerError, ValueError):
    def __init__(self, member_id: str):
        super().__init__(f"Member id {member_id!r} already exists in this group.")
        self.member_id = member_id


class InvalidMember(LedgerError, ValueError):
    pass


class InvalidGroup(LedgerError, ValueError):
    pass


class LedgerInvariantError(LedgerError, AssertionError):
    """Balances failed to net to zero. Fatal: the answer would be wrong."""
