"""
models.py - Data model definitions

Members, groups, expense drafts and stored expenses, plus the two split
policies. Records are serialized to/from plain dicts so a group can be
persisted as JSON (or as JSON columns in a spreadsheet). Amounts are written
as decimal strings so round-trips are exact.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from groupledger.money import to_decimal

EQUAL = "equal"
EXACT = "exact"


@dataclass(frozen=True)
class Member:
    id: str
    display_name: str

    def to_dict(self) -> Dict:
        return {"id": self.id, "display_name": self.display_name}

    @staticmethod
    def from_dict(d: Dict) -> "Member":
        return Member(id=str(d["id"]), display_name=str(d.get("display_name", d["id"])))


@dataclass(frozen=True)
class EqualSplit:
    """
    Even split. participants=None means every member of the group; a tuple
    of member ids restricts the split to that subset.
    """
    participants: Optional[Tuple[str, ...]] = None

    kind = EQUAL

    def participant_ids(self) -> Tuple[str, ...]:
        return tuple(self.participants or ())


@dataclass(frozen=True)
class ExactSplit:
    """Explicit member id -> owed amount mapping."""
    shares: Dict[str, Any] = field(default_factory=dict)

    kind = EXACT

    def participant_ids(self) -> Tuple[str, ...]:
        return tuple(self.shares.keys())


SplitPolicy = Union[EqualSplit, ExactSplit]


def split_to_dict(policy: SplitPolicy) -> Dict:
    if isinstance(policy, EqualSplit):
        participants = list(policy.participants) if policy.participants is not None else None
        return {"kind": EQUAL, "participants": participants}
    return {"kind": EXACT, "shares": {k: str(v) for k, v in policy.shares.items()}}


def split_from_dict(d: Dict) -> SplitPolicy:
    kind = d.get("kind", EQUAL)
    if kind == EQUAL:
        participants = d.get("participants")
        return EqualSplit(tuple(str(p) for p in participants) if participants is not None else None)
    if kind == EXACT:
        return ExactSplit({str(k): Decimal(str(v)) for k, v in (d.get("shares") or {}).items()})
    raise ValueError(f"unknown split kind: {kind!r}")


@dataclass
class ExpenseDraft:
    """
    What a form hands to the ledger. Nothing here is trusted until
    validation.validate() turns it into an Expense.
    """
    amount: Any
    paid_by: str
    split: SplitPolicy = field(default_factory=EqualSplit)
    description: str = ""
    date: str = ""  # ISO "YYYY-MM-DD"
    category: str = "general"


@dataclass(frozen=True)
class Expense:
    """
    A validated, stored expense.

    Fields:
      - id: integer assigned by the group; never reused or renumbered
      - amount_minor: total in minor units (cents for a two-digit currency)
      - paid_by: member id of the payer
      - split: frozen policy; EqualSplit always carries explicit participants,
        ExactSplit shares are quantized and sum exactly to the amount
      - minor_digits: decimal places used to read amount_minor
    """
    id: int
    description: str
    amount_minor: int
    paid_by: str
    date: str
    split: SplitPolicy
    category: str = "general"
    minor_digits: int = 2

    @property
    def amount(self) -> Decimal:
        return to_decimal(self.amount_minor, self.minor_digits)

    def references(self, member_id: str) -> bool:
        """True when removing member_id would orphan money in this expense."""
        if self.paid_by == member_id:
            return True
        if isinstance(self.split, ExactSplit):
            return Decimal(self.split.shares.get(member_id, 0)) != 0
        return member_id in self.split.participant_ids()

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount": str(self.amount),
            "paid_by": self.paid_by,
            "date": self.date,
            "category": self.category,
            "split": split_to_dict(self.split),
        }

    @staticmethod
    def from_dict(d: Dict, minor_digits: int = 2) -> "Expense":
        amount = Decimal(str(d.get("amount", "0")))
        return Expense(
            id=int(d.get("id", 0)),
            description=d.get("description", "") or "",
            amount_minor=int(amount.scaleb(minor_digits)),
            paid_by=str(d.get("paid_by", "")),
            date=d.get("date", "") or "",
            split=split_from_dict(d.get("split") or {}),
            category=d.get("category", "general") or "general",
            minor_digits=minor_digits,
        )


@dataclass
class Group:
    """
    A group owns its members (insertion order = display order) and its
    expenses. Balances are never stored here; see aggregation.aggregate().
    """
    id: str
    name: str
    members: List[Member] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    currency: str = "EUR"
    minor_digits: int = 2
    next_expense_id: int = 1

    def member_ids(self) -> List[str]:
        return [m.id for m in self.members]

    def find_member(self, member_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.id == member_id), None)

    def expense_index(self, expense_id: int) -> Optional[int]:
        for i, e in enumerate(self.expenses):
            if e.id == expense_id:
                return i
        return None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "currency": self.currency,
            "minor_digits": self.minor_digits,
            "next_expense_id": self.next_expense_id,
            "members": [m.to_dict() for m in self.members],
            "expenses": [e.to_dict() for e in self.expenses],
        }

    @staticmethod
    def from_dict(d: Dict) -> "Group":
        """
        Inverse of to_dict. next_expense_id is kept above the largest stored
        id so ids stay unique after a reload.
        """
        digits = int(d.get("minor_digits", 2))
        expenses = [Expense.from_dict(e, digits) for e in d.get("expenses", []) or []]
        max_id = max((e.id for e in expenses), default=0)
        try:
            next_id = int(d.get("next_expense_id", max_id + 1))
        except (TypeError, ValueError):
            next_id = max_id + 1
        return Group(
            id=str(d["id"]),
            name=d.get("name", "") or "",
            members=[Member.from_dict(m) for m in d.get("members", []) or []],
            expenses=expenses,
            currency=d.get("currency", "EUR") or "EUR",
            minor_digits=digits,
            next_expense_id=max(next_id, max_id + 1),
        )
