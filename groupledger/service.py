"""
service.py - the group ledger facade

Responsibilities:
 - keep the in-memory registry of groups (members + expenses)
 - run every expense through validation before it is stored
 - serialize mutations per group and make each one all-or-nothing,
   including the optional write to a persistence store
 - derive balances and summaries on every read, never caching them

Mutations replace a group's member/expense lists instead of editing them in
place, so readers can fold a snapshot without holding the group lock.
"""

import datetime
import re
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from groupledger import settings
from groupledger.aggregation import aggregate, owed_totals, paid_totals
from groupledger.errors import DuplicateMember, InvalidGroup, InvalidMember, MemberHasHistory, NotFound
from groupledger.models import Expense, ExpenseDraft, Group, Member
from groupledger.money import to_decimal
from groupledger.settings import get_logger
from groupledger.validation import validate

logger = get_logger(__name__)


@dataclass(frozen=True)
class GroupSummary:
    """Per-member totals for a group card: balance == paid - owed."""
    group_id: str
    currency: str
    total_expense: Decimal
    paid: Dict[str, Decimal]
    owed: Dict[str, Decimal]
    balance: Dict[str, Decimal]


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.strip().lower()).strip("-") or "member"


class GroupLedgerService:
    """
    Single entry point used by the UI. Create one per process (or per
    Streamlit run) and pass a store to persist successful mutations.
    """

    def __init__(self, store=None, autoload: bool = True):
        self.store = store
        self._groups: Dict[str, Group] = {}
        self._registry_lock = threading.Lock()
        self._save_lock = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._committed: Dict[str, Dict] = {}
        if store is not None and autoload:
            self.load()

    # -----------------------
    # Persistence
    # -----------------------
    def storage_status(self) -> Tuple[str, str]:
        """Current backend name and a short diagnostic message for the UI."""
        if self.store is None:
            return "memory", "No persistent storage configured."
        return self.store.name, self.store.describe()

    def load(self):
        """Replace in-memory groups with whatever the store holds."""
        data = self.store.load_state() or {}
        groups = [Group.from_dict(g) for g in data.get("groups", [])]
        with self._registry_lock:
            self._groups = {g.id: g for g in groups}
            self._locks = {g.id: threading.Lock() for g in groups}
        with self._save_lock:
            self._committed = {g.id: g.to_dict() for g in groups}
        logger.info("Loaded %d group(s) from %s", len(groups), self.store.name)

    def _state(self) -> Dict:
        """Last persisted state of every group."""
        with self._save_lock:
            return {"groups": list(self._committed.values())}

    def _persist(self, group_id: str, group_dict: Optional[Dict]):
        """
        Save the committed state of all groups with `group_id` replaced by
        `group_dict` (None drops it). Other groups contribute only what they
        last saved, never an in-flight mutation.
        """
        with self._save_lock:
            committed = dict(self._committed)
            if group_dict is None:
                committed.pop(group_id, None)
            else:
                committed[group_id] = group_dict
            if self.store is not None:
                self.store.save_state({"groups": list(committed.values())})
            self._committed = committed

    def _entry(self, group_id: str) -> Tuple[Group, threading.Lock]:
        with self._registry_lock:
            group = self._groups.get(group_id)
            lock = self._locks.get(group_id)
        if group is None or lock is None:
            raise NotFound("Group", group_id)
        return group, lock

    def _still_registered(self, group_id: str, group: Group):
        with self._registry_lock:
            if self._groups.get(group_id) is not group:
                raise NotFound("Group", group_id)

    @contextmanager
    def _mutating(self, group_id: str):
        """
        Hold the group lock for the duration of a mutation and persist the
        result. If anything fails, the group's previous lists are restored.
        """
        group, lock = self._entry(group_id)
        with lock:
            # deleted while we waited for the lock
            self._still_registered(group_id, group)
            before = (group.name, group.members, group.expenses, group.next_expense_id)
            try:
                yield group
                self._persist(group_id, group.to_dict())
            except Exception:
                group.name, group.members, group.expenses, group.next_expense_id = before
                raise

    # -----------------------
    # Groups
    # -----------------------
    def create_group(
        self,
        name: str,
        members: Iterable[str] = (),
        currency: Optional[str] = None,
        minor_digits: Optional[int] = None,
    ) -> Group:
        """Create a group, optionally seeding members by display name."""
        name = (name or "").strip()
        if not name:
            raise InvalidGroup("Group name is required.")
        group = Group(
            id=uuid.uuid4().hex[:12],
            name=name,
            currency=currency or settings.DEFAULT_CURRENCY,
            minor_digits=settings.DEFAULT_MINOR_DIGITS if minor_digits is None else int(minor_digits),
        )
        for display_name in members:
            group.members = group.members + [self._new_member(group, display_name)]
        self._persist(group.id, group.to_dict())
        with self._registry_lock:
            self._groups[group.id] = group
            self._locks[group.id] = threading.Lock()
        logger.info("Created group %s (%s) with %d member(s)", group.id, group.name, len(group.members))
        return group

    def get_group(self, group_id: str) -> Group:
        with self._registry_lock:
            group = self._groups.get(group_id)
        if group is None:
            raise NotFound("Group", group_id)
        return group

    def list_groups(self) -> List[Group]:
        with self._registry_lock:
            return list(self._groups.values())

    def rename_group(self, group_id: str, name: str) -> Group:
        name = (name or "").strip()
        if not name:
            raise InvalidGroup("Group name is required.")
        with self._mutating(group_id) as group:
            group.name = name
        return group

    def delete_group(self, group_id: str):
        group, lock = self._entry(group_id)
        with lock:
            self._still_registered(group_id, group)
            self._persist(group_id, None)
            with self._registry_lock:
                self._groups.pop(group_id, None)
                self._locks.pop(group_id, None)
        logger.info("Deleted group %s", group_id)

    # -----------------------
    # Members
    # -----------------------
    def _new_member(self, group: Group, display_name: str, member_id: Optional[str] = None) -> Member:
        display_name = (display_name or "").strip()
        if not display_name:
            raise InvalidMember("Member name is required.")
        existing = set(group.member_ids())
        if member_id is not None:
            member_id = member_id.strip()
            if not member_id:
                raise InvalidMember("Member id cannot be blank.")
            if member_id in existing:
                raise DuplicateMember(member_id)
            return Member(member_id, display_name)
        base = candidate = _slug(display_name)
        n = 2
        while candidate in existing:
            candidate = f"{base}-{n}"
            n += 1
        return Member(candidate, display_name)

    def add_member(self, group_id: str, display_name: str, member_id: Optional[str] = None) -> Member:
        with self._mutating(group_id) as group:
            member = self._new_member(group, display_name, member_id)
            group.members = group.members + [member]
        logger.info("Added member %s to group %s", member.id, group_id)
        return member

    def remove_member(self, group_id: str, member_id: str):
        """
        Drop a member with no financial history. Anyone who paid, has a
        nonzero exact share, or took part in an equal split stays.
        """
        with self._mutating(group_id) as group:
            if group.find_member(member_id) is None:
                raise NotFound("Member", member_id)
            refs = [e.id for e in group.expenses if e.references(member_id)]
            if refs:
                raise MemberHasHistory(member_id, refs)
            group.members = [m for m in group.members if m.id != member_id]
        logger.info("Removed member %s from group %s", member_id, group_id)

    # -----------------------
    # Expenses
    # -----------------------
    def add_expense(self, group_id: str, draft: ExpenseDraft) -> Expense:
        """Validate and append a new expense. Nothing changes if validation fails."""
        with self._mutating(group_id) as group:
            expense = validate(draft, group, expense_id=group.next_expense_id)
            group.expenses = group.expenses + [expense]
            group.next_expense_id += 1
        logger.info("Added expense #%d to group %s (amount=%s, payer=%s)",
                    expense.id, group_id, expense.amount, expense.paid_by)
        return expense

    def update_expense(self, group_id: str, expense_id: int, draft: ExpenseDraft) -> Expense:
        """
        Replace the whole record. The draft must be complete: fields missing
        from it are not merged from the old expense.
        """
        with self._mutating(group_id) as group:
            idx = group.expense_index(expense_id)
            if idx is None:
                raise NotFound("Expense", expense_id)
            expense = validate(draft, group, expense_id=expense_id)
            expenses = list(group.expenses)
            expenses[idx] = expense
            group.expenses = expenses
        logger.info("Updated expense #%d in group %s", expense_id, group_id)
        return expense

    def remove_expense(self, group_id: str, expense_id: int):
        """Remove by id. Ids are not renumbered or reused."""
        with self._mutating(group_id) as group:
            idx = group.expense_index(expense_id)
            if idx is None:
                raise NotFound("Expense", expense_id)
            group.expenses = group.expenses[:idx] + group.expenses[idx + 1:]
        logger.info("Deleted expense #%d from group %s. Remaining expenses=%d.",
                    expense_id, group_id, len(group.expenses))

    def get_expense(self, group_id: str, expense_id: int) -> Expense:
        group = self.get_group(group_id)
        idx = group.expense_index(expense_id)
        if idx is None:
            raise NotFound("Expense", expense_id)
        return group.expenses[idx]

    def list_expenses(self, group_id: str, year: Optional[int] = None, month: Optional[int] = None) -> List[Expense]:
        """
        Expenses of a group, optionally filtered by year and/or month.
        Expenses with a missing or unparseable date are skipped when filtering.
        """
        expenses = list(self.get_group(group_id).expenses)
        if year is None and month is None:
            return expenses
        out: List[Expense] = []
        for e in expenses:
            d = _parse_date(e.date)
            if d is None:
                continue
            if year is not None and d.year != year:
                continue
            if month is not None and d.month != month:
                continue
            out.append(e)
        return out

    def available_periods(self, group_id: str) -> Tuple[List[int], Dict[int, List[int]]]:
        """(years, {year: [months]}) present in a group's expense dates."""
        months_by_year = defaultdict(set)
        for e in self.get_group(group_id).expenses:
            d = _parse_date(e.date)
            if d is not None:
                months_by_year[d.year].add(d.month)
        years = sorted(months_by_year)
        return years, {y: sorted(months_by_year[y]) for y in years}

    # -----------------------
    # Derived views
    # -----------------------
    def _snapshot(self, group_id: str) -> Tuple[Group, Tuple[Member, ...], Tuple[Expense, ...]]:
        group, lock = self._entry(group_id)
        with lock:
            return group, tuple(group.members), tuple(group.expenses)

    def get_balances(self, group_id: str) -> Dict[str, Decimal]:
        """Balance per member id, recomputed from the current expense list."""
        group, members, expenses = self._snapshot(group_id)
        return aggregate(expenses, members, group.minor_digits)

    def summary(self, group_id: str) -> GroupSummary:
        group, members, expenses = self._snapshot(group_id)
        digits = group.minor_digits
        balance = aggregate(expenses, members, digits)
        paid = paid_totals(expenses, members)
        owed = owed_totals(expenses, members)
        return GroupSummary(
            group_id=group.id,
            currency=group.currency,
            total_expense=to_decimal(sum(e.amount_minor for e in expenses), digits),
            paid={mid: to_decimal(v, digits) for mid, v in paid.items()},
            owed={mid: to_decimal(v, digits) for mid, v in owed.items()},
            balance=balance,
        )


def _parse_date(value: str) -> Optional[datetime.date]:
    if not value:
        return None
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        return None
