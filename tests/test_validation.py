from decimal import Decimal

import pytest

from groupledger.errors import (
    EmptyGroup,
    IncompleteSplit,
    InvalidPolicy,
    NonPositiveAmount,
    SplitMismatch,
    UnknownPayer,
)
from groupledger.models import EqualSplit, ExactSplit, ExpenseDraft, Group, Member
from groupledger.money import to_minor
from groupledger.validation import _freeze_split, validate


def _group(*names):
    members = [Member(n.lower(), n) for n in (names or ("Alice", "Bob", "Charlie"))]
    return Group(id="g1", name="Trip to Goa", members=members)


def test_valid_equal_draft_is_frozen_to_all_members():
    expense = validate(ExpenseDraft(amount="90", paid_by="alice", description=" Dinner "), _group(), expense_id=7)
    assert expense.id == 7
    assert expense.amount_minor == 9000
    assert expense.amount == Decimal("90.00")
    assert expense.description == "Dinner"
    assert expense.split == EqualSplit(("alice", "bob", "charlie"))


def test_equal_subset_is_stored_in_member_order():
    draft = ExpenseDraft(amount="10", paid_by="alice", split=EqualSplit(("charlie", "alice")))
    assert validate(draft, _group()).split == EqualSplit(("alice", "charlie"))


@pytest.mark.parametrize("amount", [0, -5, "0.00", "0.001", "nan", "inf", "abc", None, "1e30"])
def test_non_positive_or_non_finite_amount(amount):
    with pytest.raises(NonPositiveAmount) as exc:
        validate(ExpenseDraft(amount=amount, paid_by="alice"), _group())
    assert exc.value.field == "amount"


def test_unknown_payer():
    with pytest.raises(UnknownPayer) as exc:
        validate(ExpenseDraft(amount="10", paid_by="mallory"), _group())
    assert exc.value.payer_id == "mallory"
    assert exc.value.field == "paid_by"


def test_first_failure_wins():
    draft = ExpenseDraft(amount="-1", paid_by="mallory", split=ExactSplit({}))
    with pytest.raises(NonPositiveAmount):
        validate(draft, _group())
    draft = ExpenseDraft(amount="10", paid_by="mallory", split=ExactSplit({}))
    with pytest.raises(UnknownPayer):
        validate(draft, _group())


def test_empty_group_reports_unknown_payer_first():
    with pytest.raises(UnknownPayer):
        validate(ExpenseDraft(amount="10", paid_by="alice"), Group(id="g2", name="Empty"))


def test_equal_split_on_empty_group():
    with pytest.raises(EmptyGroup):
        _freeze_split(EqualSplit(), Group(id="g2", name="Empty"), 1000)


def test_exact_split_missing_member():
    draft = ExpenseDraft(amount="30", paid_by="alice", split=ExactSplit({"alice": "10", "bob": "20"}))
    with pytest.raises(IncompleteSplit) as exc:
        validate(draft, _group())
    assert exc.value.missing == ("charlie",)


def test_exact_split_negative_share():
    draft = ExpenseDraft(amount="30", paid_by="alice", split=ExactSplit({"alice": "40", "bob": "-10", "charlie": "0"}))
    with pytest.raises(IncompleteSplit) as exc:
        validate(draft, _group())
    assert exc.value.negative == ("bob",)


def test_exact_split_mismatch_reports_signed_discrepancy():
    draft = ExpenseDraft(
        amount="30.00", paid_by="alice",
        split=ExactSplit({"alice": "10.00", "bob": "10.00", "charlie": "9.98"}),
    )
    with pytest.raises(SplitMismatch) as exc:
        validate(draft, _group())
    assert exc.value.discrepancy == Decimal("0.02")
    assert exc.value.total == Decimal("29.98")


def test_exact_split_overshoot_is_negative_discrepancy():
    draft = ExpenseDraft(amount="30", paid_by="alice", split=ExactSplit({"alice": "10", "bob": "10", "charlie": "10.5"}))
    with pytest.raises(SplitMismatch) as exc:
        validate(draft, _group())
    assert exc.value.discrepancy == Decimal("-0.50")


def test_exact_split_within_half_unit_is_reconciled_exactly():
    draft = ExpenseDraft(
        amount="10.00", paid_by="alice",
        split=ExactSplit({"alice": "3.332", "bob": "3.332", "charlie": "3.332"}),
    )
    expense = validate(draft, _group())
    shares = expense.split.shares
    assert sum(to_minor(v, 2) for v in shares.values()) == 1000
    assert shares == {"alice": Decimal("3.34"), "bob": Decimal("3.33"), "charlie": Decimal("3.33")}


def test_exact_split_rounding_up_residual_is_taken_back():
    draft = ExpenseDraft(
        amount="10.00", paid_by="alice",
        split=ExactSplit({"alice": "3.335", "bob": "3.335", "charlie": "3.33"}),
    )
    shares = validate(draft, _group()).split.shares
    assert shares == {"alice": Decimal("3.33"), "bob": Decimal("3.34"), "charlie": Decimal("3.33")}


def test_exact_split_with_stranger_key_is_invalid():
    draft = ExpenseDraft(
        amount="30", paid_by="alice",
        split=ExactSplit({"alice": "10", "bob": "10", "charlie": "10", "mallory": "0"}),
    )
    with pytest.raises(InvalidPolicy):
        validate(draft, _group())


def test_exact_split_unparseable_share():
    draft = ExpenseDraft(amount="30", paid_by="alice", split=ExactSplit({"alice": "ten", "bob": "10", "charlie": "10"}))
    with pytest.raises(InvalidPolicy):
        validate(draft, _group())


def test_exact_split_missing_member_wins_over_unparseable_share():
    draft = ExpenseDraft(amount="30", paid_by="alice", split=ExactSplit({"alice": "ten", "bob": "10"}))
    with pytest.raises(IncompleteSplit) as exc:
        validate(draft, _group())
    assert exc.value.missing == ("charlie",)


def test_equal_split_with_empty_subset_or_stranger():
    with pytest.raises(InvalidPolicy):
        validate(ExpenseDraft(amount="10", paid_by="alice", split=EqualSplit(())), _group())
    with pytest.raises(InvalidPolicy):
        validate(ExpenseDraft(amount="10", paid_by="alice", split=EqualSplit(("mallory",))), _group())


def test_validate_does_not_touch_group():
    group = _group()
    validate(ExpenseDraft(amount="10", paid_by="alice"), group)
    assert group.expenses == []
    assert group.next_expense_id == 1
