from decimal import Decimal

import pytest

from groupledger.errors import InvalidPolicy
from groupledger.models import EqualSplit, ExactSplit, Member
from groupledger.splits import evaluate, split_equal

MEMBERS = [Member("alice", "Alice"), Member("bob", "Bob"), Member("charlie", "Charlie")]


def test_equal_split_even_amount():
    assert evaluate(9000, EqualSplit(), MEMBERS) == {"alice": 3000, "bob": 3000, "charlie": 3000}


def test_equal_split_remainder_goes_to_first_members_in_order():
    shares = evaluate(1000, EqualSplit(), MEMBERS)
    assert shares == {"alice": 334, "bob": 333, "charlie": 333}
    assert sum(shares.values()) == 1000


def test_equal_split_remainder_follows_member_order_not_alphabetical():
    members = [Member("zoe", "Zoe"), Member("adam", "Adam"), Member("mia", "Mia")]
    assert evaluate(1001, EqualSplit(), members) == {"zoe": 334, "adam": 334, "mia": 333}


def test_equal_split_always_sums_to_amount():
    for n in range(1, 8):
        ids = [f"m{i}" for i in range(n)]
        for amount in (1, 2, 7, 99, 100, 101, 1000, 12345, 999999):
            shares = split_equal(amount, ids)
            assert sum(shares.values()) == amount
            assert max(shares.values()) - min(shares.values()) <= 1


def test_equal_split_over_subset_uses_group_order():
    shares = evaluate(1001, EqualSplit(("charlie", "bob")), MEMBERS)
    assert shares == {"bob": 501, "charlie": 500}


def test_equal_split_empty_member_list_is_invalid():
    with pytest.raises(InvalidPolicy):
        evaluate(1000, EqualSplit(), [])


def test_equal_split_subset_with_stranger_is_invalid():
    with pytest.raises(InvalidPolicy):
        evaluate(1000, EqualSplit(("alice", "mallory")), MEMBERS)


def test_exact_split_returned_verbatim():
    policy = ExactSplit({"alice": Decimal("0"), "bob": Decimal("30.00"), "charlie": Decimal("0")})
    assert evaluate(3000, policy, MEMBERS) == {"alice": 0, "bob": 3000, "charlie": 0}


def test_exact_split_missing_member_is_invalid():
    policy = ExactSplit({"alice": Decimal("10"), "bob": Decimal("20")})
    with pytest.raises(InvalidPolicy):
        evaluate(3000, policy, MEMBERS)


def test_exact_split_zero_entry_for_outsider_is_ignored():
    policy = ExactSplit({"alice": Decimal("10"), "bob": Decimal("20"), "gone": Decimal("0")})
    assert evaluate(3000, policy, MEMBERS[:2]) == {"alice": 1000, "bob": 2000}


def test_exact_split_charging_outsider_is_invalid():
    policy = ExactSplit({"alice": Decimal("10"), "bob": Decimal("15"), "gone": Decimal("5")})
    with pytest.raises(InvalidPolicy):
        evaluate(3000, policy, MEMBERS[:2])


def test_zero_digit_currency():
    members = MEMBERS[:2]
    assert evaluate(101, EqualSplit(), members) == {"alice": 51, "bob": 50}
    assert evaluate(101, ExactSplit({"alice": "100", "bob": "1"}), members, digits=0) == {"alice": 100, "bob": 1}
