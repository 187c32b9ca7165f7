import math

import pytest

from core.errors import EmptyRecipientList, InsufficientBalance, InvalidAmount
from core.planner import plan_batches
from fakes import make_recipients


@pytest.mark.parametrize("count", [1, 49, 50, 51, 100, 120, 257])
def test_batches_cover_recipients_in_order(count):
    recipients = make_recipients(count)
    batches = plan_batches(recipients, 1, count, token_id=7)

    assert len(batches) == math.ceil(count / 50)
    assert all(len(b.recipients) <= 50 for b in batches)
    assert [r for b in batches for r in b.recipients] == recipients
    assert [b.index for b in batches] == list(range(len(batches)))


def test_each_batch_carries_single_id_and_amount():
    batches = plan_batches(make_recipients(60), 3, 500, token_id=42)
    for b in batches:
        assert b.ids == [42]
        assert b.amounts == [3]
    assert [b.total_amount for b in batches] == [150, 30]


def test_scenario_sizes_for_120_recipients():
    batches = plan_batches(make_recipients(120), 1, 200)
    assert [len(b.recipients) for b in batches] == [50, 50, 20]


@pytest.mark.parametrize("count,amount,balance,fails", [
    (10, 5, 40, True),
    (10, 5, 50, False),
    (10, 5, 49, True),
    (1, 1, 0, True),
    (3, 2, 1000, False),
])
def test_insufficient_balance_iff_total_exceeds(count, amount, balance, fails):
    recipients = make_recipients(count)
    if fails:
        with pytest.raises(InsufficientBalance) as exc:
            plan_batches(recipients, amount, balance)
        assert exc.value.balance == balance
        assert exc.value.required == count * amount
    else:
        assert plan_batches(recipients, amount, balance)


def test_insufficient_balance_message_shows_both_figures():
    with pytest.raises(InsufficientBalance, match="You have 40 tokens but trying to send 50"):
        plan_batches(make_recipients(10), 5, 40)


def test_empty_recipients_rejected_before_balance_check():
    with pytest.raises(EmptyRecipientList):
        plan_batches([], 1, 0)


@pytest.mark.parametrize("amount", [0, -1, 1.5, "2", True])
def test_invalid_amount(amount):
    with pytest.raises(InvalidAmount):
        plan_batches(make_recipients(2), amount, 100)


def test_duplicates_each_get_an_allocation():
    with pytest.raises(InsufficientBalance):
        plan_batches(["0xa", "0xa", "0xa"], 1, 2)
