from typing import List, Sequence

import config
from core.errors import EmptyRecipientList, InsufficientBalance, InvalidAmount
from core.models import Batch


def validate_amount(amount_per_recipient) -> int:
    if isinstance(amount_per_recipient, bool) or not isinstance(amount_per_recipient, int):
        raise InvalidAmount(amount_per_recipient)
    if amount_per_recipient < 1:
        raise InvalidAmount(amount_per_recipient)
    return amount_per_recipient


def required_amount(recipients: Sequence[str], amount_per_recipient: int) -> int:
    return len(recipients) * amount_per_recipient


def plan_batches(
    recipients: Sequence[str],
    amount_per_recipient: int,
    balance: int,
    token_id: int = 0,
    batch_size: int = config.BATCH_SIZE,
) -> List[Batch]:
    """
    Split recipients into contiguous batches of at most batch_size, in order.

    Raises EmptyRecipientList, InvalidAmount or InsufficientBalance before any
    batch is produced, so a failed plan never reaches the ledger.
    """
    if not recipients:
        raise EmptyRecipientList()
    amount = validate_amount(amount_per_recipient)
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    total = required_amount(recipients, amount)
    if total > balance:
        raise InsufficientBalance(balance, total)

    return [
        Batch(
            index=n,
            recipients=list(recipients[start:start + batch_size]),
            ids=[token_id],
            amounts=[amount],
        )
        for n, start in enumerate(range(0, len(recipients), batch_size))
    ]
