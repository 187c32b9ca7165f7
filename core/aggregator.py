import logging
from typing import Sequence

from core.errors import QueryError
from core.models import BatchOutcome, SessionResult, TokenRef
from core.oracle import BalanceOracle

logger = logging.getLogger(__name__)


def summarize(outcomes: Sequence[BatchOutcome], amount_per_recipient: int = 0) -> SessionResult:
    failed = [o.index for o in outcomes if not o.confirmed]
    return SessionResult(
        all_succeeded=not failed,
        failed_batch_indices=failed,
        outcomes=list(outcomes),
        amount_per_recipient=amount_per_recipient,
    )


class ResultAggregator:
    def __init__(self, oracle: BalanceOracle):
        self.oracle = oracle

    async def aggregate(
        self,
        outcomes: Sequence[BatchOutcome],
        account: str,
        token_ref: TokenRef,
        amount_per_recipient: int = 0,
    ) -> SessionResult:
        """
        Roll batch outcomes into a session result and re-read the balance once,
        whatever the outcome, since any subset of the transfers may have landed.
        Failed batches are reported, never retried.
        """
        result = summarize(outcomes, amount_per_recipient)
        try:
            result.balance = await self.oracle.query_balance(account, token_ref)
        except QueryError as e:
            logger.warning("Balance refresh after transfer session failed: %s", e)
        if result.all_succeeded:
            logger.info("Session complete: %d batch(es) confirmed", len(result.outcomes))
        else:
            logger.warning(
                "Session finished with failed batches %s (%d of %d transfers confirmed)",
                result.failed_batch_indices,
                result.confirmed_transfers,
                sum(len(o.transfers) for o in result.outcomes),
            )
        return result
