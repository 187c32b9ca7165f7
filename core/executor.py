import asyncio
import logging
from typing import Callable, List, Optional

from core.errors import BatchFailure
from core.models import Batch, BatchOutcome, BatchStatus, TransferOutcome, TransferSession
from core.ports import Ledger

logger = logging.getLogger(__name__)

TRANSFER_DATA = b""


class TransferExecutor:
    """
    Runs the planned batches strictly in order. Inside a batch every
    recipient's transfer is submitted together and the batch only resolves
    once each of them has confirmed or failed, so at most one batch worth of
    transactions is ever pending on the account.
    """

    def __init__(self, ledger: Ledger, on_batch: Optional[Callable[[BatchOutcome], None]] = None):
        self.ledger = ledger
        self.on_batch = on_batch

    async def execute(self, session: TransferSession) -> List[BatchOutcome]:
        outcomes: List[BatchOutcome] = []
        for batch in session.batches:
            logger.info(
                "Batch %d/%d: sending to %d recipient(s)",
                batch.index + 1, len(session.batches), len(batch.recipients),
            )
            outcome = await self.run_batch(session, batch)
            outcomes.append(outcome)
            session.outcomes.append(outcome)
            if outcome.confirmed:
                logger.info("Batch %d confirmed", batch.index + 1)
            else:
                logger.error("Batch %d failed: %s", batch.index + 1, outcome.reason)
            if self.on_batch is not None:
                self.on_batch(outcome)
        return outcomes

    async def run_batch(self, session: TransferSession, batch: Batch) -> BatchOutcome:
        transfers = await asyncio.gather(
            *(self._transfer(session, batch, recipient) for recipient in batch.recipients)
        )
        failed = [t for t in transfers if not t.confirmed]
        if not failed:
            return BatchOutcome(index=batch.index, status=BatchStatus.CONFIRMED, transfers=list(transfers))

        failure = BatchFailure(batch.index, f"{len(failed)}/{len(transfers)} transfer(s) failed; first: {failed[0].error}")
        return BatchOutcome(
            index=batch.index,
            status=BatchStatus.FAILED,
            reason=failure.reason,
            transfers=list(transfers),
            failure=failure,
        )

    async def _transfer(self, session: TransferSession, batch: Batch, recipient: str) -> TransferOutcome:
        outcome = TransferOutcome(recipient=recipient)
        try:
            tx_hash = await self.ledger.transfer_batch(
                session.token_ref.contract_address,
                session.account,
                recipient,
                batch.ids,
                batch.amounts,
                TRANSFER_DATA,
            )
        except Exception as e:
            logger.error("Error sending tokens to %s: %s", recipient, e)
            outcome.error = f"submit failed: {e}"
            return outcome

        outcome.tx_hash = _hex(tx_hash)
        try:
            receipt = await self.ledger.wait_for_receipt(tx_hash)
        except Exception as e:
            logger.error("Error confirming %s (to %s): %s", outcome.tx_hash, recipient, e)
            outcome.error = f"confirmation failed: {e}"
            return outcome

        if receipt is not None and receipt.get("status", 0) == 1:
            outcome.confirmed = True
        else:
            block = receipt.get("blockNumber") if receipt is not None else None
            outcome.error = f"reverted in block {block}"
            logger.error("Tx %s to %s reverted in block %s", outcome.tx_hash, recipient, block)
        return outcome


def _hex(tx_hash) -> str:
    if isinstance(tx_hash, (bytes, bytearray)):
        return "0x" + bytes(tx_hash).hex()
    return str(tx_hash)
