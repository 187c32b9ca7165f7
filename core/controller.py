import asyncio
import logging
from typing import Callable, Optional, Tuple

import config
from core.aggregator import ResultAggregator
from core.errors import (
    EmptyRecipientList,
    InvalidAmount,
    QueryError,
    SessionInProgress,
    WalletConnectionError,
)
from core.executor import TransferExecutor
from core.models import BatchOutcome, SessionResult, TokenMetadata, TokenRef, TransferSession
from core.oracle import BalanceOracle
from core.planner import plan_batches, required_amount, validate_amount
from core.ports import Ledger, MetadataSource
from core.recipients import parse_recipients

logger = logging.getLogger(__name__)


class BulkTransferController:
    """
    Operator-facing state for one connected account: the selected token, its
    last known balance and metadata, and the single transfer session that may
    be in flight. Presentation code reads these attributes and calls the
    coroutines below; it never talks to the ledger directly.
    """

    def __init__(
        self,
        ledger: Ledger,
        fetcher: Optional[MetadataSource] = None,
        batch_size: int = config.BATCH_SIZE,
        opensea_slug: str = "matic",
    ):
        self.ledger = ledger
        self.oracle = BalanceOracle(ledger, fetcher)
        self.aggregator = ResultAggregator(self.oracle)
        self.batch_size = batch_size
        self.opensea_slug = opensea_slug

        self.account: str = ""
        self.chain_id: Optional[int] = None
        self.token_ref: Optional[TokenRef] = None
        self.balance: Optional[int] = None
        self.metadata: Optional[TokenMetadata] = None
        self.is_loading: bool = False

        # guards the account nonce sequence, independent of is_loading
        self._session_lock = asyncio.Lock()

    # ---- wallet
    async def connect(self) -> Tuple[str, int]:
        try:
            account, chain_id = await self.ledger.request_account()
        except WalletConnectionError:
            raise
        except Exception as e:
            logger.error("Error connecting wallet: %s", e)
            raise WalletConnectionError(f"Error connecting wallet: {e}") from e
        self.account = account
        self.chain_id = int(chain_id)
        logger.info("Connected %s on %s", self.short_account, self.network_name)
        return self.account, self.chain_id

    def disconnect(self) -> None:
        self.account = ""
        self.chain_id = None
        self.token_ref = None
        self.balance = None
        self.metadata = None

    @property
    def connected(self) -> bool:
        return bool(self.account)

    @property
    def network_name(self) -> str:
        return config.network_name(self.chain_id)

    @property
    def short_account(self) -> str:
        if len(self.account) <= 10:
            return self.account
        return f"{self.account[:6]}...{self.account[-4:]}"

    @property
    def opensea_url(self) -> Optional[str]:
        if self.token_ref is None:
            return None
        return f"https://opensea.io/assets/{self.opensea_slug}/{self.token_ref.contract_address}/{self.token_ref.token_id}"

    # ---- token
    def set_token(self, contract_address: str, token_id) -> TokenRef:
        token_ref = TokenRef(contract_address, token_id)
        if token_ref != self.token_ref:
            self.balance = None
            self.metadata = None
        self.token_ref = token_ref
        return token_ref

    def _require_ready(self) -> TokenRef:
        if not self.connected:
            raise WalletConnectionError("Connect a wallet first")
        if self.token_ref is None:
            raise QueryError("Contract address and token ID are required")
        return self.token_ref

    async def check_balance(self) -> int:
        token_ref = self._require_ready()
        if self._session_lock.locked():
            raise SessionInProgress()
        self.is_loading = True
        try:
            self.balance = await self.oracle.query_balance(self.account, token_ref)
            self.metadata = await self.oracle.resolve_metadata(token_ref)
            return self.balance
        finally:
            self.is_loading = False

    # ---- transfers
    def can_send(self, raw_text: str, amount_per_recipient) -> bool:
        if self.is_loading or self._session_lock.locked() or self.balance is None:
            return False
        recipients = parse_recipients(raw_text)
        if not recipients:
            return False
        try:
            amount = validate_amount(amount_per_recipient)
        except InvalidAmount:
            return False
        return required_amount(recipients, amount) <= self.balance

    def plan(self, raw_text: str, amount_per_recipient: int) -> TransferSession:
        """Validate input against the stored balance snapshot; no ledger calls."""
        token_ref = self._require_ready()
        recipients = parse_recipients(raw_text)
        if not recipients:
            raise EmptyRecipientList()
        balance = self.balance or 0
        batches = plan_batches(
            recipients, amount_per_recipient, balance,
            token_id=token_ref.token_id, batch_size=self.batch_size,
        )
        return TransferSession(
            account=self.account,
            token_ref=token_ref,
            recipients=recipients,
            amount_per_recipient=amount_per_recipient,
            balance_snapshot=balance,
            batches=batches,
        )

    async def send_tokens(
        self,
        raw_text: str,
        amount_per_recipient: int,
        on_batch: Optional[Callable[[BatchOutcome], None]] = None,
    ) -> SessionResult:
        token_ref = self._require_ready()
        if self._session_lock.locked():
            raise SessionInProgress()
        if self.balance is None:
            self.balance = await self.oracle.query_balance(self.account, token_ref)

        session = self.plan(raw_text, amount_per_recipient)
        if self._session_lock.locked():
            raise SessionInProgress()

        async with self._session_lock:
            self.is_loading = True
            try:
                logger.info(
                    "Sending %d x token %s to %d recipient(s) in %d batch(es)",
                    session.amount_per_recipient, token_ref.token_id,
                    len(session.recipients), len(session.batches),
                )
                executor = TransferExecutor(self.ledger, on_batch=on_batch)
                outcomes = await executor.execute(session)
                result = await self.aggregator.aggregate(
                    outcomes, session.account, token_ref, session.amount_per_recipient,
                )
                # balance is stale after any transfer; None forces a re-query next time
                self.balance = result.balance
                return result
            finally:
                self.is_loading = False
