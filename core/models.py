from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from core.errors import BatchFailure


@dataclass(frozen=True)
class TokenRef:
    contract_address: str
    token_id: int

    def __post_init__(self):
        address = (self.contract_address or "").strip()
        if not address:
            raise ValueError("contract address is required")
        try:
            token_id = int(self.token_id)
        except (TypeError, ValueError):
            raise ValueError(f"token id must be an integer, got {self.token_id!r}") from None
        if token_id < 0:
            raise ValueError(f"token id must be non-negative, got {token_id}")
        object.__setattr__(self, "contract_address", address)
        object.__setattr__(self, "token_id", token_id)


@dataclass(frozen=True)
class TokenMetadata:
    uri: str
    metadata_url: str
    image_url: Optional[str] = None


@dataclass(frozen=True)
class Batch:
    """
    Contiguous slice of the recipient list. Every recipient in the batch gets
    one safeBatchTransferFrom call carrying the single (id, amount) pair.
    """
    index: int
    recipients: List[str]
    ids: List[int]
    amounts: List[int]

    @property
    def total_amount(self) -> int:
        return len(self.recipients) * sum(self.amounts)


class BatchStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class TransferOutcome:
    recipient: str
    tx_hash: Optional[str] = None
    confirmed: bool = False
    error: Optional[str] = None


@dataclass
class BatchOutcome:
    index: int
    status: BatchStatus
    reason: Optional[str] = None
    transfers: List[TransferOutcome] = field(default_factory=list)
    failure: Optional[BatchFailure] = None

    @property
    def confirmed(self) -> bool:
        return self.status is BatchStatus.CONFIRMED


@dataclass
class TransferSession:
    account: str
    token_ref: TokenRef
    recipients: List[str]
    amount_per_recipient: int
    balance_snapshot: int
    batches: List[Batch] = field(default_factory=list)
    outcomes: List[BatchOutcome] = field(default_factory=list)

    @property
    def total_amount(self) -> int:
        return len(self.recipients) * self.amount_per_recipient


@dataclass
class SessionResult:
    all_succeeded: bool
    failed_batch_indices: List[int]
    outcomes: List[BatchOutcome] = field(default_factory=list)
    # None when the post-session balance refresh itself failed
    balance: Optional[int] = None
    amount_per_recipient: int = 0

    @property
    def failed_recipients(self) -> List[str]:
        return [t.recipient for o in self.outcomes for t in o.transfers if not t.confirmed]

    @property
    def confirmed_transfers(self) -> int:
        return sum(1 for o in self.outcomes for t in o.transfers if t.confirmed)

    @property
    def amount_sent(self) -> int:
        return self.confirmed_transfers * self.amount_per_recipient
