from typing import Any, Mapping, Protocol, Sequence, Tuple

from core.models import TokenRef


class Ledger(Protocol):
    """What the core needs from the chain. utils.helper.LedgerClient is the web3 implementation."""

    async def request_account(self) -> Tuple[str, int]: ...

    async def balance_of(self, account: str, token_ref: TokenRef) -> int: ...

    async def uri_of(self, token_ref: TokenRef) -> str: ...

    async def transfer_batch(
        self,
        contract_address: str,
        sender: str,
        to: str,
        ids: Sequence[int],
        amounts: Sequence[int],
        data: bytes = b"",
    ) -> str: ...

    async def wait_for_receipt(self, tx_hash: str) -> Mapping[str, Any]: ...


class MetadataSource(Protocol):
    async def fetch_json(self, url: str) -> dict: ...
