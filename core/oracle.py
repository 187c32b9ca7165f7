import logging
from typing import Optional

from core.errors import MetadataUnavailable, QueryError
from core.metadata import image_url, metadata_url
from core.models import TokenMetadata, TokenRef
from core.ports import Ledger, MetadataSource

logger = logging.getLogger(__name__)


class BalanceOracle:
    """
    Read side of the token contract: the operator's balance plus best-effort
    display metadata. Nothing here mutates session state; callers store what
    they get back and must query again after every transfer session.
    """

    def __init__(self, ledger: Ledger, fetcher: Optional[MetadataSource] = None, gateway: Optional[str] = None):
        self.ledger = ledger
        self.fetcher = fetcher
        self.gateway = gateway

    async def query_balance(self, account: str, token_ref: TokenRef) -> int:
        try:
            balance = await self.ledger.balance_of(account, token_ref)
        except Exception as e:
            logger.error("balanceOf(%s, %s) on %s failed: %s", account, token_ref.token_id, token_ref.contract_address, e)
            raise QueryError(
                "Error checking NFT balance. Make sure the contract address and token ID are valid."
            ) from e
        balance = int(balance)
        if balance < 0:
            raise QueryError(f"ledger returned a negative balance: {balance}")
        return balance

    async def resolve_metadata(self, token_ref: TokenRef) -> Optional[TokenMetadata]:
        try:
            uri = await self.ledger.uri_of(token_ref)
        except Exception as e:
            logger.warning("uri(%s) lookup failed, metadata unavailable: %s", token_ref.token_id, e)
            return None
        if not uri:
            logger.warning("Token %s has an empty uri", token_ref.token_id)
            return None

        url = metadata_url(uri, token_ref.token_id, self.gateway)
        if self.fetcher is None:
            return TokenMetadata(uri=uri, metadata_url=url)
        try:
            document = await self.fetcher.fetch_json(url)
        except MetadataUnavailable as e:
            logger.warning("Metadata fetch from %s failed: %s", url, e)
            return TokenMetadata(uri=uri, metadata_url=url)
        return TokenMetadata(uri=uri, metadata_url=url, image_url=image_url(document, self.gateway))
