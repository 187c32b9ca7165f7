import os
import re
import json
import time
import asyncio
import logging
from typing import List, Optional, Tuple, Sequence

import requests
import questionary
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound
from eth_account import Account

from core.errors import MetadataUnavailable, WalletConnectionError
from core.models import TokenRef
from .rpc_provider import AsyncRotatingHTTPProvider
import config

logger = logging.getLogger(__name__)

_PRIV_RE = re.compile(r"^(?:0x)?([0-9a-fA-F]{64})$")


class LedgerClient:
    """
    web3-backed ledger for one chain and one signing key.

    Owns a rotating async provider and an AsyncWeb3 instance. Transfers are
    signed locally with eth_account. Each submission holds the nonce lock from
    build to broadcast, so concurrent submissions get consecutive nonces and a
    failed send leaves no gap behind it.
    """

    def __init__(self, chain_config, private_key: Optional[str] = None, gas_tier: str = config.GAS_TIER,
                 receipt_timeout: Optional[float] = config.RECEIPT_TIMEOUT):
        self.cfg = chain_config
        self.chain_id = int(chain_config.CHAIN_ID)
        self.gas_tier = gas_tier
        self.receipt_timeout = receipt_timeout
        self.private_key = normalize_private_key(private_key) if private_key else None

        self.rpc_urls: List[str] = self._build_rpc_urls(chain_config)
        self.provider = AsyncRotatingHTTPProvider(self.rpc_urls)
        self.w3 = AsyncWeb3(self.provider)
        self.erc1155_abi = json.loads(chain_config.ERC1155_ABI)

        self._nonce_lock = asyncio.Lock()
        self._next_nonce: Optional[int] = None
        self._fees: Optional[Tuple[int, int]] = None
        self._fees_at: float = 0.0

    # ---------- RPC ----------
    def _build_rpc_urls(self, chain_config) -> List[str]:
        urls: List[str] = []
        base = getattr(chain_config, 'ALCHEMY_RPC_URL', None)
        if base:
            urls.append(str(base))

        keys_raw = os.getenv('ALCHEMY_API_KEYS', '')
        keys = [k.strip() for k in keys_raw.split(',') if k.strip()]
        if keys and base and '/v2/' in base:
            prefix = base.split('/v2/')[0] + '/v2/'
            urls.extend([prefix + k for k in keys])

        extras_raw = os.getenv('EXTRA_RPC_URLS', '')
        urls.extend([u.strip() for u in extras_raw.split(',') if u.strip()])

        public = getattr(chain_config, 'PUBLIC_RPC_URL', None)
        if public:
            urls.append(str(public))

        dedup = list(dict.fromkeys(urls))
        if not dedup:
            raise RuntimeError('No RPC URLs configured. Set ALCHEMY_API_KEY or EXTRA_RPC_URLS in .env')
        return dedup

    # ---------- Wallet ----------
    @property
    def address(self) -> Optional[str]:
        if not self.private_key:
            return None
        return Account.from_key(self.private_key).address

    async def request_account(self) -> Tuple[str, int]:
        if not self.private_key:
            raise WalletConnectionError(
                "No signing key available. Set PRIVATE_KEY in .env or enter a private key to connect."
            )
        chain_id = await self.w3.eth.chain_id
        if int(chain_id) != self.chain_id:
            logger.warning("RPC reports chain %s but %s was selected", chain_id, self.cfg.CHAIN_NAME)
        return self.address, int(chain_id)

    # ---------- ERC-1155 reads ----------
    def _erc1155(self, contract_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=self.erc1155_abi)

    async def balance_of(self, account: str, token_ref: TokenRef) -> int:
        c = self._erc1155(token_ref.contract_address)
        return int(await c.functions.balanceOf(Web3.to_checksum_address(account), token_ref.token_id).call())

    async def uri_of(self, token_ref: TokenRef) -> str:
        c = self._erc1155(token_ref.contract_address)
        return await c.functions.uri(token_ref.token_id).call()

    # ---------- Gas ----------
    def fetch_suggested_fees(self, api_url: Optional[str], tier: str = 'medium') -> Tuple[Optional[int], Optional[int]]:
        """Infura suggested EIP-1559 fees for a tier, in wei. (None, None) means let web3 pick."""
        if not api_url:
            return None, None
        try:
            response = requests.get(api_url, timeout=10)
            response.raise_for_status()
            gas_data = response.json()
            if tier not in gas_data:
                raise KeyError(f"Gas tier '{tier}' not found in response")
            max_fee = float(gas_data[tier]['suggestedMaxFeePerGas'])
            max_prio = float(gas_data[tier]['suggestedMaxPriorityFeePerGas'])
        except requests.exceptions.RequestException as err:
            logger.warning("Gas API request failed: %s", err)
            return None, None
        except (KeyError, TypeError, ValueError) as err:
            logger.warning("Invalid gas fee data format: %s", err)
            return None, None

        logger.info("Fetched gas fees - max fee %s gwei, priority %s gwei", max_fee, max_prio)
        return Web3.to_wei(max_fee, 'gwei'), Web3.to_wei(max_prio, 'gwei')

    async def _current_fees(self) -> Tuple[Optional[int], Optional[int]]:
        if self._fees and time.monotonic() - self._fees_at < config.FEE_CACHE_SECONDS:
            return self._fees
        fees = await asyncio.to_thread(
            self.fetch_suggested_fees, getattr(self.cfg, 'INFURA_GAS_API_URL', None), self.gas_tier,
        )
        if fees[0]:
            self._fees, self._fees_at = fees, time.monotonic()
        return fees

    # ---------- Tx lifecycle ----------
    async def _pending_nonce(self, sender: str) -> int:
        # caller holds _nonce_lock
        if self._next_nonce is None:
            self._next_nonce = await self.w3.eth.get_transaction_count(sender, 'pending')
        return self._next_nonce

    async def _resync_nonce(self, sender: str, unused: int) -> None:
        """After a failed send: never go below the unused nonce, but skip ahead if the node saw it anyway."""
        try:
            pending = await self.w3.eth.get_transaction_count(sender, 'pending')
        except Exception as e:
            logger.warning("Could not resync nonce for %s: %s", sender, e)
            pending = unused
        self._next_nonce = max(unused, int(pending))

    async def transfer_batch(self, contract_address: str, sender: str, to: str,
                             ids: Sequence[int], amounts: Sequence[int], data: bytes = b"") -> str:
        if not self.private_key:
            raise WalletConnectionError("Wallet not connected")
        sender = Web3.to_checksum_address(sender)
        recipient = Web3.to_checksum_address(to)
        c = self._erc1155(contract_address)
        max_fee, max_prio = await self._current_fees()

        # nonce stays reserved from build until the node accepts the tx
        async with self._nonce_lock:
            nonce = await self._pending_nonce(sender)
            try:
                tx_hash = await self._sign_and_send(c, sender, recipient, ids, amounts, data, nonce, max_fee, max_prio)
            except Exception:
                await self._resync_nonce(sender, nonce)
                raise
            self._next_nonce = nonce + 1
        return '0x' + bytes(tx_hash).hex()

    async def _sign_and_send(self, c, sender, recipient, ids, amounts, data, nonce, max_fee, max_prio):
        params = {
            'from': sender,
            'chainId': self.chain_id,
            'nonce': nonce,
            'gas': config.GAS_LIMIT_FALLBACK,
        }
        if max_fee:
            params.update({'type': 2, 'maxFeePerGas': max_fee, 'maxPriorityFeePerGas': max_prio})
        fn = c.functions.safeBatchTransferFrom(sender, recipient, list(ids), list(amounts), data)
        tx = await fn.build_transaction(params)
        try:
            tx['gas'] = await self.w3.eth.estimate_gas(tx)
        except Exception as e:
            logger.debug("Gas estimate for %s failed, using fallback: %s", recipient, e)
        signed = Account.sign_transaction(tx, self.private_key)
        return await self.w3.eth.send_raw_transaction(signed.raw_transaction)

    async def wait_for_receipt(self, tx_hash, timeout: Optional[float] = None,
                               start_delay: float = 2, max_delay: float = 8):
        """Poll until mined. No deadline unless timeout (or RECEIPT_TIMEOUT) is set."""
        timeout = timeout if timeout is not None else self.receipt_timeout
        start = time.monotonic()
        delay = start_delay
        while True:
            try:
                receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
                if receipt:
                    return receipt
            except TransactionNotFound:
                pass
            if timeout is not None and time.monotonic() - start > timeout:
                raise TimeoutError(f"Timed out waiting for receipt of {tx_hash}")
            await asyncio.sleep(delay)
            delay = min(max_delay, delay * 1.5)


class MetadataFetcher:
    """Fetch token metadata JSON over HTTP. Every failure surfaces as MetadataUnavailable."""

    def __init__(self, timeout: float = config.METADATA_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, url: str) -> dict:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            document = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise MetadataUnavailable(f"{url}: {e}") from e
        if not isinstance(document, dict):
            raise MetadataUnavailable(f"{url}: expected a JSON object, got {type(document).__name__}")
        return document

    async def fetch_json(self, url: str) -> dict:
        return await asyncio.to_thread(self._get, url)


# ---------- Input loaders ----------
def normalize_private_key(key: str) -> str:
    m = _PRIV_RE.match((key or "").strip())
    if not m:
        raise WalletConnectionError("Invalid private key: expected 64 hex characters, with or without 0x")
    return "0x" + m.group(1).lower()


def _parse_privatekeys_blob(blob: str) -> List[str]:
    """
    Private keys: hex with/without 0x, 64 hex chars. Returns normalized '0x' + lowercase, unique.
    """
    if not blob:
        return []
    out, seen = [], set()
    for raw in blob.replace(",", "\n").splitlines():
        line = FileHelper.strip_comment(raw)
        for tok in re.split(r"[\s,;]+", line):
            if not tok:
                continue
            m = _PRIV_RE.match(tok)
            if not m:
                masked = f"{tok[:6]}...{tok[-4:]}" if len(tok) > 12 else "****"
                logger.warning("private key: invalid, skipped: %s", masked)
                continue
            key = "0x" + m.group(1).lower()
            if key not in seen:
                seen.add(key); out.append(key)
    return out


def load_privatekey_file(key_file: str) -> Optional[str]:
    """First valid key in the wallet file; the tool signs with a single account."""
    try:
        with open(key_file, "r", encoding="utf-8-sig") as f:
            keys = _parse_privatekeys_blob(f.read())
    except OSError as e:
        logger.error("Failed to read private keys file %s: %s", key_file, e)
        return None
    if len(keys) > 1:
        logger.warning("%d keys in %s, using the first one", len(keys), key_file)
    return keys[0] if keys else None


def load_privatekey_cli() -> Optional[str]:
    blob = questionary.password("Paste private key (hex; with or without 0x):").ask()
    keys = _parse_privatekeys_blob(blob or "")
    return keys[0] if keys else None


def select_chain_config():
    chain_selection = questionary.select("Select chain:", choices=list(config.CHAINS)).ask()
    return config.CHAINS.get(chain_selection, config.POLYGON)


def select_private_key(chain_config) -> Optional[str]:
    if config.PRIVATE_KEY:
        try:
            return normalize_private_key(config.PRIVATE_KEY)
        except WalletConnectionError as e:
            logger.error("PRIVATE_KEY from .env ignored: %s", e)
    choice = questionary.select(
        "Choose private key input method:",
        choices=["Default Path (File)", "Manual Input (CLI)"]
    ).ask()
    if choice == "Default Path (File)":
        return load_privatekey_file(chain_config.WALLET_FILE)
    return load_privatekey_cli()


def load_recipients_file(receiver_file: str) -> str:
    """Raw recipient text with comment lines removed, one address per line."""
    try:
        with open(receiver_file, "r", encoding="utf-8-sig") as f:
            lines = [FileHelper.strip_comment(line) for line in f]
    except OSError as e:
        logger.error("Failed to read receivers file %s: %s", receiver_file, e)
        return ""
    return "\n".join(line for line in lines if line)


def load_recipients_cli() -> str:
    return questionary.text(
        "Recipient addresses (one per line, finish with Esc then Enter):",
        multiline=True,
    ).ask() or ""


class FileHelper:
    """
    Basic file helpers to ensure placeholders exist and to strip comments.
    """

    TEMPLATES = {
        'wallets': "# Enter your private key here. Supports 0x-prefixed or raw hex.\n",
        'receivers': "# Enter receiver addresses (one per line). Duplicates receive one allocation each.\n# 0x1234...abcd\n",
    }

    @staticmethod
    def ensure_placeholder(file_path: str, kind: str) -> None:
        if not os.path.exists(file_path):
            os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                f.write(FileHelper.TEMPLATES.get(kind, ''))

    @staticmethod
    def strip_comment(line: str) -> str:
        s = line.strip()
        if not s or s.startswith('#'):
            return ''
        # inline comment support
        if '#' in s:
            s = s.split('#', 1)[0].strip()
        return s
