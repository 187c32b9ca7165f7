import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import TransactionNotFound

import config
from core.errors import MetadataUnavailable, WalletConnectionError
from core.models import TokenRef
from fakes import CONTRACT
from utils import helper
from utils.helper import FileHelper, LedgerClient, MetadataFetcher, normalize_private_key

KEY = "0x" + "4c" * 32


class DummyChainConfig:
    ALCHEMY_RPC_URL = None
    PUBLIC_RPC_URL = "http://localhost:8545"
    CHAIN_ID = 137
    CHAIN_NAME = "test"
    ERC1155_ABI = config.ERC1155_ABI
    INFURA_GAS_API_URL = None
    WALLET_FILE = "wallet.txt"


@pytest.fixture(autouse=True)
def _no_env_rpc(monkeypatch):
    monkeypatch.delenv("ALCHEMY_API_KEYS", raising=False)
    monkeypatch.delenv("EXTRA_RPC_URLS", raising=False)


def test_rpc_urls_from_config_and_env(monkeypatch):
    monkeypatch.setenv("EXTRA_RPC_URLS", "http://a, http://b,http://a")
    client = LedgerClient(DummyChainConfig)
    assert client.rpc_urls == ["http://a", "http://b", "http://localhost:8545"]


def test_request_account_without_key():
    client = LedgerClient(DummyChainConfig)
    with pytest.raises(WalletConnectionError):
        asyncio.run(client.request_account())


def test_request_account_derives_address():
    client = LedgerClient(DummyChainConfig, private_key=KEY)
    client.w3 = MagicMock()
    client.w3.eth.chain_id = asyncio.sleep(0, result=137)
    account, chain_id = asyncio.run(client.request_account())
    assert account == Account.from_key(KEY).address
    assert chain_id == 137


def test_normalize_private_key():
    assert normalize_private_key("4C" * 32) == KEY
    assert normalize_private_key("  " + KEY + " ") == KEY
    with pytest.raises(WalletConnectionError):
        normalize_private_key("0x1234")


def _mock_transfer_client(send_result=None, send_error=None):
    client = LedgerClient(DummyChainConfig, private_key=KEY)
    sender = Account.from_key(KEY).address
    tx = {
        "from": sender,
        "to": Web3.to_checksum_address(CONTRACT),
        "value": 0,
        "gas": config.GAS_LIMIT_FALLBACK,
        "gasPrice": 1,
        "nonce": 0,
        "chainId": 137,
        "data": "0x",
    }
    contract = MagicMock()
    contract.functions.safeBatchTransferFrom.return_value.build_transaction = AsyncMock(return_value=tx)
    client._erc1155 = MagicMock(return_value=contract)
    client.w3 = MagicMock()
    client.w3.eth.get_transaction_count = AsyncMock(return_value=0)
    client.w3.eth.estimate_gas = AsyncMock(return_value=60000)
    client.w3.eth.send_raw_transaction = AsyncMock(return_value=send_result, side_effect=send_error)
    return client, sender, contract


def test_transfer_batch_signs_and_sends():
    client, sender, contract = _mock_transfer_client(send_result=b"\x12" * 32)
    recipient = "0x" + "b" * 40

    tx_hash = asyncio.run(client.transfer_batch(CONTRACT, sender, recipient, [1], [5], b""))

    assert tx_hash == "0x" + "12" * 32
    args = contract.functions.safeBatchTransferFrom.call_args.args
    assert args[1].lower() == recipient
    assert args[2:] == ([1], [5], b"")
    client.w3.eth.send_raw_transaction.assert_awaited_once()


def _track_nonces(client, contract, fail_on_send=None, pending=0):
    """Record the nonce of every built tx and of every tx the node accepted."""
    built, sent = [], []
    tx = contract.functions.safeBatchTransferFrom.return_value.build_transaction.return_value

    async def build(params):
        built.append(params["nonce"])
        return {**tx, "nonce": params["nonce"]}

    async def send(raw):
        if len(built) == fail_on_send:
            raise ConnectionError("dropped")
        sent.append(built[-1])
        return b"\x01" * 32

    contract.functions.safeBatchTransferFrom.return_value.build_transaction = AsyncMock(side_effect=build)
    client.w3.eth.send_raw_transaction = AsyncMock(side_effect=send)
    client.w3.eth.get_transaction_count = AsyncMock(return_value=pending)
    return built, sent


def test_concurrent_transfers_failed_send_leaves_no_gap_or_reuse():
    client, sender, contract = _mock_transfer_client()
    built, sent = _track_nonces(client, contract, fail_on_send=2)
    recipients = ["0x" + c * 40 for c in "bcd"]

    async def send_all():
        return await asyncio.gather(
            *(client.transfer_batch(CONTRACT, sender, r, [1], [1]) for r in recipients),
            return_exceptions=True,
        )

    results = asyncio.run(send_all())

    assert sum(isinstance(r, ConnectionError) for r in results) == 1
    assert built == [0, 1, 1]
    assert sent == [0, 1]

    asyncio.run(client.transfer_batch(CONTRACT, sender, recipients[0], [1], [1]))
    assert sent == [0, 1, 2]


def test_failed_send_skips_nonce_the_node_already_saw():
    client, sender, contract = _mock_transfer_client()
    built, sent = _track_nonces(client, contract, fail_on_send=1)
    # the dropped call reached the node after all
    client.w3.eth.get_transaction_count = AsyncMock(side_effect=[0, 1])

    with pytest.raises(ConnectionError):
        asyncio.run(client.transfer_batch(CONTRACT, sender, "0x" + "b" * 40, [1], [1]))
    asyncio.run(client.transfer_batch(CONTRACT, sender, "0x" + "b" * 40, [1], [1]))

    assert built == [0, 1]
    assert sent == [1]


def test_transfer_batch_rejects_malformed_recipient():
    client, sender, _ = _mock_transfer_client(send_result=b"\x00" * 32)
    with pytest.raises(ValueError):
        asyncio.run(client.transfer_batch(CONTRACT, sender, "not-an-address", [1], [1]))


def test_wait_for_receipt_polls_until_mined():
    client = LedgerClient(DummyChainConfig)
    client.w3 = MagicMock()
    client.w3.eth.get_transaction_receipt = AsyncMock(
        side_effect=[TransactionNotFound("pending"), TransactionNotFound("pending"), {"status": 1}]
    )
    receipt = asyncio.run(client.wait_for_receipt("0xabc", start_delay=0))
    assert receipt == {"status": 1}
    assert client.w3.eth.get_transaction_receipt.await_count == 3


def test_wait_for_receipt_optional_deadline():
    client = LedgerClient(DummyChainConfig)
    client.w3 = MagicMock()
    client.w3.eth.get_transaction_receipt = AsyncMock(side_effect=TransactionNotFound("pending"))
    with pytest.raises(TimeoutError):
        asyncio.run(client.wait_for_receipt("0xabc", timeout=0.01, start_delay=0.02))


def test_balance_and_uri_reads():
    client = LedgerClient(DummyChainConfig)
    contract = MagicMock()
    contract.functions.balanceOf.return_value.call = AsyncMock(return_value=12)
    contract.functions.uri.return_value.call = AsyncMock(return_value="ipfs://Qm/{id}.json")
    client._erc1155 = MagicMock(return_value=contract)
    token = TokenRef(CONTRACT, 4)

    assert asyncio.run(client.balance_of("0x" + "a" * 40, token)) == 12
    assert asyncio.run(client.uri_of(token)) == "ipfs://Qm/{id}.json"
    contract.functions.uri.assert_called_once_with(4)


def test_fetch_suggested_fees(monkeypatch):
    response = MagicMock()
    response.json.return_value = {
        "medium": {"suggestedMaxFeePerGas": "30", "suggestedMaxPriorityFeePerGas": "1.5"}
    }
    monkeypatch.setattr(helper.requests, "get", MagicMock(return_value=response))
    client = LedgerClient(DummyChainConfig)
    assert client.fetch_suggested_fees("http://gas", "medium") == (30 * 10**9, 15 * 10**8)
    assert client.fetch_suggested_fees("http://gas", "ultra") == (None, None)
    assert client.fetch_suggested_fees(None) == (None, None)


def test_metadata_fetcher_success_and_failures():
    session = MagicMock()
    session.get.return_value.json.return_value = {"image": "ipfs://QmImg"}
    fetcher = MetadataFetcher(timeout=1, session=session)
    assert asyncio.run(fetcher.fetch_json("http://meta")) == {"image": "ipfs://QmImg"}
    session.get.assert_called_once_with("http://meta", timeout=1)

    session.get.return_value.json.return_value = ["not", "an", "object"]
    with pytest.raises(MetadataUnavailable):
        asyncio.run(fetcher.fetch_json("http://meta"))

    session.get.return_value.json.side_effect = ValueError("bad json")
    with pytest.raises(MetadataUnavailable):
        asyncio.run(fetcher.fetch_json("http://meta"))

    session.get.side_effect = requests.exceptions.ConnectionError("down")
    with pytest.raises(MetadataUnavailable):
        asyncio.run(fetcher.fetch_json("http://meta"))


def test_recipients_file_strips_comments(tmp_path):
    path = tmp_path / "receivers.txt"
    FileHelper.ensure_placeholder(str(path), "receivers")
    with open(path, "a", encoding="utf-8") as f:
        f.write("0xaaa\n\n0xbbb  # friend\n0xaaa\n")
    assert helper.load_recipients_file(str(path)) == "0xaaa\n0xbbb\n0xaaa"


def test_privatekey_file_takes_first_valid_key(tmp_path):
    path = tmp_path / "wallet.txt"
    path.write_text("# keys\nnot-a-key\n" + "4c" * 32 + "\n0x" + "5d" * 32 + "\n")
    assert helper.load_privatekey_file(str(path)) == KEY
    assert helper.load_privatekey_file(str(tmp_path / "missing.txt")) is None
