# config.py
import os
from dotenv import load_dotenv
from pathlib import Path

load_dotenv()

BASE_PATH = Path(__file__).resolve().parent / "resources"

ALCHEMY_API_KEY = os.getenv('ALCHEMY_API_KEY')
INFURA_API_KEY = os.getenv('INFURA_API_KEY')
PRIVATE_KEY = os.getenv('PRIVATE_KEY', '').strip()

IPFS_GATEWAY = os.getenv('IPFS_GATEWAY', 'https://ipfs.io/ipfs/')
GAS_TIER = os.getenv('GAS_TIER', 'medium')
METADATA_TIMEOUT = float(os.getenv('METADATA_TIMEOUT', '10'))
# unset -> wait for receipts forever
RECEIPT_TIMEOUT = float(os.getenv('RECEIPT_TIMEOUT')) if os.getenv('RECEIPT_TIMEOUT') else None

# recipients per group of transfer transactions
BATCH_SIZE = 50
GAS_LIMIT_FALLBACK = 150000
FEE_CACHE_SECONDS = 30

CHAIN_NAMES = {
    137: "Polygon",
    8453: "Base",
}


def network_name(chain_id) -> str:
    try:
        return CHAIN_NAMES.get(int(chain_id), "Unsupported Network")
    except (TypeError, ValueError):
        return "Unsupported Network"


ERC1155_ABI = """
[
  {
    "inputs": [
      {"internalType": "address", "name": "account", "type": "address"},
      {"internalType": "uint256", "name": "id", "type": "uint256"}
    ],
    "name": "balanceOf",
    "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
  },
  {
    "inputs": [{"internalType": "uint256", "name": "id", "type": "uint256"}],
    "name": "uri",
    "outputs": [{"internalType": "string", "name": "", "type": "string"}],
    "stateMutability": "view",
    "type": "function"
  },
  {
    "inputs": [
      {"internalType": "address", "name": "from", "type": "address"},
      {"internalType": "address", "name": "to", "type": "address"},
      {"internalType": "uint256[]", "name": "ids", "type": "uint256[]"},
      {"internalType": "uint256[]", "name": "amounts", "type": "uint256[]"},
      {"internalType": "bytes", "name": "data", "type": "bytes"}
    ],
    "name": "safeBatchTransferFrom",
    "outputs": [],
    "stateMutability": "nonpayable",
    "type": "function"
  }
]
"""


class POLYGON :
    # RPC URL for connecting to Polygon mainnet
    ALCHEMY_API_KEY = ALCHEMY_API_KEY
    ALCHEMY_RPC_URL = f"https://polygon-mainnet.g.alchemy.com/v2/{ALCHEMY_API_KEY}" if ALCHEMY_API_KEY else None
    PUBLIC_RPC_URL = "https://polygon-rpc.com"

    CHAIN_ID = 137
    CHAIN_NAME = "polygon"
    DISPLAY_NAME = CHAIN_NAMES[CHAIN_ID]
    OPENSEA_SLUG = "matic"

    # Paths to your wallet and receiver files
    WALLET_FILE = os.path.join(BASE_PATH, "wallet.txt") #private keys
    RECEIVERS_FILE = os.path.join(BASE_PATH, "receiver_wallet.txt")

    ERC1155_ABI = ERC1155_ABI

    # Infura Gas API Key for gas price estimation
    INFURA_API_KEY = INFURA_API_KEY
    INFURA_GAS_API_URL = f"https://gas.api.infura.io/v3/{INFURA_API_KEY}/networks/{CHAIN_ID}/suggestedGasFees" if INFURA_API_KEY else None


class Base :
    # RPC URL for connecting to Base mainnet
    ALCHEMY_API_KEY = ALCHEMY_API_KEY
    ALCHEMY_RPC_URL = f"https://base-mainnet.g.alchemy.com/v2/{ALCHEMY_API_KEY}" if ALCHEMY_API_KEY else None
    PUBLIC_RPC_URL = "https://mainnet.base.org"

    CHAIN_ID = 8453
    CHAIN_NAME = "base"
    DISPLAY_NAME = CHAIN_NAMES[CHAIN_ID]
    OPENSEA_SLUG = "base"

    # Paths to your wallet and receiver files
    WALLET_FILE = os.path.join(BASE_PATH, "wallet.txt") #private keys
    RECEIVERS_FILE = os.path.join(BASE_PATH, "receiver_wallet.txt")

    ERC1155_ABI = ERC1155_ABI

    INFURA_API_KEY = INFURA_API_KEY
    INFURA_GAS_API_URL = f"https://gas.api.infura.io/v3/{INFURA_API_KEY}/networks/{CHAIN_ID}/suggestedGasFees" if INFURA_API_KEY else None


CHAINS = {
    "POLYGON": POLYGON,
    "Base": Base,
}

MODULE_PATH = Path(__file__).resolve().parent / "modules"
