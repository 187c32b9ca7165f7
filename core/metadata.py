from typing import Optional

import eth_abi

import config

IPFS_SCHEME = "ipfs://"
ID_TEMPLATE = "{id}"


def gateway_rewrite(uri: str, gateway: Optional[str] = None) -> str:
    """ipfs://<cid>/... -> <gateway><cid>/..., anything else untouched."""
    gateway = gateway or config.IPFS_GATEWAY
    if uri.startswith(IPFS_SCHEME):
        return gateway + uri[len(IPFS_SCHEME):]
    return uri


def token_id_hex(token_id: int) -> str:
    # ERC-1155 metadata clients substitute the id as 64 lowercase hex chars, no 0x
    return eth_abi.encode(["uint256"], [int(token_id)]).hex()


def expand_id_template(uri: str, token_id: int) -> str:
    if ID_TEMPLATE not in uri:
        return uri
    return uri.replace(ID_TEMPLATE, token_id_hex(token_id))


def metadata_url(uri: str, token_id: int, gateway: Optional[str] = None) -> str:
    return expand_id_template(gateway_rewrite(uri.strip(), gateway), token_id)


def image_url(document, gateway: Optional[str] = None) -> Optional[str]:
    image = document.get("image") if isinstance(document, dict) else None
    if not isinstance(image, str) or not image.strip():
        return None
    return gateway_rewrite(image.strip(), gateway)
