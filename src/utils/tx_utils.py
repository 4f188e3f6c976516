import json
import re
from typing import Any

from eth_utils import add_0x_prefix, remove_0x_prefix

from core.config import settings

TX_ID_RE = re.compile(r"^[0-9a-f]{64}$")


def normalize_tx_id(tx_id: str) -> str:
    """Storage form of a tx id: lower case, no ``0x`` prefix."""
    normalized = remove_0x_prefix((tx_id or "").strip().lower())
    if not TX_ID_RE.fullmatch(normalized):
        raise ValueError(f"Invalid transaction id: {tx_id!r}")
    return normalized


def prefixed_tx_id(tx_id: str) -> str:
    return add_0x_prefix(normalize_tx_id(tx_id))


def tx_url(tx_id: str) -> str:
    if settings.MOCKNET:
        return f"{settings.STACKS_API_URL}/extended/v1/tx/{prefixed_tx_id(tx_id)}"
    return (
        f"{settings.EXPLORER_URL}/txid/{prefixed_tx_id(tx_id)}"
        f"?chain={settings.STACKS_NETWORK}"
    )


def tx_id_to_status(tx_id: str) -> str:
    return f"Check transaction status: {tx_url(tx_id)}"


def result_to_status(result: Any) -> str:
    """Turn a broadcast result into the text shown to the user."""
    if (
        isinstance(result, str)
        and result.startswith('"')
        and len(result) == 66
        and TX_ID_RE.fullmatch(result[1:65].lower())
    ):
        return tx_id_to_status(result[1:65])
    if isinstance(result, dict) and result.get("error"):
        return json.dumps(result)
    return str(result)
