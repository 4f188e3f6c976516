from enum import Enum

TX_STATUS_PENDING = "pending"
TX_STATUS_SUCCESS = "success"
TX_STATUS_ABORT_PREFIX = "abort"

EVENT_TYPE_STX_ASSET = "stx_asset"
EVENT_TYPE_CONTRACT_LOG = "smart_contract_log"

SEND_MANY_MEMO_CONTRACT_NAME = "send-many-memo"

MICRO_STX_PER_STX = 1_000_000

TXS_FOLDER = "txs"

# websocket JSON-RPC
WS_EVENT_TX_UPDATE = "tx_update"
WS_METHOD_SUBSCRIBE = "subscribe"
WS_METHOD_UNSUBSCRIBE = "unsubscribe"


class TxStatusState(str, Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    WAITING = "waiting"
    RESOLVED = "resolved"


def is_terminal_status(tx_status: str) -> bool:
    return bool(tx_status) and tx_status != TX_STATUS_PENDING


def is_abort_status(tx_status: str) -> bool:
    return bool(tx_status) and tx_status.startswith(TX_STATUS_ABORT_PREFIX)
