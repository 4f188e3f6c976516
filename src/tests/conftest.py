import asyncio
from typing import Dict, List, Optional

import pytest
from cryptography.fernet import Fernet

from schemas.transaction import ApiData
from services.user_storage import EncryptedFileStorage
from utils.tx_utils import normalize_tx_id

VIEWER = "ST2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKQ9H6DPR"
SENDER = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"


def tx_id_of(char: str) -> str:
    return char * 64


def stx_transfer(event_index: int, recipient: str, amount: int = 1_000_000, sender: str = SENDER) -> dict:
    return {
        "event_index": event_index,
        "event_type": "stx_asset",
        "asset": {
            "asset_event_type": "transfer",
            "sender": sender,
            "recipient": recipient,
            "amount": str(amount),
        },
    }


def contract_log(event_index: int, hex_value: str, contract_id: str = "ST000.send-many-memo") -> dict:
    return {
        "event_index": event_index,
        "event_type": "smart_contract_log",
        "contract_log": {
            "contract_id": contract_id,
            "topic": "print",
            "value": {"hex": hex_value, "repr": None},
        },
    }


def api_doc(
    tx_id: str,
    events: List[dict],
    tx_status: str = "success",
    event_count: Optional[int] = None,
    contract_id: str = "ST000.send-many",
) -> dict:
    return {
        "tx_id": f"0x{tx_id}",
        "tx_status": tx_status,
        "tx_type": "contract_call",
        "sender_address": SENDER,
        "burn_block_time_iso": "2021-05-01T10:00:00.000Z",
        "contract_call": {"contract_id": contract_id, "function_name": "send-many"},
        "event_count": len(events) if event_count is None else event_count,
        "events": events,
    }


class FakeFetcher:
    """Serves pages of in-memory API documents and records every call."""

    def __init__(self, docs: Dict[str, dict], delays: Optional[Dict[str, float]] = None):
        self.docs = {normalize_tx_id(k): v for k, v in docs.items()}
        self.delays = delays or {}
        self.calls = []

    async def get_transaction_by_id(self, tx_id, event_offset=0, event_limit=None):
        self.calls.append((tx_id, event_offset, event_limit))
        delay = self.delays.get(tx_id)
        if delay:
            await asyncio.sleep(delay)
        doc = self.docs[normalize_tx_id(tx_id)]
        limit = event_limit or 50
        page = dict(doc, events=doc["events"][event_offset : event_offset + limit])
        return ApiData.model_validate(page)


class RecordingStorage(EncryptedFileStorage):
    def __init__(self, root, key):
        super().__init__(root, key)
        self.writes = []

    async def put_file(self, path: str, content: str) -> None:
        self.writes.append(path)
        await super().put_file(path, content)


@pytest.fixture
def storage(tmp_path):
    return RecordingStorage(tmp_path / "user", Fernet.generate_key())
