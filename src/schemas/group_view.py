from typing import List, Optional

from pydantic import BaseModel


class TransferView(BaseModel):
    event_index: int
    sender: Optional[str] = None
    recipient: str
    amount_micro_stx: int
    amount_stx: str
    is_viewer: bool = False
    memo: Optional[str] = None


class GroupView(BaseModel):
    tx_id: str
    tx_status: str
    burn_block_time_iso: Optional[str] = None
    sender_address: Optional[str] = None
    sender_is_viewer: bool = False
    event_count: int
    transfers: List[TransferView] = []
    show_memo: bool = False
    memo_per_recipient: bool = False
    shared_memo: Optional[str] = None
