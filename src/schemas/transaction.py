from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core import constants


class AssetPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    asset_event_type: Optional[str] = None
    asset_id: Optional[str] = None
    sender: Optional[str] = None
    recipient: Optional[str] = None
    amount: Optional[str] = None


class ContractLogValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    hex: str
    repr: Optional[str] = None


class ContractLog(BaseModel):
    model_config = ConfigDict(extra="allow")

    contract_id: Optional[str] = None
    topic: Optional[str] = None
    value: ContractLogValue


class EventRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    event_index: int
    event_type: str
    tx_id: Optional[str] = None
    asset: Optional[AssetPayload] = None
    contract_log: Optional[ContractLog] = None

    @property
    def is_stx_transfer(self) -> bool:
        return self.event_type == constants.EVENT_TYPE_STX_ASSET and self.asset is not None


class ContractCall(BaseModel):
    model_config = ConfigDict(extra="allow")

    contract_id: str
    function_name: Optional[str] = None


class TxResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    hex: str
    repr: Optional[str] = None


class ApiData(BaseModel):
    """Transaction document as returned by ``/extended/v1/tx/{tx_id}``.

    Only the fields the history views rely on are typed, everything else the
    API sends is kept as extra fields so cached documents stay complete.
    """

    model_config = ConfigDict(extra="allow")

    tx_id: Optional[str] = None
    tx_status: str
    tx_type: Optional[str] = None
    event_count: int = 0
    events: List[EventRecord] = []
    sender_address: Optional[str] = None
    contract_call: Optional[ContractCall] = None
    burn_block_time_iso: Optional[str] = None
    tx_result: Optional[TxResult] = None

    @property
    def is_pending(self) -> bool:
        return self.tx_status == constants.TX_STATUS_PENDING

    @property
    def is_complete(self) -> bool:
        return len(self.events) == self.event_count


class TransactionRecord(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    tx_id: str = Field(alias="txId")
    api_data: Optional[ApiData] = Field(default=None, alias="apiData")

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# A merged group has the same shape, it is only never written to storage.
CombinedRecord = TransactionRecord
