from .transaction import (
    ApiData,
    AssetPayload,
    CombinedRecord,
    ContractCall,
    ContractLog,
    ContractLogValue,
    EventRecord,
    TransactionRecord,
    TxResult,
)
from .group_view import GroupView, TransferView
from .user_session import UserSession
