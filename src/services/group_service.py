import logging
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from core import constants
from core.config import settings
from schemas.group_view import GroupView, TransferView
from schemas.transaction import CombinedRecord, EventRecord, TransactionRecord
from utils.clarity import (
    BufferCV,
    StringAsciiCV,
    StringUtf8CV,
    hex_to_cv,
)

logger = logging.getLogger(__name__)

TransactionResolver = Callable[[str], Awaitable[TransactionRecord]]


class GroupMergeError(Exception):
    pass


async def merge_group(
    tx_ids: Sequence[str],
    resolver: TransactionResolver,
    logger: logging.Logger = logger,
) -> CombinedRecord:
    """Combine the events of several transactions into one record.

    Members are resolved one after the other. Events are concatenated in the
    order of ``tx_ids`` and event counts summed, every other field comes from
    the first transaction. Resolved member records are left untouched.
    """
    if not tx_ids:
        raise ValueError("Transaction group is empty")

    first = await resolver(tx_ids[0])
    if first.api_data is None:
        return first

    events = list(first.api_data.events)
    event_count = first.api_data.event_count
    logger.debug("group %s: %d events, event_count %d", tx_ids[0], len(events), event_count)

    for tx_id in tx_ids[1:]:
        member = await resolver(tx_id)
        if member.api_data is None:
            raise GroupMergeError(f"Transaction {tx_id} has no data")
        events.extend(member.api_data.events)
        event_count += member.api_data.event_count
        logger.debug("group %s: %d events, event_count %d", tx_id, len(events), event_count)

    return first.model_copy(
        update={
            "api_data": first.api_data.model_copy(
                update={"events": events, "event_count": event_count}
            )
        }
    )


def _transfer_sort_key(event: EventRecord, viewer: Optional[str]) -> Tuple[int, str]:
    recipient = event.asset.recipient or ""
    if viewer and recipient == viewer:
        return (0, "")
    return (1, recipient)


def sort_transfers(events: Sequence[EventRecord], viewer: Optional[str]) -> List[EventRecord]:
    """STX transfers only, the viewer's incoming ones first, then by recipient.

    ``sorted`` is stable, transfers with equal keys keep their order.
    """
    transfers = [event for event in events if event.is_stx_transfer]
    return sorted(transfers, key=lambda event: _transfer_sort_key(event, viewer))


def memo_contract_id() -> str:
    return f"{settings.SEND_MANY_CONTRACT_ADDRESS}.{constants.SEND_MANY_MEMO_CONTRACT_NAME}"


def is_memo_enabled(record: TransactionRecord) -> bool:
    api_data = record.api_data
    if api_data is None or api_data.contract_call is None:
        return False
    return api_data.contract_call.contract_id == memo_contract_id()


def decode_memo(hex_value: str) -> str:
    value = hex_to_cv(hex_value)
    if isinstance(value, BufferCV):
        return value.text()
    if isinstance(value, (StringAsciiCV, StringUtf8CV)):
        return value.data
    return value.repr


def _memo_after(events: Sequence[EventRecord], position: int) -> Optional[str]:
    if position + 1 >= len(events):
        return None
    event = events[position]
    neighbour = events[position + 1]
    if neighbour.event_index != event.event_index + 1:
        return None
    if neighbour.event_type != constants.EVENT_TYPE_CONTRACT_LOG or neighbour.contract_log is None:
        return None
    try:
        return decode_memo(neighbour.contract_log.value.hex)
    except ValueError as e:
        logger.warning("Undecodable memo at event %d: %s", neighbour.event_index, e)
        return None


def memo_for_transfer(record: TransactionRecord, event: EventRecord) -> Optional[str]:
    events = record.api_data.events
    for position, candidate in enumerate(events):
        if candidate is event:
            return _memo_after(events, position)
    return None


def transfer_memos(record: TransactionRecord) -> List[Tuple[EventRecord, Optional[str]]]:
    """Each STX transfer with the memo logged by the event right after it."""
    events = record.api_data.events
    return [
        (event, _memo_after(events, position))
        for position, event in enumerate(events)
        if event.is_stx_transfer
    ]


def distinct_memos(record: TransactionRecord) -> List[str]:
    memos = []
    for _, memo in transfer_memos(record):
        if memo is not None and memo not in memos:
            memos.append(memo)
    return memos


def format_stx_amount(micro_stx: int) -> str:
    return format(Decimal(micro_stx) / constants.MICRO_STX_PER_STX, ",.6f")


def build_group_view(record: CombinedRecord, viewer: Optional[str] = None) -> GroupView:
    api_data = record.api_data
    show_memo = is_memo_enabled(record)
    memos = distinct_memos(record) if show_memo else []
    memo_per_recipient = show_memo and len(memos) > 1

    pairs = transfer_memos(record)
    memo_by_event = {id(event): memo for event, memo in pairs}
    transfers = []
    for event in sort_transfers([event for event, _ in pairs], viewer):
        amount = int(event.asset.amount or 0)
        transfers.append(
            TransferView(
                event_index=event.event_index,
                sender=event.asset.sender,
                recipient=event.asset.recipient or "",
                amount_micro_stx=amount,
                amount_stx=format_stx_amount(amount),
                is_viewer=bool(viewer) and event.asset.recipient == viewer,
                memo=memo_by_event[id(event)] if memo_per_recipient else None,
            )
        )

    return GroupView(
        tx_id=record.tx_id,
        tx_status=api_data.tx_status,
        burn_block_time_iso=api_data.burn_block_time_iso,
        sender_address=api_data.sender_address,
        sender_is_viewer=bool(viewer) and api_data.sender_address == viewer,
        event_count=api_data.event_count,
        transfers=transfers,
        show_memo=show_memo,
        memo_per_recipient=memo_per_recipient,
        shared_memo=memos[0] if show_memo and len(memos) == 1 else None,
    )
