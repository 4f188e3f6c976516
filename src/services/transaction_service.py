"""Transaction history: paginated assembly and the per-user record cache.

A transaction record is looked up in the user's storage first. Records that
are missing, unreadable or still pending are fetched from the API page by
page until every event the API declared has been collected, and complete
non-pending records are written back.
"""
import asyncio
import json
import logging
from typing import List, Optional, Protocol

from pydantic import ValidationError

from core import constants
from core.config import settings
from schemas.transaction import ApiData, TransactionRecord
from services.user_storage import StorageError, UserStorage
from utils.tx_utils import normalize_tx_id

logger = logging.getLogger(__name__)


class TransactionAssemblyError(Exception):
    pass


class PaginationLimitError(TransactionAssemblyError):
    pass


class PaginationStalledError(TransactionAssemblyError):
    pass


class TransactionFetcher(Protocol):
    async def get_transaction_by_id(
        self, tx_id: str, event_offset: int = 0, event_limit: Optional[int] = None
    ) -> ApiData: ...


def tx_file_name(tx_id: str) -> str:
    return f"{constants.TXS_FOLDER}/{normalize_tx_id(tx_id)}.json"


def parse_tx_document(tx_id: str, content: str) -> TransactionRecord:
    """Parse a stored document, either ``{"data": record}`` or a bare record."""
    raw = json.loads(content)
    if not isinstance(raw, dict):
        raise ValueError(f"Unexpected document type {type(raw).__name__}")
    if set(raw) == {"data"} and isinstance(raw["data"], dict):
        raw = raw["data"]
    return TransactionRecord.model_validate({"txId": tx_id, **raw})


def resolve(cached: Optional[TransactionRecord]) -> Optional[TransactionRecord]:
    """Return ``cached`` when it can be served as is, ``None`` when it must be fetched."""
    if cached is None or cached.api_data is None:
        return None
    if cached.api_data.is_pending:
        return None
    return cached


async def fetch_all_events(
    tx_id: str,
    fetcher: TransactionFetcher,
    page_size: Optional[int] = None,
    max_rounds: Optional[int] = None,
) -> ApiData:
    page_size = page_size or settings.EVENTS_PAGE_SIZE
    max_rounds = max_rounds or settings.MAX_PAGINATION_ROUNDS

    events = []
    api_data: Optional[ApiData] = None
    rounds = 0
    # event_count is re-read from every page, the server value wins
    while api_data is None or len(events) < api_data.event_count:
        if rounds >= max_rounds:
            raise PaginationLimitError(
                f"Gave up on {tx_id} after {rounds} rounds "
                f"({len(events)}/{api_data.event_count} events)"
            )
        page = await fetcher.get_transaction_by_id(
            tx_id, event_offset=len(events), event_limit=page_size
        )
        rounds += 1
        logger.debug(
            "tx %s round %d: offset=%d page=%d event_count=%d",
            tx_id,
            rounds,
            len(events),
            len(page.events),
            page.event_count,
        )
        if not page.events and len(events) < page.event_count:
            raise PaginationStalledError(
                f"Empty page for {tx_id} at offset {len(events)} "
                f"of {page.event_count} events"
            )
        events.extend(page.events)
        api_data = page

    return api_data.model_copy(update={"events": events})


class TransactionCache:
    def __init__(
        self,
        storage: UserStorage,
        fetcher: TransactionFetcher,
        logger: logging.Logger = logger,
    ):
        self.storage = storage
        self.fetcher = fetcher
        self.logger = logger

    async def read_cached(self, tx_id: str) -> Optional[TransactionRecord]:
        try:
            content = await self.storage.get_file(tx_file_name(tx_id))
        except FileNotFoundError:
            self.logger.debug("No cached document for %s", tx_id)
            return None
        except (OSError, StorageError) as e:
            self.logger.warning("Unreadable cached document for %s: %s", tx_id, e)
            return None

        try:
            return parse_tx_document(tx_id, content)
        except (ValueError, ValidationError) as e:
            self.logger.warning("Corrupt cached document for %s: %s", tx_id, e)
            return None

    async def assemble(self, tx_id: str) -> TransactionRecord:
        cached = await self.read_cached(tx_id)
        record = resolve(cached)
        if record is not None:
            return record
        return await self.create_tx_with_api_data(tx_id, cached)

    async def create_tx_with_api_data(
        self, tx_id: str, prior: Optional[TransactionRecord] = None
    ) -> TransactionRecord:
        api_data = await fetch_all_events(tx_id, self.fetcher)
        if prior is not None:
            record = prior.model_copy(update={"api_data": api_data})
        else:
            record = TransactionRecord(tx_id=tx_id, api_data=api_data)

        if not api_data.is_pending:
            try:
                await self.storage.put_file(
                    tx_file_name(tx_id), json.dumps(record.to_document())
                )
            except (OSError, StorageError) as e:
                self.logger.warning("Failed to cache %s: %s", tx_id, e)
        return record

    async def read_index(self) -> List[str]:
        try:
            content = await self.storage.get_file(settings.INDEX_FILE_NAME)
            index = json.loads(content)
        except FileNotFoundError:
            return []
        except (OSError, StorageError, ValueError) as e:
            self.logger.warning("Unreadable index, starting empty: %s", e)
            return []

        if not isinstance(index, list):
            self.logger.warning("Index is not a list, starting empty")
            return []

        tx_ids = []
        for entry in index:
            try:
                tx_ids.append(normalize_tx_id(str(entry)))
            except ValueError:
                self.logger.warning("Skipping invalid index entry %r", entry)
        return tx_ids

    async def save(self, record: TransactionRecord) -> None:
        # read-modify-write, concurrent saves can drop index entries
        tx_id = normalize_tx_id(record.tx_id)
        if record.api_data is not None and record.api_data.is_pending:
            record = record.model_copy(update={"api_data": None})
        index = await self.read_index()
        index.append(tx_id)
        await self.storage.put_file(settings.INDEX_FILE_NAME, json.dumps(index))
        await self.storage.put_file(
            tx_file_name(tx_id), json.dumps({"data": record.to_document()})
        )
        self.logger.info("Saved tx %s, index has %d entries", tx_id, len(index))

    async def get_all(self) -> List[TransactionRecord]:
        index = await self.read_index()
        return list(await asyncio.gather(*(self.assemble(tx_id) for tx_id in index)))

    async def get(self, tx_id: str) -> TransactionRecord:
        return await self.assemble(tx_id)


async def save_tx_data(record: TransactionRecord, storage: UserStorage) -> None:
    await TransactionCache(storage, fetcher=None).save(record)


async def get_txs(storage: UserStorage, fetcher: TransactionFetcher) -> List[TransactionRecord]:
    return await TransactionCache(storage, fetcher).get_all()


async def get_tx(tx_id: str, storage: UserStorage, fetcher: TransactionFetcher) -> TransactionRecord:
    return await TransactionCache(storage, fetcher).get(tx_id)
