import asyncio
import logging
from typing import Optional

import requests
from pydantic import ValidationError

from core.config import settings
from schemas.transaction import ApiData
from utils.tx_utils import prefixed_tx_id

logger = logging.getLogger(__name__)

stacks_api_url = settings.STACKS_API_URL


class StacksApiError(Exception):
    pass


class TransactionNotFoundError(StacksApiError):
    pass


def create_header() -> dict[str, str]:
    return {
        "accept": "application/json",
        "cache-control": "no-cache",
    }


def get_transaction_by_id(
    tx_id: str, event_offset: int = 0, event_limit: Optional[int] = None
) -> ApiData:
    """Fetch one transaction with one page of its events."""
    api_url = f"{stacks_api_url}/extended/v1/tx/{prefixed_tx_id(tx_id)}"
    params = {
        "event_offset": event_offset,
        "event_limit": event_limit or settings.EVENTS_PAGE_SIZE,
    }
    try:
        response = requests.get(
            api_url,
            headers=create_header(),
            params=params,
            timeout=settings.REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise StacksApiError(f"Error occurred while fetching transaction {tx_id}: {e}")

    if response.status_code == 404:
        raise TransactionNotFoundError(f"Transaction {tx_id} not found")
    if response.status_code != 200:
        raise StacksApiError(f"Request failed with status {response.status_code}")

    try:
        return ApiData.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        raise StacksApiError(f"Malformed transaction response for {tx_id}: {e}")


class TransactionsApi:
    """Non-blocking facade over the HTTP calls, runs them in a worker thread."""

    async def get_transaction_by_id(
        self, tx_id: str, event_offset: int = 0, event_limit: Optional[int] = None
    ) -> ApiData:
        logger.debug(
            "Fetching tx %s event_offset=%s event_limit=%s",
            tx_id,
            event_offset,
            event_limit,
        )
        return await asyncio.to_thread(
            get_transaction_by_id, tx_id, event_offset, event_limit
        )
