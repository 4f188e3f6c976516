import json

import pytest

from core.config import settings
from utils.tx_utils import normalize_tx_id, prefixed_tx_id, result_to_status, tx_url

TX_ID = "ab" * 32


def test_normalize_strips_prefix_and_case():
    assert normalize_tx_id(f"0x{TX_ID.upper()}") == TX_ID
    assert normalize_tx_id(TX_ID) == TX_ID
    assert prefixed_tx_id(TX_ID) == f"0x{TX_ID}"


@pytest.mark.parametrize("bad", ["", "0x", "abc", "g" * 64, TX_ID + "00"])
def test_normalize_rejects_invalid_ids(bad):
    with pytest.raises(ValueError):
        normalize_tx_id(bad)


def test_tx_url_points_to_explorer(monkeypatch):
    monkeypatch.setattr(settings, "MOCKNET", False)
    monkeypatch.setattr(settings, "EXPLORER_URL", "https://explorer.stacks.co")
    monkeypatch.setattr(settings, "STACKS_NETWORK", "testnet")
    assert tx_url(TX_ID) == f"https://explorer.stacks.co/txid/0x{TX_ID}?chain=testnet"


def test_tx_url_on_mocknet(monkeypatch):
    monkeypatch.setattr(settings, "MOCKNET", True)
    monkeypatch.setattr(settings, "STACKS_API_URL", "http://localhost:3999")
    assert tx_url(f"0x{TX_ID}") == f"http://localhost:3999/extended/v1/tx/0x{TX_ID}"


def test_result_to_status(monkeypatch):
    monkeypatch.setattr(settings, "MOCKNET", True)
    monkeypatch.setattr(settings, "STACKS_API_URL", "http://localhost:3999")
    assert result_to_status(f'"{TX_ID}"') == (
        f"Check transaction status: http://localhost:3999/extended/v1/tx/0x{TX_ID}"
    )
    error = {"error": "transaction rejected", "reason": "NotEnoughFunds"}
    assert json.loads(result_to_status(error)) == error
    assert result_to_status(42) == "42"
    assert result_to_status('"not-a-tx"') == '"not-a-tx"'
