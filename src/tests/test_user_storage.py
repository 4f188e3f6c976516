import hashlib

import pytest
from cryptography.fernet import Fernet

from schemas.user_session import UserSession
from services.user_storage import (
    EncryptedFileStorage,
    NotSignedInError,
    StorageError,
    derive_storage_key,
    storage_for_session,
)

APP_KEY = "6a1a754ba863d7bab14adbbc3f8ebb090af9e871ace621d3e5ab634e1422885e01"


@pytest.mark.asyncio
async def test_round_trip_is_encrypted_on_disk(tmp_path):
    storage = EncryptedFileStorage(tmp_path, Fernet.generate_key())

    await storage.put_file("txs/abc.json", '{"txId": "abc"}')

    assert await storage.get_file("txs/abc.json") == '{"txId": "abc"}'
    raw = (tmp_path / "txs" / "abc.json").read_bytes()
    assert b"txId" not in raw
    assert not (tmp_path / "txs" / "abc.json.tmp").exists()


@pytest.mark.asyncio
async def test_missing_document(tmp_path):
    storage = EncryptedFileStorage(tmp_path, Fernet.generate_key())
    with pytest.raises(FileNotFoundError):
        await storage.get_file("index.json")


@pytest.mark.asyncio
async def test_other_key_cannot_read(tmp_path):
    await EncryptedFileStorage(tmp_path, Fernet.generate_key()).put_file("index.json", "[]")
    with pytest.raises(StorageError):
        await EncryptedFileStorage(tmp_path, Fernet.generate_key()).get_file("index.json")


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["", "../escape.json", "/etc/passwd", "txs/../../x"])
async def test_paths_stay_inside_user_root(tmp_path, path):
    storage = EncryptedFileStorage(tmp_path, Fernet.generate_key())
    with pytest.raises(StorageError):
        await storage.put_file(path, "x")


@pytest.mark.asyncio
async def test_delete_file(tmp_path):
    storage = EncryptedFileStorage(tmp_path, Fernet.generate_key())
    await storage.put_file("index.json", "[]")
    await storage.delete_file("index.json")
    await storage.delete_file("index.json")
    with pytest.raises(FileNotFoundError):
        await storage.get_file("index.json")


def test_key_derivation_is_deterministic():
    assert derive_storage_key(APP_KEY) == derive_storage_key(APP_KEY)
    assert derive_storage_key(APP_KEY) != derive_storage_key(APP_KEY[:-2] + "02")
    Fernet(derive_storage_key("not hex at all"))


@pytest.mark.asyncio
async def test_storage_is_scoped_per_identity(tmp_path):
    alice = UserSession(identity="did:btc-addr:alice", app_private_key=APP_KEY)
    bob = UserSession(identity="did:btc-addr:bob", app_private_key=APP_KEY)

    alice_storage = storage_for_session(alice, str(tmp_path))
    await alice_storage.put_file("index.json", '["a"]')

    expected = tmp_path / hashlib.sha256(b"did:btc-addr:alice").hexdigest()
    assert alice_storage.root == expected
    with pytest.raises(FileNotFoundError):
        await storage_for_session(bob, str(tmp_path)).get_file("index.json")
    assert await storage_for_session(alice, str(tmp_path)).get_file("index.json") == '["a"]'


@pytest.mark.parametrize("session", [None, UserSession(), UserSession(identity="did:x")])
def test_storage_requires_signed_in_session(session, tmp_path):
    with pytest.raises(NotSignedInError):
        storage_for_session(session, str(tmp_path))
