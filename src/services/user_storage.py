"""Per-user encrypted document storage.

Documents are addressed by relative paths (``index.json``,
``txs/<tx_id>.json``) and live under a directory derived from the user's
identity. Contents are encrypted with a key derived from the app private key
of the session, so the files are unreadable without that session.
"""
import asyncio
import base64
import hashlib
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from core.config import settings
from schemas.user_session import UserSession

logger = logging.getLogger(__name__)

STORAGE_KEY_INFO = b"stacks-tx-history/storage/v1"


class StorageError(Exception):
    pass


class NotSignedInError(StorageError):
    pass


class UserStorage(ABC):
    @abstractmethod
    async def get_file(self, path: str) -> str:
        """Return the document content, ``FileNotFoundError`` if missing."""

    @abstractmethod
    async def put_file(self, path: str, content: str) -> None:
        pass

    @abstractmethod
    async def delete_file(self, path: str) -> None:
        pass


def derive_storage_key(app_private_key: str) -> bytes:
    try:
        secret = bytes.fromhex(app_private_key)
    except ValueError:
        secret = app_private_key.encode("utf-8")
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=STORAGE_KEY_INFO)
    return base64.urlsafe_b64encode(hkdf.derive(secret))


class EncryptedFileStorage(UserStorage):
    def __init__(self, root: Path, key: bytes):
        self.root = Path(root)
        self.fernet = Fernet(key)

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if not path or relative.is_absolute() or ".." in relative.parts:
            raise StorageError(f"Invalid storage path: {path!r}")
        return self.root.joinpath(*relative.parts)

    def _read(self, path: str) -> str:
        target = self._resolve(path)
        token = target.read_bytes()
        try:
            return self.fernet.decrypt(token).decode("utf-8")
        except InvalidToken:
            raise StorageError(f"Unable to decrypt {path}")

    def _write(self, path: str, content: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_bytes(self.fernet.encrypt(content.encode("utf-8")))
        os.replace(tmp, target)

    def _delete(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)

    async def get_file(self, path: str) -> str:
        return await asyncio.to_thread(self._read, path)

    async def put_file(self, path: str, content: str) -> None:
        await asyncio.to_thread(self._write, path, content)

    async def delete_file(self, path: str) -> None:
        await asyncio.to_thread(self._delete, path)


def storage_for_session(
    session: Optional[UserSession], root: Optional[str] = None
) -> EncryptedFileStorage:
    if session is None or not session.is_user_signed_in():
        raise NotSignedInError("No signed in user session")

    base = Path(os.path.expanduser(root or settings.STORAGE_ROOT))
    user_dir = hashlib.sha256(session.identity.encode("utf-8")).hexdigest()
    logger.debug("Opening storage for %s at %s", session.identity, base / user_dir)
    return EncryptedFileStorage(
        base / user_dir, derive_storage_key(session.app_private_key)
    )
