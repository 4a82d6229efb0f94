from __future__ import annotations

import asyncio
import json
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Protocol

import keyring
from keyring.errors import PasswordDeleteError

from .config import Settings


class KeyValueStore(Protocol):
    """Async persistent key-value store for string secrets."""

    async def read(self, key: str) -> str | None: ...

    async def write(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_all(self) -> None: ...


class MemoryStore:
    """Process-local store; nothing survives the interpreter."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(data or {})

    async def read(self, key: str) -> str | None:
        return self.data.get(key)

    async def write(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def delete_all(self) -> None:
        self.data.clear()


class FileStore:
    """Persists secrets to a JSON file readable only by the current user."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text() or "{}")
        return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def _dump(self, data: dict[str, str]) -> None:
        if not data:
            with suppress(FileNotFoundError):
                self.path.unlink()
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # mkstemp creates the file with mode 0600; os.replace swaps it in atomically
        fd, tmp = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            with suppress(FileNotFoundError):
                os.unlink(tmp)
            raise

    def _update(self, key: str, value: str | None) -> None:
        data = self._load()
        if value is None:
            if key not in data:
                return
            data.pop(key)
        else:
            data[key] = value
        self._dump(data)

    async def read(self, key: str) -> str | None:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
        return data.get(key)

    async def write(self, key: str, value: str) -> None:
        # read-modify-write of the whole file
        async with self._lock:
            await asyncio.to_thread(self._update, key, value)

    async def delete(self, key: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._update, key, None)

    async def delete_all(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._dump, {})


class KeyringStore:
    """Stores secrets in the OS keychain via keyring."""

    def __init__(self, service: str, keys: tuple[str, ...] = ()) -> None:
        self.service = service
        self._keys = set(keys)

    async def read(self, key: str) -> str | None:
        return await asyncio.to_thread(keyring.get_password, self.service, key)

    async def write(self, key: str, value: str) -> None:
        self._keys.add(key)
        await asyncio.to_thread(keyring.set_password, self.service, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    def _delete_sync(self, key: str) -> None:
        with suppress(PasswordDeleteError):
            keyring.delete_password(self.service, key)

    async def delete_all(self) -> None:
        # keyring has no enumeration API; drop every key we know about
        for key in sorted(self._keys):
            await self.delete(key)


class SecureStorage:
    """Token-level access to a KeyValueStore (access + refresh token)."""

    def __init__(
        self,
        store: KeyValueStore,
        access_token_key: str = "access_token",
        refresh_token_key: str = "refresh_token",
    ) -> None:
        self.store = store
        self.access_token_key = access_token_key
        self.refresh_token_key = refresh_token_key

    async def save_access_token(self, token: str) -> None:
        await self.store.write(self.access_token_key, token)

    async def save_refresh_token(self, token: str) -> None:
        await self.store.write(self.refresh_token_key, token)

    async def save_tokens(self, access_token: str, refresh_token: str) -> None:
        await asyncio.gather(
            self.save_access_token(access_token),
            self.save_refresh_token(refresh_token),
        )

    async def get_access_token(self) -> str | None:
        return await self.store.read(self.access_token_key)

    async def get_refresh_token(self) -> str | None:
        return await self.store.read(self.refresh_token_key)

    async def get_tokens(self) -> tuple[str | None, str | None]:
        access, refresh = await asyncio.gather(self.get_access_token(), self.get_refresh_token())
        return access, refresh

    async def has_access_token(self) -> bool:
        return bool(await self.get_access_token())

    async def has_refresh_token(self) -> bool:
        return bool(await self.get_refresh_token())

    async def delete_access_token(self) -> None:
        await self.store.delete(self.access_token_key)

    async def delete_refresh_token(self) -> None:
        await self.store.delete(self.refresh_token_key)

    async def delete_all_tokens(self) -> None:
        await asyncio.gather(self.delete_access_token(), self.delete_refresh_token())

    async def clear_all(self) -> None:
        """Wipe the whole backing store, not just the two token entries."""
        await self.store.delete_all()


def open_store(settings: Settings) -> SecureStorage:
    """Build the token storage selected by settings.token_backend."""
    store: KeyValueStore
    if settings.token_backend == "keyring":
        store = KeyringStore(
            settings.keyring_service,
            keys=(settings.access_token_key, settings.refresh_token_key),
        )
    else:
        store = FileStore(settings.token_file)
    return SecureStorage(
        store,
        access_token_key=settings.access_token_key,
        refresh_token_key=settings.refresh_token_key,
    )
