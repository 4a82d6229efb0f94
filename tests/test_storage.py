import asyncio
import json
import stat
from pathlib import Path
from unittest.mock import patch

import pytest
from keyring.errors import PasswordDeleteError

from tokenkeeper.config import Settings
from tokenkeeper.storage import FileStore, KeyringStore, MemoryStore, SecureStorage, open_store


@pytest.mark.asyncio()
async def test_file_store_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "tokens.json"
    store = FileStore(path)

    await store.write("access_token", "a")
    await store.write("refresh_token", "r")

    assert await store.read("access_token") == "a"
    assert json.loads(path.read_text()) == {"access_token": "a", "refresh_token": "r"}
    assert stat.S_IMODE(path.stat().st_mode) == 0o600

    # a new instance sees the persisted values
    assert await FileStore(path).read("refresh_token") == "r"


@pytest.mark.asyncio()
async def test_file_store_delete(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    store = FileStore(path)
    await store.write("access_token", "a")
    await store.write("other", "x")

    await store.delete("access_token")
    await store.delete("missing")
    assert await store.read("access_token") is None
    assert await store.read("other") == "x"

    await store.delete_all()
    assert not path.exists()
    assert await store.read("other") is None


@pytest.mark.asyncio()
async def test_file_store_missing_file_reads_none(tmp_path: Path) -> None:
    store = FileStore(tmp_path / "absent.json")
    assert await store.read("access_token") is None
    await store.delete("access_token")
    assert not (tmp_path / "absent.json").exists()


@pytest.mark.asyncio()
async def test_secure_storage_token_helpers() -> None:
    store = MemoryStore({"unrelated": "keep"})
    storage = SecureStorage(store, access_token_key="at", refresh_token_key="rt")

    assert await storage.has_access_token() is False
    await storage.save_tokens("a", "r")
    assert store.data == {"unrelated": "keep", "at": "a", "rt": "r"}
    assert await storage.get_tokens() == ("a", "r")
    assert await storage.has_refresh_token() is True

    await storage.save_access_token("")
    assert await storage.has_access_token() is False

    await storage.delete_all_tokens()
    assert store.data == {"unrelated": "keep"}

    await storage.clear_all()
    assert store.data == {}


@pytest.mark.asyncio()
async def test_keyring_store_uses_service_name() -> None:
    with patch("tokenkeeper.storage.keyring") as mock_keyring:
        mock_keyring.get_password.return_value = "secret"
        store = KeyringStore("svc", keys=("access_token",))

        assert await store.read("access_token") == "secret"
        await store.write("refresh_token", "r")
        await store.delete_all()

    mock_keyring.get_password.assert_called_once_with("svc", "access_token")
    mock_keyring.set_password.assert_called_once_with("svc", "refresh_token", "r")
    deleted = sorted(c.args for c in mock_keyring.delete_password.call_args_list)
    assert deleted == [("svc", "access_token"), ("svc", "refresh_token")]


@pytest.mark.asyncio()
async def test_keyring_store_ignores_missing_entries() -> None:
    with patch("tokenkeeper.storage.keyring") as mock_keyring:
        mock_keyring.delete_password.side_effect = PasswordDeleteError("not found")
        await KeyringStore("svc").delete("access_token")

    mock_keyring.delete_password.assert_called_once_with("svc", "access_token")


def test_open_store_selects_backend(tmp_path: Path) -> None:
    file_storage = open_store(Settings(token_file=tmp_path / "t.json"))
    assert isinstance(file_storage.store, FileStore)
    assert file_storage.store.path == tmp_path / "t.json"

    keyring_storage = open_store(
        Settings(token_backend="keyring", keyring_service="svc", access_token_key="at")
    )
    assert isinstance(keyring_storage.store, KeyringStore)
    assert keyring_storage.store.service == "svc"
    assert keyring_storage.access_token_key == "at"


@pytest.mark.asyncio()
async def test_file_store_reads_never_see_partial_writes(tmp_path: Path) -> None:
    path = tmp_path / "tokens.json"
    storage = SecureStorage(FileStore(path))
    await storage.save_tokens("a0", "r0")

    async def _writer() -> None:
        for i in range(100):
            await storage.save_tokens(f"a{i}" * 50, f"r{i}" * 50)

    async def _reader() -> list[tuple[str | None, str | None]]:
        return [await storage.get_tokens() for _ in range(200)]

    _, seen = await asyncio.gather(_writer(), _reader())

    assert all(access and refresh for access, refresh in seen)
    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert [p.name for p in tmp_path.iterdir()] == ["tokens.json"]
