"""Shared test fixtures for vaultmirror."""

from __future__ import annotations

import copy
import threading
from typing import Any, Optional

import pytest

from vaultmirror.errors import NotFoundError, StoreRequestError, WriteError
from vaultmirror.models import StoreEndpoint, SyncSettings


class FakeVault:
    """In-memory Vault speaking the StoreClient protocol.

    Secrets are stored by their read path (``secret/a/x`` for KV v1,
    ``secret/data/a/x`` for KV v2). Listing answers 404 for empty
    directories, as Vault does.
    """

    def __init__(
        self,
        version: str = "1.15.2",
        mount: str = "secret",
        kv2: bool = True,
        mounts: Optional[dict[str, str]] = None,
    ):
        self.version = version
        self.mount = mount
        self.kv2 = kv2
        self.mounts = mounts if mounts is not None else {
            f"{mount}/": "kv",
            "sys/": "system",
            "cubbyhole/": "cubbyhole",
        }
        self.secrets: dict[str, dict[str, Any]] = {}
        self.writes: list[str] = []
        self.fail_list: set[str] = set()
        self.fail_read: set[str] = set()
        self.fail_write: set[str] = set()
        self.extra_children: dict[str, list[str]] = {}
        self.sessions_closed = 0
        self._lock = threading.Lock()

    # -- seeding helpers ---------------------------------------------------

    def data_path(self, name: str) -> str:
        if self.kv2:
            return f"{self.mount}/data/{name}"
        return f"{self.mount}/{name}"

    def put(self, name: str, value: dict[str, Any]) -> str:
        path = self.data_path(name)
        self.secrets[path] = copy.deepcopy(value)
        return path

    def get(self, name: str) -> Optional[dict[str, Any]]:
        return self.secrets.get(self.data_path(name))

    # -- StoreClient protocol ----------------------------------------------

    def list_mounts(self) -> dict[str, str]:
        return dict(self.mounts)

    def health(self) -> str:
        return self.version

    def list(self, path: str) -> list[str]:
        if path in self.fail_list:
            raise StoreRequestError(f"list {path} failed", status_code=500, path=path)
        if path in self.extra_children:
            return list(self.extra_children[path])

        prefix = path
        if self.kv2 and path.startswith(f"{self.mount}/metadata"):
            prefix = f"{self.mount}/data" + path[len(f"{self.mount}/metadata"):]
        prefix += "/"

        children = set()
        for key in self.secrets:
            if key.startswith(prefix):
                head, sep, _ = key[len(prefix):].partition("/")
                children.add(head + "/" if sep else head)
        if not children:
            raise NotFoundError(f"{path} not found", status_code=404, path=path)
        return sorted(children)

    def read(self, path: str) -> Optional[dict[str, Any]]:
        if path in self.fail_read:
            raise StoreRequestError(f"read {path} failed", status_code=500, path=path)
        if path not in self.secrets:
            raise NotFoundError(f"{path} not found", status_code=404, path=path)
        value = copy.deepcopy(self.secrets[path])
        if self.kv2:
            return {"data": value, "metadata": {"version": 1}}
        return value

    def write(self, path: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self.writes.append(path)
            if path in self.fail_write:
                raise WriteError(f"write {path} failed", status_code=500, path=path)
            value = payload["data"] if self.kv2 else payload
            self.secrets[path] = copy.deepcopy(value)

    def close(self) -> None:
        with self._lock:
            self.sessions_closed += 1


def endpoint(address: str) -> StoreEndpoint:
    return StoreEndpoint(address=address, token="t0ken")


def factory_for(*stores: tuple[str, FakeVault]):
    """Client factory handing out the fake store registered for an address."""
    by_address = dict(stores)

    def _factory(ep: StoreEndpoint, settings: SyncSettings) -> FakeVault:
        return by_address[ep.address]

    return _factory


@pytest.fixture
def source() -> FakeVault:
    return FakeVault()


@pytest.fixture
def destination() -> FakeVault:
    return FakeVault()
