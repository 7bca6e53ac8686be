"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Dict, Optional

import pytest

from voxstudio.core.exceptions import ConflictError, NotFoundError, StoreError
from voxstudio.storage.base import DocumentStore, DriveItem
from voxstudio.storage.local import LocalDocumentStore, LocalUploadSessionRegistry
from voxstudio.upload.models import ConflictPolicy, FolderHandle, ResumableSession


class FakeDocumentStore(DocumentStore):
    """In-memory document store that records every call.

    ``race_on`` holds folder names whose first create loses to a concurrent
    creator; ``fail_create`` maps folder names to a status the create fails with.
    """

    def __init__(self):
        self.items: Dict[str, DriveItem] = {}
        self.contents: Dict[str, bytes] = {}
        self.calls: list[tuple] = []
        self.race_on: set[str] = set()
        self.fail_create: Dict[str, int] = {}
        self.session_error: Optional[StoreError] = None

    @staticmethod
    def _path(parent: Optional[FolderHandle], name: str) -> str:
        return f"{parent.path}/{name}" if parent else name

    def add_folder(self, path: str) -> DriveItem:
        item = DriveItem(id=f"id-{path}", name=path.rsplit("/", 1)[-1], is_folder=True, path=path)
        self.items[path] = item
        return item

    def add_file(self, path: str, data: bytes = b"") -> DriveItem:
        item = DriveItem(id=f"id-{path}", name=path.rsplit("/", 1)[-1], is_folder=False, path=path, size=len(data))
        self.items[path] = item
        self.contents[path] = data
        return item

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def get_item(self, path: str) -> DriveItem:
        self.calls.append(("get_item", path))
        if path not in self.items:
            raise NotFoundError(f"Not found: {path}", status_code=404)
        return self.items[path]

    async def get_child(self, parent: Optional[FolderHandle], name: str) -> DriveItem:
        path = self._path(parent, name)
        self.calls.append(("get_child", path))
        found = self.items.get(path)
        # Yield so concurrent resolvers can interleave between lookup and create
        await asyncio.sleep(0)
        if found is None:
            raise NotFoundError(f"Not found: {path}", status_code=404)
        return found

    async def create_folder(
        self,
        parent: Optional[FolderHandle],
        name: str,
        conflict_policy: ConflictPolicy = ConflictPolicy.FAIL,
    ) -> DriveItem:
        path = self._path(parent, name)
        self.calls.append(("create_folder", path, conflict_policy))
        if name in self.race_on:
            self.race_on.discard(name)
            self.add_folder(path)
            raise ConflictError(f"Name already exists: {name}", status_code=409)
        if name in self.fail_create:
            raise StoreError("Create rejected", status_code=self.fail_create[name])
        if path in self.items and conflict_policy == ConflictPolicy.FAIL:
            raise ConflictError(f"Name already exists: {name}", status_code=409)
        return self.add_folder(path)

    async def create_upload_session(
        self,
        parent: FolderHandle,
        file_name: str,
        conflict_policy: ConflictPolicy,
        file_size: Optional[int] = None,
    ) -> ResumableSession:
        self.calls.append(("create_upload_session", self._path(parent, file_name), conflict_policy, file_size))
        if self.session_error is not None:
            raise self.session_error
        return ResumableSession(upload_url=f"https://upload.test/sessions/{len(self.calls)}")

    async def list_children(self, path: str) -> list[DriveItem]:
        self.calls.append(("list_children", path))
        prefix = f"{path}/" if path else ""
        if path and path not in self.items:
            raise NotFoundError(f"Not found: {path}", status_code=404)
        return [
            item for key, item in self.items.items()
            if key.startswith(prefix) and "/" not in key[len(prefix):]
        ]

    async def read_file(self, path: str) -> bytes:
        self.calls.append(("read_file", path))
        if path not in self.contents:
            raise NotFoundError(f"Not found: {path}", status_code=404)
        return self.contents[path]

    async def write_file(self, path: str, data: bytes) -> DriveItem:
        self.calls.append(("write_file", path))
        return self.add_file(path, data)

    async def delete_item(self, item_id: str) -> None:
        self.calls.append(("delete_item", item_id))
        path = item_id.removeprefix("id-")
        if path not in self.items:
            raise NotFoundError(f"Not found: {item_id}", status_code=404)
        del self.items[path]
        self.contents.pop(path, None)

    def get_backend_name(self) -> str:
        return "fake"


@pytest.fixture
def fake_store():
    """In-memory document store."""
    return FakeDocumentStore()


@pytest.fixture
def local_store(tmp_path):
    """Local document store rooted in a temporary directory."""
    return LocalDocumentStore(base_path=tmp_path / "library", registry=LocalUploadSessionRegistry())


@pytest.fixture
def app_store(tmp_path, monkeypatch):
    """Route the application to a temporary local store.

    Uses the shared session registry so the chunk endpoint sees the sessions.
    """
    from voxstudio.core.config import settings

    store = LocalDocumentStore(base_path=tmp_path / "library")
    monkeypatch.setattr(settings, "STORE_BACKEND", "local")
    monkeypatch.setattr("voxstudio.storage.factory.local_store", store)
    return store
