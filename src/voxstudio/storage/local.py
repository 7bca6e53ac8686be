"""Local filesystem document store for development."""

import logging
import mimetypes
import os
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx

from voxstudio.core.config import settings
from voxstudio.core.exceptions import (
    ConflictError,
    NotFoundError,
    SessionExpiredError,
    StoreError,
)
from voxstudio.storage.base import DocumentStore, DriveItem
from voxstudio.upload.models import (
    ConflictPolicy,
    FolderHandle,
    ResumableSession,
    validate_segment,
)

logger = logging.getLogger(__name__)

_CONTENT_RANGE = re.compile(r"^bytes (\d+)-(\d+)/(\d+)$")


@dataclass
class LocalUploadSession:
    """Server side of a local resumable upload."""

    session_id: str
    target: Path
    item_path: str
    total_size: int
    expires_at: datetime
    received: int = 0

    @property
    def complete(self) -> bool:
        return self.received >= self.total_size

    @property
    def part_path(self) -> Path:
        return self.target.with_name(f".{self.target.name}.{self.session_id}.part")


class LocalUploadSessionRegistry:
    """In-process registry of open local upload sessions.

    Implements the same byte-range protocol as the Graph upload URL: chunks
    must arrive in order, 202 while more bytes are expected, 201 with the
    item once the last byte lands.
    """

    def __init__(self):
        self._sessions: Dict[str, LocalUploadSession] = {}

    def open(self, target: Path, item_path: str, total_size: int, ttl: timedelta) -> LocalUploadSession:
        self.sweep_expired()
        session = LocalUploadSession(
            session_id=uuid4().hex,
            target=target,
            item_path=item_path,
            total_size=total_size,
            expires_at=datetime.now(timezone.utc) + ttl,
        )
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional[LocalUploadSession]:
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.part_path.unlink(missing_ok=True)

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Discard every session past its expiry along with its partial file."""
        now = now or datetime.now(timezone.utc)
        expired = [sid for sid, session in self._sessions.items() if now >= session.expires_at]
        for session_id in expired:
            self.discard(session_id)
        if expired:
            logger.info("Expired local upload sessions discarded", extra={"count": len(expired)})
        return len(expired)

    def receive(self, session_id: str, content_range: Optional[str], body: bytes) -> LocalUploadSession:
        """Append one chunk to a session.

        Returns:
            The session; ``complete`` is set once the last byte landed and the
            file was moved into place

        Raises:
            NotFoundError: Unknown session
            SessionExpiredError: Session past its expiry (session is discarded)
            StoreError: Malformed or out-of-order byte range (status 400/416)
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("Upload session not found", status_code=404)

        if datetime.now(timezone.utc) >= session.expires_at:
            self.discard(session_id)
            raise SessionExpiredError("Upload session expired", status_code=410)

        match = _CONTENT_RANGE.match((content_range or "").strip())
        if not match:
            raise StoreError("Invalid Content-Range header", status_code=400, detail=content_range)

        start, end, total = (int(group) for group in match.groups())
        if total != session.total_size:
            raise StoreError(
                "Content-Range total does not match the session size",
                status_code=400,
                detail=content_range,
            )
        if start != session.received or end < start or end >= total or len(body) != end - start + 1:
            raise StoreError(
                "Unexpected byte range",
                status_code=416,
                detail=f"expected {session.received}-, got {start}-{end}",
            )

        with open(session.part_path, "ab") as f:
            f.write(body)
        session.received = end + 1

        if not session.complete:
            return session

        os.replace(session.part_path, session.target)
        del self._sessions[session_id]
        logger.info(
            "Local upload session completed",
            extra={"session_id": session_id, "item_path": session.item_path, "size_bytes": session.total_size},
        )
        return session


def handle_chunk(
    registry: LocalUploadSessionRegistry,
    session_id: str,
    content_range: Optional[str],
    body: bytes,
) -> tuple[int, Dict[str, Any]]:
    """Apply a chunk PUT and build the Graph-style status and JSON body."""
    try:
        session = registry.receive(session_id, content_range, body)
    except NotFoundError as e:
        return 404, {"error": {"code": "itemNotFound", "message": str(e)}}
    except SessionExpiredError as e:
        return 410, {"error": {"code": "uploadSessionExpired", "message": str(e)}}
    except StoreError as e:
        return e.status_code or 400, {"error": {"code": "invalidRange", "message": f"{e}: {e.detail}"}}

    if not session.complete:
        return 202, {
            "expirationDateTime": session.expires_at.isoformat(),
            "nextExpectedRanges": [f"{session.received}-"],
        }

    return 201, {
        "id": session.item_path,
        "name": session.target.name,
        "size": session.total_size,
    }


class LocalUploadTransport(httpx.AsyncBaseTransport):
    """Serve local upload URLs in-process, without an HTTP round trip."""

    def __init__(self, registry: LocalUploadSessionRegistry):
        self.registry = registry

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.method != "PUT":
            return httpx.Response(405, json={"error": {"code": "methodNotAllowed", "message": request.method}})
        session_id = request.url.path.rstrip("/").rsplit("/", 1)[-1]
        body = await request.aread()
        status, payload = handle_chunk(self.registry, session_id, request.headers.get("Content-Range"), body)
        return httpx.Response(status, json=payload)


class LocalDocumentStore(DocumentStore):
    """Document store rooted at a local directory. Item ids are root-relative paths."""

    def __init__(self, base_path: Optional[Path] = None, registry: Optional[LocalUploadSessionRegistry] = None):
        self.base_path = Path(base_path or settings.LOCAL_STORE_PATH)
        self.registry = registry or upload_session_registry

    def _resolve(self, rel_path: str) -> Path:
        """Map a root-relative path to the filesystem, rejecting traversal."""
        segments = [segment for segment in rel_path.strip("/").split("/") if segment]
        for segment in segments:
            validate_segment(segment)
        return self.base_path.joinpath(*segments)

    def _to_item(self, path: Path) -> DriveItem:
        rel = path.relative_to(self.base_path).as_posix()
        stat = path.stat()
        return DriveItem(
            id=rel,
            name=path.name,
            is_folder=path.is_dir(),
            path=rel,
            size=0 if path.is_dir() else stat.st_size,
            web_url=None if path.is_dir() else f"{settings.PUBLIC_BASE_URL}/api/v1/files/{rel}",
            mime_type=None if path.is_dir() else mimetypes.guess_type(path.name)[0],
            created_at=datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc),
        )

    def _folder_path(self, parent: Optional[FolderHandle]) -> Path:
        if parent is None:
            self.base_path.mkdir(parents=True, exist_ok=True)
            return self.base_path
        folder = self._resolve(parent.item_id)
        if not folder.is_dir():
            raise NotFoundError(f"Folder not found: {parent.item_id}", status_code=404)
        return folder

    @staticmethod
    def _unique_name(folder: Path, name: str) -> str:
        """Pick ``name 1.ext``, ``name 2.ext``, ... until free."""
        stem, suffix = os.path.splitext(name)
        counter = 1
        while (folder / f"{stem} {counter}{suffix}").exists():
            counter += 1
        return f"{stem} {counter}{suffix}"

    async def get_item(self, path: str) -> DriveItem:
        target = self._resolve(path)
        if not path.strip("/") or not target.exists():
            raise NotFoundError(f"Not found: {path}", status_code=404)
        return self._to_item(target)

    async def get_child(self, parent: Optional[FolderHandle], name: str) -> DriveItem:
        target = self._folder_path(parent) / validate_segment(name)
        if not target.exists():
            raise NotFoundError(f"Not found: {name}", status_code=404)
        return self._to_item(target)

    async def create_folder(
        self,
        parent: Optional[FolderHandle],
        name: str,
        conflict_policy: ConflictPolicy = ConflictPolicy.FAIL,
    ) -> DriveItem:
        folder = self._folder_path(parent)
        target = folder / validate_segment(name)
        policy = ConflictPolicy(conflict_policy)

        if target.exists():
            if policy == ConflictPolicy.FAIL:
                raise ConflictError(f"Name already exists: {name}", status_code=409, detail="nameAlreadyExists")
            if policy == ConflictPolicy.RENAME:
                target = folder / self._unique_name(folder, name)
            elif target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink()

        try:
            target.mkdir(parents=False, exist_ok=False)
        except FileExistsError as e:
            # Lost a race against another creator
            raise ConflictError(f"Name already exists: {name}", status_code=409, detail="nameAlreadyExists") from e

        return self._to_item(target)

    async def create_upload_session(
        self,
        parent: FolderHandle,
        file_name: str,
        conflict_policy: ConflictPolicy,
        file_size: Optional[int] = None,
    ) -> ResumableSession:
        if not file_size or file_size <= 0:
            raise StoreError("Local upload sessions require the file size", status_code=400)

        folder = self._folder_path(parent)
        target = folder / validate_segment(file_name)
        policy = ConflictPolicy(conflict_policy)

        if target.exists():
            if policy == ConflictPolicy.FAIL:
                raise ConflictError(f"Name already exists: {file_name}", status_code=409, detail="nameAlreadyExists")
            if policy == ConflictPolicy.RENAME:
                target = folder / self._unique_name(folder, file_name)
            elif target.is_dir():
                raise ConflictError(f"A folder named {file_name} exists", status_code=409)

        session = self.registry.open(
            target=target,
            item_path=target.relative_to(self.base_path).as_posix(),
            total_size=file_size,
            ttl=timedelta(minutes=settings.LOCAL_SESSION_TTL_MINUTES),
        )
        return ResumableSession(
            upload_url=f"{settings.PUBLIC_BASE_URL}/api/v1/upload/sessions/{session.session_id}",
            expires_at=session.expires_at,
        )

    async def list_children(self, path: str) -> list[DriveItem]:
        folder = self._resolve(path)
        if not folder.is_dir():
            raise NotFoundError(f"Folder not found: {path}", status_code=404)
        return [
            self._to_item(child)
            for child in sorted(folder.iterdir())
            if not child.name.startswith(".")
        ]

    async def read_file(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError(f"File not found: {path}", status_code=404)
        return target.read_bytes()

    async def write_file(self, path: str, data: bytes) -> DriveItem:
        target = self._resolve(path)
        if not target.parent.is_dir():
            raise NotFoundError(f"Folder not found: {target.parent}", status_code=404)
        target.write_bytes(data)
        return self._to_item(target)

    async def delete_item(self, item_id: str) -> None:
        target = self._resolve(item_id)
        if not item_id.strip("/") or not target.exists():
            raise NotFoundError(f"Item not found: {item_id}", status_code=404)
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()
        logger.info("Item deleted", extra={"item_id": item_id})

    def upload_transport(self) -> httpx.AsyncBaseTransport:
        return LocalUploadTransport(self.registry)

    async def cancel_upload_session(self, session: ResumableSession) -> None:
        session_id = session.upload_url.rstrip("/").rsplit("/", 1)[-1]
        self.registry.discard(session_id)
        logger.info("Local upload session cancelled", extra={"session_id": session_id})

    def get_backend_name(self) -> str:
        return "local"


# Singleton instances
upload_session_registry = LocalUploadSessionRegistry()
local_store = LocalDocumentStore()
