"""Chunk Sequencer: ordered byte-range transmission to a resumable session."""

import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, Union

import httpx

from voxstudio.core.config import settings
from voxstudio.core.exceptions import ChunkUploadError, SessionExpiredError, UploadValidationError
from voxstudio.upload.models import ChunkState, ResumableSession, UploadState

logger = logging.getLogger(__name__)

# 202: accepted, more expected. 200/201: file assembled.
ACK_STATUSES = frozenset({200, 201, 202})
# Statuses the store returns for an upload URL that no longer exists
EXPIRED_STATUSES = frozenset({404, 410})

ProgressCallback = Callable[[int], Union[None, Awaitable[None]]]


def iter_chunk_ranges(total_size: int, chunk_size: int) -> Iterator[ChunkState]:
    """Split ``total_size`` bytes into consecutive ranges of ``chunk_size``.

    The last range may be shorter. Lengths always sum to ``total_size``.
    """
    if total_size <= 0:
        raise UploadValidationError("total_size must be a positive number of bytes")
    if chunk_size < 1:
        raise UploadValidationError("chunk_size must be at least one byte")

    offset = 0
    while offset < total_size:
        length = min(chunk_size, total_size - offset)
        yield ChunkState(offset=offset, length=length, total_size=total_size)
        offset += length


def progress_percent(offset: int, total_size: int) -> int:
    """Percentage for an acknowledged offset; 100 only once everything landed."""
    if offset >= total_size:
        return 100
    return min(99, (100 * offset) // total_size)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ChunkSequencer:
    """Transmit one file to one resumable session, strictly in order.

    A sequencer drives a single upload; once it reaches ``completed`` or
    ``failed`` it cannot be reused. Chunk N is acknowledged before chunk N+1
    is read. Any rejection aborts the upload with no retry.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        chunk_size: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.http_client = http_client
        self.chunk_size = chunk_size or settings.upload_chunk_size_bytes
        if self.chunk_size < 1:
            raise UploadValidationError("chunk_size must be at least one byte")
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.state = UploadState.IDLE
        self.offset = 0
        self.progress = 0

    def request_session(self) -> None:
        """Mark that a session is being negotiated for this sequencer's upload."""
        if self.state != UploadState.IDLE:
            raise RuntimeError(f"Cannot request a session while {self.state.value}")
        self.state = UploadState.SESSION_REQUESTED

    def fail(self) -> None:
        self.state = UploadState.FAILED

    async def transmit(
        self,
        session: ResumableSession,
        source: Any,
        total_size: int,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        """Send ``total_size`` bytes from ``source`` to ``session.upload_url``.

        Args:
            session: Open resumable session
            source: ``bytes``, a binary file object, or an object with an
                async ``read(n)``; read sequentially from its current position
            total_size: Exact number of bytes to send
            on_progress: Called with the percentage after every acknowledged
                chunk; sync or async

        Returns:
            The store's description of the assembled item (may be empty)

        Raises:
            SessionExpiredError: If the session expired before or during the upload
            ChunkUploadError: If the store rejects a chunk or the transport fails
            UploadValidationError: If the source runs out before ``total_size``
        """
        if self.state in (UploadState.COMPLETED, UploadState.FAILED):
            raise RuntimeError(f"Sequencer already {self.state.value}; open a new session to upload again")
        if self.state not in (UploadState.IDLE, UploadState.SESSION_REQUESTED):
            raise RuntimeError("Sequencer is already transmitting")

        self.state = UploadState.SESSION_OPEN
        try:
            result = await self._run(session, source, total_size, on_progress)
        except BaseException:
            self.state = UploadState.FAILED
            raise
        self.state = UploadState.COMPLETED
        return result

    async def _run(
        self,
        session: ResumableSession,
        source: Any,
        total_size: int,
        on_progress: Optional[ProgressCallback],
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if isinstance(source, (bytes, bytearray, memoryview)) and memoryview(source).nbytes < total_size:
            raise UploadValidationError(
                f"Source holds {memoryview(source).nbytes} bytes but total_size is {total_size}"
            )

        for chunk in iter_chunk_ranges(total_size, self.chunk_size):
            if session.is_expired(self.clock()):
                logger.warning(
                    "Upload session expired before chunk was sent",
                    extra={"offset": chunk.offset, "expires_at": session.expires_at},
                )
                raise SessionExpiredError("Upload session expired", detail=f"expired at {session.expires_at}")

            self.state = UploadState.TRANSMITTING
            data = await self._read(source, chunk)
            response = await self._send(session, chunk, data)

            self.offset = chunk.offset + chunk.length
            self.progress = progress_percent(self.offset, total_size)
            logger.debug(
                "Chunk acknowledged",
                extra={
                    "content_range": chunk.content_range,
                    "status_code": response.status_code,
                    "progress": self.progress,
                },
            )
            if on_progress is not None:
                await _maybe_await(on_progress(self.progress))

            if chunk.is_final:
                result = self._final_item(response)

        logger.info("Upload completed", extra={"size_bytes": total_size})
        return result

    async def _read(self, source: Any, chunk: ChunkState) -> bytes:
        if isinstance(source, (bytes, bytearray, memoryview)):
            data = bytes(source[chunk.offset:chunk.offset + chunk.length])
        else:
            parts = []
            remaining = chunk.length
            while remaining > 0:
                part = await _maybe_await(source.read(remaining))
                if not part:
                    break
                parts.append(part)
                remaining -= len(part)
            data = b"".join(parts)

        if len(data) != chunk.length:
            raise UploadValidationError(
                f"Source ended at byte {chunk.offset + len(data)} of {chunk.total_size}"
            )
        return data

    async def _send(self, session: ResumableSession, chunk: ChunkState, data: bytes) -> httpx.Response:
        headers = {
            "Content-Length": str(chunk.length),
            "Content-Range": chunk.content_range,
        }
        try:
            response = await self.http_client.put(session.upload_url, content=data, headers=headers)
        except httpx.HTTPError as e:
            logger.error(
                "Chunk transmission failed",
                extra={"content_range": chunk.content_range, "error": str(e)},
            )
            raise ChunkUploadError(f"Chunk upload failed: {e}") from e

        if response.status_code in ACK_STATUSES:
            return response

        detail = response.text
        logger.error(
            "Chunk rejected",
            extra={
                "content_range": chunk.content_range,
                "status_code": response.status_code,
                "detail": detail,
            },
        )
        if response.status_code == 410 or (
            response.status_code in EXPIRED_STATUSES and session.is_expired(self.clock())
        ):
            raise SessionExpiredError(
                f"Upload session expired ({response.status_code})",
                status_code=response.status_code,
                detail=detail,
            )
        raise ChunkUploadError(
            f"Chunk upload failed ({response.status_code}): {detail}",
            status_code=response.status_code,
            detail=detail,
        )

    @staticmethod
    def _final_item(response: httpx.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
