"""Tests for ordered chunk transmission."""

import io
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from voxstudio.core.exceptions import ChunkUploadError, SessionExpiredError, UploadValidationError
from voxstudio.upload.chunks import ChunkSequencer, iter_chunk_ranges, progress_percent
from voxstudio.upload.models import ResumableSession, UploadState

UPLOAD_URL = "https://upload.test/session/abc"
T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def recording_transport(requests, total_size, fail_at=None, fail_status=500):
    """MockTransport acknowledging chunks like the Graph upload URL does."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if fail_at is not None and len(requests) == fail_at:
            return httpx.Response(fail_status, json={"error": {"code": "generalException", "message": "boom"}})
        end = int(request.headers["Content-Range"].split("/")[0].split("-")[1])
        if end + 1 == total_size:
            return httpx.Response(201, json={"id": "item-1", "name": "clip.mp4", "size": total_size})
        return httpx.Response(202, json={"nextExpectedRanges": [f"{end + 1}-"]})

    return httpx.MockTransport(handler)


class TestChunkRanges:
    """Tests for chunk boundary computation."""

    def test_twelve_mib_in_five_mib_chunks(self):
        mib = 1024 * 1024
        ranges = list(iter_chunk_ranges(12 * mib, 5 * mib))

        assert [(c.offset, c.end) for c in ranges] == [
            (0, 5242879),
            (5242880, 10485759),
            (10485760, 12582911),
        ]
        assert [c.content_range for c in ranges] == [
            "bytes 0-5242879/12582912",
            "bytes 5242880-10485759/12582912",
            "bytes 10485760-12582911/12582912",
        ]
        assert sum(c.length for c in ranges) == 12 * mib
        assert [c.is_final for c in ranges] == [False, False, True]

    def test_exact_multiple_has_no_empty_tail(self):
        ranges = list(iter_chunk_ranges(20, 10))
        assert [c.length for c in ranges] == [10, 10]

    def test_file_smaller_than_chunk(self):
        ranges = list(iter_chunk_ranges(3, 10))
        assert len(ranges) == 1
        assert ranges[0].content_range == "bytes 0-2/3"

    def test_rejects_empty_file(self):
        with pytest.raises(UploadValidationError):
            list(iter_chunk_ranges(0, 10))

    def test_progress_percent(self):
        assert progress_percent(0, 10) == 0
        assert progress_percent(5, 10) == 50
        assert progress_percent(999, 1000) == 99
        assert progress_percent(10, 10) == 100


class TestChunkSequencer:
    """Tests for the chunk sequencer."""

    @pytest.mark.asyncio
    async def test_sends_ordered_ranges_and_reports_progress(self):
        data = bytes(range(25))
        requests = []
        progress = []

        async with httpx.AsyncClient(transport=recording_transport(requests, len(data))) as client:
            sequencer = ChunkSequencer(client, chunk_size=10)
            result = await sequencer.transmit(
                ResumableSession(UPLOAD_URL), data, len(data), on_progress=progress.append
            )

        assert [r.headers["Content-Range"] for r in requests] == [
            "bytes 0-9/25",
            "bytes 10-19/25",
            "bytes 20-24/25",
        ]
        assert [r.headers["Content-Length"] for r in requests] == ["10", "10", "5"]
        assert b"".join(r.content for r in requests) == data
        assert all(r.method == "PUT" for r in requests)
        assert "Authorization" not in requests[0].headers

        assert progress == [40, 80, 100]
        assert progress == sorted(progress)
        assert result == {"id": "item-1", "name": "clip.mp4", "size": 25}
        assert sequencer.state == UploadState.COMPLETED
        assert sequencer.offset == 25

    @pytest.mark.asyncio
    async def test_reads_file_objects_sequentially(self):
        data = b"x" * 12 + b"y" * 3
        requests = []

        async with httpx.AsyncClient(transport=recording_transport(requests, len(data))) as client:
            await ChunkSequencer(client, chunk_size=4).transmit(
                ResumableSession(UPLOAD_URL), io.BytesIO(data), len(data)
            )

        assert b"".join(r.content for r in requests) == data
        assert len(requests) == 4

    @pytest.mark.asyncio
    async def test_async_progress_callback(self):
        data = b"a" * 8
        seen = []

        async def on_progress(percent):
            seen.append(percent)

        async with httpx.AsyncClient(transport=recording_transport([], len(data))) as client:
            await ChunkSequencer(client, chunk_size=4).transmit(
                ResumableSession(UPLOAD_URL), data, len(data), on_progress=on_progress
            )

        assert seen == [50, 100]

    @pytest.mark.asyncio
    async def test_rejected_chunk_stops_the_upload(self):
        data = b"z" * 30
        requests = []
        progress = []

        transport = recording_transport(requests, len(data), fail_at=2)
        async with httpx.AsyncClient(transport=transport) as client:
            sequencer = ChunkSequencer(client, chunk_size=10)
            with pytest.raises(ChunkUploadError) as exc_info:
                await sequencer.transmit(ResumableSession(UPLOAD_URL), data, len(data), on_progress=progress.append)

        assert exc_info.value.status_code == 500
        assert "boom" in exc_info.value.detail
        assert len(requests) == 2
        assert progress == [33]
        assert 100 not in progress
        assert sequencer.state == UploadState.FAILED

    @pytest.mark.asyncio
    async def test_failed_sequencer_cannot_be_reused(self):
        data = b"z" * 10
        transport = recording_transport([], len(data), fail_at=1)
        async with httpx.AsyncClient(transport=transport) as client:
            sequencer = ChunkSequencer(client, chunk_size=10)
            with pytest.raises(ChunkUploadError):
                await sequencer.transmit(ResumableSession(UPLOAD_URL), data, len(data))
            with pytest.raises(RuntimeError):
                await sequencer.transmit(ResumableSession(UPLOAD_URL), data, len(data))

    @pytest.mark.asyncio
    async def test_session_expiring_between_chunks(self):
        data = b"e" * 20
        requests = []
        ticks = iter([T0, T0 + timedelta(minutes=20)])
        session = ResumableSession(UPLOAD_URL, expires_at=T0 + timedelta(minutes=15))

        async with httpx.AsyncClient(transport=recording_transport(requests, len(data))) as client:
            sequencer = ChunkSequencer(client, chunk_size=10, clock=lambda: next(ticks))
            with pytest.raises(SessionExpiredError):
                await sequencer.transmit(session, data, len(data))

        assert len(requests) == 1
        assert sequencer.offset == 10
        assert sequencer.state == UploadState.FAILED

    @pytest.mark.asyncio
    async def test_expired_session_sends_nothing(self):
        requests = []
        session = ResumableSession(UPLOAD_URL, expires_at=T0 - timedelta(seconds=1))

        async with httpx.AsyncClient(transport=recording_transport(requests, 5)) as client:
            with pytest.raises(SessionExpiredError):
                await ChunkSequencer(client, chunk_size=10, clock=lambda: T0).transmit(session, b"12345", 5)

        assert requests == []

    @pytest.mark.asyncio
    async def test_gone_status_is_reported_as_expiry(self):
        transport = recording_transport([], 10, fail_at=1, fail_status=410)
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(SessionExpiredError) as exc_info:
                await ChunkSequencer(client, chunk_size=10).transmit(ResumableSession(UPLOAD_URL), b"0" * 10, 10)

        assert exc_info.value.status_code == 410

    @pytest.mark.asyncio
    async def test_not_found_before_expiry_is_a_chunk_error(self):
        transport = recording_transport([], 10, fail_at=1, fail_status=404)
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(ChunkUploadError):
                await ChunkSequencer(client, chunk_size=10).transmit(ResumableSession(UPLOAD_URL), b"0" * 10, 10)

    @pytest.mark.asyncio
    async def test_transport_error_is_a_chunk_error(self):
        def handler(request):
            raise httpx.ConnectError("connection reset", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sequencer = ChunkSequencer(client, chunk_size=10)
            with pytest.raises(ChunkUploadError):
                await sequencer.transmit(ResumableSession(UPLOAD_URL), b"0" * 10, 10)

        assert sequencer.state == UploadState.FAILED

    @pytest.mark.asyncio
    async def test_short_source_is_rejected(self):
        requests = []
        async with httpx.AsyncClient(transport=recording_transport(requests, 20)) as client:
            with pytest.raises(UploadValidationError):
                await ChunkSequencer(client, chunk_size=10).transmit(
                    ResumableSession(UPLOAD_URL), io.BytesIO(b"only-twelve!"), 20
                )

        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_short_bytes_source_sends_nothing(self):
        requests = []
        async with httpx.AsyncClient(transport=recording_transport(requests, 40)) as client:
            sequencer = ChunkSequencer(client, chunk_size=10)
            with pytest.raises(UploadValidationError):
                await sequencer.transmit(ResumableSession(UPLOAD_URL), b"x" * 25, 40)

        assert requests == []
        assert sequencer.state == UploadState.FAILED

    @pytest.mark.asyncio
    async def test_not_found_after_expiry_mid_upload_is_expiry(self):
        data = b"n" * 20
        requests = []
        # Checked before chunk 1, before chunk 2, then again once chunk 2 is refused
        ticks = iter([T0, T0 + timedelta(minutes=10), T0 + timedelta(minutes=20)])
        session = ResumableSession(UPLOAD_URL, expires_at=T0 + timedelta(minutes=15))

        transport = recording_transport(requests, len(data), fail_at=2, fail_status=404)
        async with httpx.AsyncClient(transport=transport) as client:
            sequencer = ChunkSequencer(client, chunk_size=10, clock=lambda: next(ticks))
            with pytest.raises(SessionExpiredError) as exc_info:
                await sequencer.transmit(session, data, len(data))

        assert exc_info.value.status_code == 404
        assert len(requests) == 2
        assert sequencer.offset == 10
        assert sequencer.state == UploadState.FAILED

    @pytest.mark.asyncio
    async def test_twelve_mib_file_in_five_mib_chunks(self):
        mib = 1024 * 1024
        data = bytes(12 * mib)
        requests = []
        progress = []

        async with httpx.AsyncClient(transport=recording_transport(requests, len(data))) as client:
            sequencer = ChunkSequencer(client, chunk_size=5 * mib)
            await sequencer.transmit(ResumableSession(UPLOAD_URL), data, len(data), on_progress=progress.append)

        assert [r.headers["Content-Range"] for r in requests] == [
            "bytes 0-5242879/12582912",
            "bytes 5242880-10485759/12582912",
            "bytes 10485760-12582911/12582912",
        ]
        assert [len(r.content) for r in requests] == [5 * mib, 5 * mib, 2 * mib]
        assert progress[-1] == 100
        assert sequencer.progress == 100

    @pytest.mark.asyncio
    async def test_state_follows_session_request(self):
        data = b"s" * 5
        async with httpx.AsyncClient(transport=recording_transport([], len(data))) as client:
            sequencer = ChunkSequencer(client, chunk_size=10)
            assert sequencer.state == UploadState.IDLE

            sequencer.request_session()
            assert sequencer.state == UploadState.SESSION_REQUESTED
            with pytest.raises(RuntimeError):
                sequencer.request_session()

            await sequencer.transmit(ResumableSession(UPLOAD_URL), data, len(data))

        assert sequencer.state == UploadState.COMPLETED
