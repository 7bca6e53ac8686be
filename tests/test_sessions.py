"""Tests for upload session negotiation and the upload service."""

import io

import httpx
import pytest

from voxstudio.core.config import settings
from voxstudio.core.exceptions import ChunkUploadError, StoreError, UploadValidationError
from voxstudio.core.logging import upload_destination_context
from voxstudio.upload import service as upload_service
from voxstudio.upload.chunks import ChunkSequencer
from voxstudio.upload.models import ConflictPolicy, FolderHandle, UploadState, UploadTarget
from voxstudio.upload.service import create_upload_session, upload_chunks, upload_file
from voxstudio.upload.sessions import UploadSessionNegotiator


class TestUploadSessionNegotiator:
    """Tests for opening upload sessions."""

    @pytest.mark.asyncio
    async def test_passes_policy_and_size(self, fake_store):
        folder = FolderHandle(item_id="id-acme", path="acme")

        session = await UploadSessionNegotiator(fake_store).open(
            folder, "clip.mp4", conflict_policy=ConflictPolicy.RENAME, total_size=42
        )

        assert session.upload_url.startswith("https://upload.test/")
        assert fake_store.calls == [("create_upload_session", "acme/clip.mp4", ConflictPolicy.RENAME, 42)]

    @pytest.mark.asyncio
    async def test_store_rejection_propagates(self, fake_store):
        fake_store.session_error = StoreError("Quota exceeded", status_code=507, detail="quotaLimitReached")

        with pytest.raises(StoreError) as exc_info:
            await UploadSessionNegotiator(fake_store).open(FolderHandle("id-acme", "acme"), "clip.mp4")

        assert exc_info.value.status_code == 507
        assert exc_info.value.detail == "quotaLimitReached"

    @pytest.mark.asyncio
    async def test_invalid_file_name(self, fake_store):
        with pytest.raises(UploadValidationError):
            await UploadSessionNegotiator(fake_store).open(FolderHandle("id-acme", "acme"), "a/b.mp4")

        assert fake_store.calls == []


class TestUploadTarget:
    """Tests for upload target validation."""

    def test_item_path(self):
        target = UploadTarget(["acme", "stage1", "videos"], "clip.mp4", 10)
        assert target.destination_path == ("acme", "stage1", "videos")
        assert target.item_path == "acme/stage1/videos/clip.mp4"

    @pytest.mark.parametrize("size", [0, -1])
    def test_rejects_non_positive_size(self, size):
        with pytest.raises(UploadValidationError):
            UploadTarget(("acme",), "clip.mp4", size)


class TestUploadService:
    """Tests for the caller-facing upload operations."""

    @pytest.mark.asyncio
    async def test_create_upload_session_uses_stage_and_category(self, fake_store):
        await create_upload_session("acme", "stage1", "clip.mp4", 100, category="videos", store=fake_store)

        assert [call[1] for call in fake_store.calls_named("create_folder")] == [
            "acme",
            "acme/stage1",
            "acme/stage1/videos",
        ]
        assert fake_store.calls_named("create_upload_session") == [
            ("create_upload_session", "acme/stage1/videos/clip.mp4", ConflictPolicy.REPLACE, 100)
        ]

    @pytest.mark.asyncio
    async def test_oversized_file_is_rejected_before_any_call(self, fake_store, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_MB", 1)

        with pytest.raises(UploadValidationError):
            await create_upload_session("acme", "stage1", "clip.mp4", 2 * 1024 * 1024, store=fake_store)

        assert fake_store.calls == []

    @pytest.mark.asyncio
    async def test_upload_file_resolves_opens_and_transmits(self, fake_store):
        data = b"voice-take" * 3
        puts = []

        def handler(request):
            puts.append(request)
            if request.headers["Content-Range"].endswith(f"-{len(data) - 1}/{len(data)}"):
                return httpx.Response(201, json={"id": "item-9", "name": "take.wav"})
            return httpx.Response(202, json={})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await upload_file(
                ["acme", "stage2", "voices"],
                "take.wav",
                data,
                len(data),
                store=fake_store,
                http_client=client,
                chunk_size=16,
            )

        assert result == {"id": "item-9", "name": "take.wav"}
        assert len(puts) == 2
        assert str(puts[0].url).startswith("https://upload.test/sessions/")
        assert len(fake_store.calls_named("create_upload_session")) == 1

    @pytest.mark.asyncio
    async def test_upload_file_to_local_store(self, local_store):
        data = b"0123456789abcdef!"

        result = await upload_file(
            ["acme", "stage1", "videos"], "clip.mp4", data, len(data), store=local_store, chunk_size=5
        )

        assert result["name"] == "clip.mp4"
        assert result["size"] == len(data)
        assert (local_store.base_path / "acme" / "stage1" / "videos" / "clip.mp4").read_bytes() == data

    @pytest.mark.asyncio
    async def test_upload_chunks_requires_url(self):
        with pytest.raises(UploadValidationError):
            await upload_chunks("", b"x", 1)

    @pytest.mark.asyncio
    async def test_upload_chunks_reports_rejection(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "bad range"}})

        with pytest.raises(ChunkUploadError):
            await upload_chunks(
                "https://upload.test/s/1", b"abc", 3, transport=httpx.MockTransport(handler)
            )

    @pytest.mark.asyncio
    async def test_failed_local_upload_leaves_no_session_or_partial_file(self, local_store):
        with pytest.raises(UploadValidationError):
            await upload_file(
                ["acme", "stage1", "videos"],
                "clip.mp4",
                io.BytesIO(b"x" * 12),
                20,
                store=local_store,
                chunk_size=10,
            )

        assert local_store.registry._sessions == {}
        assert list(local_store.base_path.rglob("*.part")) == []
        assert not (local_store.base_path / "acme" / "stage1" / "videos" / "clip.mp4").exists()

    @pytest.mark.asyncio
    async def test_rejected_chunk_cancels_the_session(self, fake_store, monkeypatch):
        cancelled = []

        async def cancel_upload_session(session):
            cancelled.append(session.upload_url)

        monkeypatch.setattr(fake_store, "cancel_upload_session", cancel_upload_session)

        def handler(request):
            return httpx.Response(500, json={"error": {"message": "boom"}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ChunkUploadError):
                await upload_file(["acme"], "take.wav", b"abc", 3, store=fake_store, http_client=client)

        assert len(cancelled) == 1
        assert cancelled[0].startswith("https://upload.test/sessions/")

    @pytest.mark.asyncio
    async def test_sequencer_tracks_session_request(self, fake_store, monkeypatch):
        sequencers = []
        states_during_open = []

        class RecordingSequencer(ChunkSequencer):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                sequencers.append(self)

        original_open = fake_store.create_upload_session

        async def create_upload_session(*args, **kwargs):
            states_during_open.append(sequencers[0].state)
            return await original_open(*args, **kwargs)

        monkeypatch.setattr(upload_service, "ChunkSequencer", RecordingSequencer)
        monkeypatch.setattr(fake_store, "create_upload_session", create_upload_session)
        fake_store.session_error = StoreError("Access denied", status_code=403)

        with pytest.raises(StoreError):
            await upload_file(["acme"], "take.wav", b"abc", 3, store=fake_store)

        assert states_during_open == [UploadState.SESSION_REQUESTED]
        assert sequencers[0].state == UploadState.FAILED

    @pytest.mark.asyncio
    async def test_destination_context_is_restored(self, fake_store, local_store):
        data = b"0123456789"

        await create_upload_session("acme", "stage1", "clip.mp4", 10, store=fake_store)
        assert upload_destination_context.get() is None

        await upload_file(["acme", "stage1", "videos"], "clip.mp4", data, len(data), store=local_store)
        assert upload_destination_context.get() is None

        with pytest.raises(UploadValidationError):
            await upload_file(["acme"], "short.mp4", io.BytesIO(b"x"), 5, store=local_store)
        assert upload_destination_context.get() is None
