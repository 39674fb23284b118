"""Tests for the recording controller and the ffmpeg capture backend."""
import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from interview_coach.exceptions import MicrophonePermissionError, NotRecordingError
from interview_coach.services.recording import (
    FALLBACK_MIME_TYPE,
    PREFERRED_MIME_TYPE,
    CaptureBackend,
    CaptureStream,
    FfmpegCaptureBackend,
    RecorderEvent,
    RecordingController,
)


class FakeStream(CaptureStream):
    """Serves queued chunks, then end of stream once finalized."""

    def __init__(self, mime_type, chunks=()):
        self.mime_type = mime_type
        self.queue = asyncio.Queue()
        for chunk in chunks:
            self.queue.put_nowait(chunk)
        self.released = 0

    async def read_chunk(self):
        return await self.queue.get()

    async def finalize(self):
        self.queue.put_nowait(b"")

    def release(self):
        self.released += 1


class FakeBackend(CaptureBackend):
    def __init__(self, supported=(PREFERRED_MIME_TYPE,), chunks=(b"abc", b"def"), error=None):
        self.supported = set(supported)
        self.chunks = chunks
        self.error = error
        self.streams = []

    async def is_type_supported(self, mime_type):
        return mime_type in self.supported

    async def open(self, mime_type):
        if self.error is not None:
            raise self.error
        stream = FakeStream(mime_type, self.chunks)
        self.streams.append(stream)
        return stream


class TestRecordingController:
    """Start/stop and device handle lifecycle."""

    async def test_start_stop_returns_clip(self):
        backend = FakeBackend()
        recorder = RecordingController(backend)

        await recorder.start_recording()
        assert recorder.is_recording
        clip = await recorder.stop_recording()

        assert clip.data == b"abcdef"
        assert clip.mime_type == PREFERRED_MIME_TYPE
        assert not recorder.is_recording
        assert backend.streams[0].released == 1

    async def test_fallback_mime_type(self):
        recorder = RecordingController(FakeBackend(supported=()))

        await recorder.start_recording()
        clip = await recorder.stop_recording()

        assert clip.mime_type == FALLBACK_MIME_TYPE

    async def test_stop_without_start_raises(self):
        with pytest.raises(NotRecordingError):
            await RecordingController(FakeBackend()).stop_recording()

    async def test_permission_denied(self):
        """Denied device: error raised and the controller stays idle."""
        recorder = RecordingController(FakeBackend(error=MicrophonePermissionError("denied")))
        events = []
        recorder.subscribe(events.append)

        with pytest.raises(MicrophonePermissionError):
            await recorder.start_recording()

        assert not recorder.is_recording
        assert events == []

    async def test_os_error_becomes_permission_error(self):
        recorder = RecordingController(FakeBackend(error=OSError("no device")))

        with pytest.raises(MicrophonePermissionError):
            await recorder.start_recording()

    async def test_permission_error_is_builtin_permission_error(self):
        recorder = RecordingController(FakeBackend(error=MicrophonePermissionError("denied")))

        with pytest.raises(PermissionError):
            await recorder.start_recording()

    async def test_restart_releases_previous_handle(self):
        backend = FakeBackend()
        recorder = RecordingController(backend)

        await recorder.start_recording()
        await recorder.start_recording()

        assert backend.streams[0].released == 1
        assert backend.streams[1].released == 0
        await recorder.stop_recording()
        assert backend.streams[1].released == 1

    async def test_events_emitted(self):
        recorder = RecordingController(FakeBackend())
        events = []
        recorder.subscribe(events.append)

        await recorder.start_recording()
        await recorder.stop_recording()

        assert events == [RecorderEvent.START, RecorderEvent.STOP]

    async def test_close_releases_device(self):
        backend = FakeBackend()
        recorder = RecordingController(backend)
        events = []
        recorder.subscribe(events.append)
        await recorder.start_recording()

        recorder.close()

        assert backend.streams[0].released == 1
        assert not recorder.is_recording
        assert events[-1] == RecorderEvent.STOP

    async def test_release_even_if_finalize_fails(self):
        backend = FakeBackend()
        recorder = RecordingController(backend)
        await recorder.start_recording()
        backend.streams[0].finalize = AsyncMock(side_effect=BrokenPipeError("gone"))

        with pytest.raises(BrokenPipeError):
            await recorder.stop_recording()

        assert backend.streams[0].released == 1
        assert not recorder.is_recording


ENCODER_LISTING = (
    b" A....D libopus              libopus Opus\n"
    b" A..... aac                  AAC (Advanced Audio Coding)\n"
)


class TestFfmpegCaptureBackend:
    """Encoder probing and device open failures."""

    @patch("interview_coach.services.recording.subprocess.run")
    async def test_encoder_probe(self, mock_run):
        mock_run.return_value = MagicMock(stdout=ENCODER_LISTING)
        backend = FfmpegCaptureBackend("pulse", "default")

        assert await backend.is_type_supported(PREFERRED_MIME_TYPE)
        assert await backend.is_type_supported(FALLBACK_MIME_TYPE)
        assert not await backend.is_type_supported("audio/ogg")
        mock_run.assert_called_once()

    @patch("interview_coach.services.recording.subprocess.run", side_effect=FileNotFoundError("ffmpeg"))
    async def test_missing_ffmpeg_supports_nothing(self, mock_run):
        assert not await FfmpegCaptureBackend("pulse", "default").is_type_supported(PREFERRED_MIME_TYPE)

    async def test_slow_encoder_probe_keeps_loop_responsive(self):
        def slow_run(*args, **kwargs):
            time.sleep(0.4)
            return MagicMock(stdout=ENCODER_LISTING)

        gaps = []

        async def heartbeat():
            last = time.monotonic()
            while True:
                await asyncio.sleep(0.02)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        ticker = asyncio.create_task(heartbeat())
        try:
            with patch("interview_coach.services.recording.subprocess.run", side_effect=slow_run):
                recorder = RecordingController(FfmpegCaptureBackend("pulse", "default"))
                assert await recorder.select_mime_type() == PREFERRED_MIME_TYPE
        finally:
            ticker.cancel()

        assert gaps
        assert max(gaps) < 0.25

    @patch("interview_coach.services.recording.asyncio.create_subprocess_exec", new_callable=AsyncMock)
    async def test_immediate_exit_is_permission_error(self, mock_exec):
        process = MagicMock()
        process.wait = AsyncMock(return_value=1)
        process.stderr.read = AsyncMock(return_value=b"Connection refused")
        mock_exec.return_value = process

        with pytest.raises(MicrophonePermissionError, match="Connection refused"):
            await FfmpegCaptureBackend("pulse", "default").open(PREFERRED_MIME_TYPE)

    @patch("interview_coach.services.recording.asyncio.create_subprocess_exec",
           new_callable=AsyncMock, side_effect=FileNotFoundError("ffmpeg"))
    async def test_missing_binary_is_permission_error(self, mock_exec):
        with pytest.raises(MicrophonePermissionError):
            await FfmpegCaptureBackend("pulse", "default").open(PREFERRED_MIME_TYPE)
