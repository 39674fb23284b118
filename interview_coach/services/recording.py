"""Audio capture for spoken answers.

RecordingController owns at most one live capture handle. The handle is
released on stop and on close, including when stop fails half-way.
"""
import asyncio
import logging
import subprocess
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from interview_coach.config import settings
from interview_coach.exceptions import MicrophonePermissionError, NotRecordingError
from interview_coach.models import AudioClip

logger = logging.getLogger(__name__)

PREFERRED_MIME_TYPE = "audio/webm;codecs=opus"
FALLBACK_MIME_TYPE = "audio/mp4"

# Seconds to wait for the encoder to flush its trailer after a stop
FINALIZE_TIMEOUT = 5.0


class RecorderEvent(str, Enum):
    START = "start"
    STOP = "stop"


class CaptureStream(ABC):
    """One open capture device producing encoded audio chunks."""

    mime_type: str

    @abstractmethod
    async def read_chunk(self) -> bytes:
        """Next encoded chunk; b"" once the stream has ended."""

    @abstractmethod
    async def finalize(self) -> None:
        """Stop capturing; remaining chunks stay readable until the end of stream."""

    @abstractmethod
    def release(self) -> None:
        """Free the device. Safe to call more than once."""


class CaptureBackend(ABC):
    @abstractmethod
    async def is_type_supported(self, mime_type: str) -> bool:
        ...

    @abstractmethod
    async def open(self, mime_type: str) -> CaptureStream:
        """Open the device. Raises MicrophonePermissionError when denied."""


class RecordingController:
    """Start/stop recording and hand back one mime-tagged audio buffer."""

    def __init__(self, backend: CaptureBackend):
        self.backend = backend
        self.is_recording = False
        self._stream: Optional[CaptureStream] = None
        self._reader: Optional[asyncio.Task] = None
        self._chunks: list[bytes] = []
        self._listeners: list[Callable[[RecorderEvent], None]] = []

    def subscribe(self, listener: Callable[[RecorderEvent], None]) -> Callable[[], None]:
        """Receive START/STOP events. The recorder never reads listener state."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: RecorderEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Recorder listener failed on %s", event.value)

    async def select_mime_type(self) -> str:
        if await self.backend.is_type_supported(PREFERRED_MIME_TYPE):
            return PREFERRED_MIME_TYPE
        return FALLBACK_MIME_TYPE

    async def start_recording(self) -> None:
        """
        Open the microphone and start buffering.

        Raises:
            MicrophonePermissionError: Device denied; controller state is unchanged
        """
        mime_type = await self.select_mime_type()
        try:
            stream = await self.backend.open(mime_type)
        except MicrophonePermissionError as e:
            logger.error("Error accessing microphone: %s", e)
            raise
        except OSError as e:
            logger.error("Error accessing microphone: %s", e)
            raise MicrophonePermissionError("Microphone access required") from e

        # Only one live handle: a new start drops the previous recording
        if self._stream is not None:
            logger.info("Recording restarted, previous buffer discarded")
            self._release_current()

        chunks: list[bytes] = []
        self._stream = stream
        self._chunks = chunks
        self._reader = asyncio.create_task(self._pump(stream, chunks))
        self.is_recording = True
        self._emit(RecorderEvent.START)

    @staticmethod
    async def _pump(stream: CaptureStream, chunks: list[bytes]) -> None:
        while True:
            chunk = await stream.read_chunk()
            if not chunk:
                break
            chunks.append(chunk)

    async def stop_recording(self) -> AudioClip:
        """
        Stop recording and return the captured audio.

        Raises:
            NotRecordingError: No recording is active
        """
        if not self.is_recording or self._stream is None:
            raise NotRecordingError("Not recording")

        stream, reader, chunks = self._stream, self._reader, self._chunks
        self.is_recording = False
        try:
            await stream.finalize()
            if reader is not None:
                await asyncio.wait_for(reader, timeout=FINALIZE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Encoder did not finish within %.1fs, keeping partial audio", FINALIZE_TIMEOUT)
        finally:
            if reader is not None and not reader.done():
                reader.cancel()
            stream.release()
            self._stream = None
            self._reader = None
            self._chunks = []
            self._emit(RecorderEvent.STOP)

        clip = AudioClip(data=b"".join(chunks), mime_type=stream.mime_type)
        logger.debug("Recorded %d bytes of %s", clip.size, clip.mime_type)
        return clip

    def _release_current(self) -> None:
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
        if self._stream is not None:
            self._stream.release()
        self._stream = None
        self._reader = None
        self._chunks = []

    def close(self) -> None:
        """Release the device on teardown, even without an explicit stop."""
        was_recording = self.is_recording
        self._release_current()
        self.is_recording = False
        if was_recording:
            self._emit(RecorderEvent.STOP)


# ============================================================================
# FFMPEG BACKEND
# ============================================================================

CHUNK_SIZE = 4096

# Seconds a fresh capture process must survive to count as started
STARTUP_GRACE = 0.5

ENCODERS = {
    PREFERRED_MIME_TYPE: ("libopus", ["-c:a", "libopus", "-f", "webm"]),
    FALLBACK_MIME_TYPE: ("aac", ["-c:a", "aac", "-movflags", "frag_keyframe+empty_moov", "-f", "mp4"]),
}


class FfmpegCaptureStream(CaptureStream):
    def __init__(self, process: asyncio.subprocess.Process, mime_type: str):
        self.process = process
        self.mime_type = mime_type

    async def read_chunk(self) -> bytes:
        if self.process.stdout is None:
            return b""
        return await self.process.stdout.read(CHUNK_SIZE)

    async def finalize(self) -> None:
        # "q" on stdin makes ffmpeg stop capturing and write the container trailer
        stdin = self.process.stdin
        if self.process.returncode is not None or stdin is None:
            return
        try:
            stdin.write(b"q")
            await stdin.drain()
            stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            pass

    def release(self) -> None:
        if self.process.returncode is None:
            try:
                self.process.kill()
            except ProcessLookupError:
                pass


class FfmpegCaptureBackend(CaptureBackend):
    """Capture from the system input device with an ffmpeg subprocess."""

    def __init__(
        self,
        input_format: Optional[str] = None,
        input_device: Optional[str] = None,
        ffmpeg_path: str = "ffmpeg",
    ):
        self.input_format = input_format or settings.CAPTURE_INPUT_FORMAT
        self.input_device = input_device or settings.CAPTURE_INPUT_DEVICE
        self.ffmpeg_path = ffmpeg_path
        self._encoders: Optional[set[str]] = None

    async def _available_encoders(self) -> set[str]:
        if self._encoders is None:
            try:
                # Listing encoders takes a while on a cold start, keep it off the loop
                proc = await asyncio.to_thread(
                    subprocess.run,
                    [self.ffmpeg_path, "-hide_banner", "-encoders"],
                    capture_output=True, check=True,
                )
                lines = proc.stdout.decode("utf-8", errors="ignore").splitlines()
                # Encoder lines look like " A....D libopus   libopus Opus"
                self._encoders = {
                    parts[1] for parts in (line.split() for line in lines)
                    if len(parts) >= 2 and parts[0].startswith("A")
                }
            except (OSError, subprocess.CalledProcessError) as e:
                logger.warning("Could not list ffmpeg encoders: %s", e)
                self._encoders = set()
        return self._encoders

    async def is_type_supported(self, mime_type: str) -> bool:
        encoder = ENCODERS.get(mime_type)
        return encoder is not None and encoder[0] in await self._available_encoders()

    async def open(self, mime_type: str) -> CaptureStream:
        codec_args = ENCODERS[mime_type][1]
        cmd = [
            self.ffmpeg_path,
            "-hide_banner", "-loglevel", "error",
            "-f", self.input_format,
            "-i", self.input_device,
            "-ac", "1",
            *codec_args,
            "pipe:1",
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise MicrophonePermissionError(f"Cannot start audio capture: {e}") from e

        # A capture that cannot open the device exits right away
        try:
            await asyncio.wait_for(process.wait(), timeout=STARTUP_GRACE)
        except asyncio.TimeoutError:
            return FfmpegCaptureStream(process, mime_type)

        stderr = b""
        if process.stderr is not None:
            stderr = await process.stderr.read()
        raise MicrophonePermissionError(
            f"Microphone unavailable: {stderr.decode('utf-8', errors='ignore').strip()}"
        )
