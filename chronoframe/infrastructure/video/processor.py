"""
Video processing pipeline using FFmpeg.

Given a storage key, produce the video's technical metadata and a
thumbnail:

    check tools -> fetch source -> write temp file -> ffprobe metadata
        -> ffmpeg frame grab -> resize/re-encode -> clean up

Why a temp file: ffprobe and ffmpeg work best with real file paths, and
the source may live in S3 and be encrypted. We pull plaintext through the
storage provider, write it locally, point the tools at it and always
delete it afterwards.

The pipeline is best-effort. One broken upload must not take down a batch
import, so failures end in a logged diagnostic and a None result. The two
exceptions are configuration and decryption errors, which always reach
the caller because they need an operator's attention.

External tools run as child processes without a shell. When a stage times
out, its process is killed rather than left running in the background.
"""

import asyncio
import io
import json
import logging
import os
import tempfile
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence

from PIL import Image

from ...core.exceptions import (
    ChronoFrameError,
    ConfigError,
    CryptoError,
    MediaToolError,
    ThumbnailError,
    ToolUnavailableError,
    TransientMediaToolError,
    VideoMetadataError,
)
from ...core.retry import RetryConditions, RetryPolicy, RetryPresets, with_retry
from ..storage.manager import StorageManager

logger = logging.getLogger(__name__)


VIDEO_EXTENSIONS = frozenset({
    ".mov", ".mp4", ".avi", ".mkv", ".webm",
    ".flv", ".wmv", ".m4v", ".3gp", ".mpeg", ".mpg",
})

# stderr fragments meaning the machine was busy, not that the file is bad
_RESOURCE_ERROR_MARKERS = (
    "resource temporarily unavailable",
    "cannot allocate memory",
    "too many open files",
    "device or resource busy",
)


@dataclass(frozen=True)
class VideoMetadata:
    """Technical information about a video, as reported by ffprobe."""
    width: int
    height: int
    duration: float  # seconds
    video_codec: str
    audio_codec: Optional[str]
    bitrate: int  # bits per second
    frame_rate: float
    format: str


@dataclass(frozen=True)
class ProcessedVideo:
    """Pipeline output. Persisting it is the caller's job."""
    metadata: VideoMetadata
    thumbnail: bytes  # jpeg


@dataclass(frozen=True)
class ToolResult:
    returncode: int
    stdout: bytes
    stderr: bytes


ToolRunner = Callable[[Sequence[str]], Awaitable[ToolResult]]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def is_video_file(filename: str) -> bool:
    """True if the filename has a known video extension."""
    return Path(filename).suffix.lower() in VIDEO_EXTENSIONS


def parse_frame_rate(value: Optional[str]) -> float:
    """
    Parse ffprobe's rational frame rate ("30000/1001") into fps.

    A zero denominator ("0/0" is common for still streams) yields 0.0.
    """
    if not value:
        return 0.0
    value = str(value)
    try:
        if "/" in value:
            numerator, denominator = value.split("/", 1)
            num, den = float(numerator), float(denominator)
            if den == 0:
                return 0.0
            return num / den
        return float(value)
    except ValueError:
        return 0.0


def thumbnail_timestamp(duration: float) -> float:
    """
    Where to grab the thumbnail frame.

    One second in usually skips a black first frame, but a clip shorter
    than two seconds is sampled at its midpoint so the frame exists.
    """
    return min(1.0, max(duration, 0.0) / 2)


def parse_metadata_json(stdout: str | bytes) -> VideoMetadata:
    """Turn `ffprobe -print_format json` output into VideoMetadata."""
    try:
        data = json.loads(stdout)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise VideoMetadataError(f"ffprobe returned malformed JSON: {e}") from e

    if not isinstance(data, dict):
        raise VideoMetadataError("ffprobe output is not a JSON object")

    streams = data.get("streams") or []
    if not isinstance(streams, list):
        raise VideoMetadataError("ffprobe 'streams' is not a list")
    # ignore entries that aren't stream objects
    streams = [s for s in streams if isinstance(s, dict)]
    video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)

    if video_stream is None:
        raise VideoMetadataError("No video stream found in file")

    fmt = data.get("format") or {}
    if not isinstance(fmt, dict):
        raise VideoMetadataError("ffprobe 'format' is not a JSON object")

    try:
        duration = float(fmt.get("duration") or video_stream.get("duration") or 0)
        bitrate = int(float(fmt.get("bit_rate") or video_stream.get("bit_rate") or 0))
        width = int(video_stream.get("width") or 0)
        height = int(video_stream.get("height") or 0)
    except (TypeError, ValueError) as e:
        raise VideoMetadataError(f"ffprobe returned invalid numeric fields: {e}") from e

    frame_rate = parse_frame_rate(
        video_stream.get("r_frame_rate") or video_stream.get("avg_frame_rate")
    )

    return VideoMetadata(
        width=width,
        height=height,
        duration=duration,
        video_codec=video_stream.get("codec_name") or "unknown",
        audio_codec=audio_stream.get("codec_name") if audio_stream else None,
        bitrate=bitrate,
        frame_rate=frame_rate,
        format=fmt.get("format_name") or "unknown",
    )


def resize_thumbnail(raw: bytes, max_size: int = 1600, quality: int = 85) -> bytes:
    """
    Fit the frame inside a max_size x max_size box and re-encode as JPEG.

    Image.thumbnail keeps the aspect ratio and never enlarges. Undecodable
    or oversized frames raise ThumbnailError.
    """
    try:
        with Image.open(io.BytesIO(raw)) as image:
            image.thumbnail((max_size, max_size))
            if image.mode != "RGB":
                image = image.convert("RGB")
            output = io.BytesIO()
            image.save(output, format="JPEG", quality=quality, optimize=True)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ThumbnailError(f"Could not re-encode thumbnail frame: {e}") from e
    return output.getvalue()


# ---------------------------------------------------------------------------
# Process execution
# ---------------------------------------------------------------------------

async def run_tool(args: Sequence[str]) -> ToolResult:
    """
    Run an external command and collect its output.

    If the awaiting task is cancelled (e.g. a retry timeout fired), the
    child process is killed and reaped before the cancellation propagates.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise ToolUnavailableError(f"{args[0]} not found") from e

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
            logger.warning(
                "Killed abandoned media tool process",
                extra={"command": args[0], "pid": process.pid}
            )
        raise

    return ToolResult(returncode=process.returncode, stdout=stdout, stderr=stderr)


def _tool_failure(command: str, result: ToolResult) -> MediaToolError:
    stderr = result.stderr.decode("utf-8", errors="replace")
    if any(marker in stderr.lower() for marker in _RESOURCE_ERROR_MARKERS):
        return TransientMediaToolError(command, result.returncode, stderr)
    return MediaToolError(command, result.returncode, stderr)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class VideoProcessor:
    """
    Runs the metadata + thumbnail pipeline for stored videos.

    Each stage gets its own retry budget and timeout, so a slow metadata read
    doesn't eat into the thumbnail stage's time.
    """

    def __init__(
        self,
        storage_manager: StorageManager,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        *,
        metadata_timeout: float = 30.0,
        thumbnail_timeout: float = 20.0,
        thumbnail_size: int = 1600,
        thumbnail_quality: int = 85,
        temp_dir: Optional[str] = None,
        retry_policy: RetryPolicy = RetryPresets.FAST,
        runner: ToolRunner = run_tool,
    ) -> None:
        self._storage_manager = storage_manager
        self._ffmpeg = ffmpeg_path
        self._ffprobe = ffprobe_path
        self._thumbnail_size = thumbnail_size
        self._thumbnail_quality = thumbnail_quality
        self._temp_dir = temp_dir or tempfile.gettempdir()
        self._run = runner

        self._metadata_policy = retry_policy.with_overrides(
            timeout=metadata_timeout,
            retry_condition=RetryConditions.resource_errors,
        )
        self._thumbnail_policy = retry_policy.with_overrides(
            timeout=thumbnail_timeout,
            retry_condition=RetryConditions.resource_errors,
        )

    # -- tools ----------------------------------------------------------------

    async def check_tools_available(self) -> bool:
        """Lightweight `-version` check for ffmpeg and ffprobe."""
        for tool in (self._ffmpeg, self._ffprobe):
            try:
                result = await asyncio.wait_for(self._run([tool, "-version"]), timeout=5)
            except (ToolUnavailableError, asyncio.TimeoutError, OSError) as e:
                logger.error(f"{tool} is not available on this system: {e}")
                return False
            if result.returncode != 0:
                logger.error(
                    f"{tool} is not working properly",
                    extra={"returncode": result.returncode}
                )
                return False
        return True

    # -- stages ---------------------------------------------------------------

    async def extract_metadata(self, video_path: str) -> VideoMetadata:
        """Read metadata from a local video file. Retries only transient failures."""
        async def read_metadata() -> VideoMetadata:
            cmd = [
                self._ffprobe,
                "-v", "quiet",
                "-print_format", "json",
                "-show_format",
                "-show_streams",
                video_path,
            ]
            result = await self._run(cmd)
            if result.returncode != 0:
                raise _tool_failure("ffprobe", result)
            return parse_metadata_json(result.stdout)

        return await with_retry(
            read_metadata, self._metadata_policy, logger, operation_name="extract video metadata"
        )

    async def generate_thumbnail(self, video_path: str, timestamp: float) -> bytes:
        """Grab a single JPEG frame at `timestamp` seconds."""
        async def grab() -> bytes:
            async with self._temporary_path("thumb_", ".jpg") as output_path:
                # -ss before -i for fast seeking
                cmd = [
                    self._ffmpeg,
                    "-ss", f"{timestamp:.3f}",
                    "-i", video_path,
                    "-frames:v", "1",
                    "-q:v", "2",
                    "-y",
                    str(output_path),
                ]
                result = await self._run(cmd)
                if result.returncode != 0:
                    raise _tool_failure("ffmpeg", result)
                try:
                    frame = await asyncio.to_thread(output_path.read_bytes)
                except FileNotFoundError:
                    frame = b""
                if not frame:
                    raise MediaToolError("ffmpeg", result.returncode, "no frame was written")
                return frame

        return await with_retry(
            grab, self._thumbnail_policy, logger, operation_name="generate video thumbnail"
        )

    async def process_video(self, storage_key: str) -> Optional[ProcessedVideo]:
        """
        Run the whole pipeline for the object at `storage_key`.

        Returns None when the video can't be processed. Raises only for
        ConfigError and CryptoError.
        """
        if not await self.check_tools_available():
            logger.error("FFmpeg is not available on this system")
            return None

        try:
            provider = self._storage_manager.get_provider()
            video_data = await provider.get(storage_key)
            if video_data is None:
                logger.error(
                    "Video not found in storage",
                    extra={"storage_key": storage_key}
                )
                return None

            suffix = Path(storage_key).suffix
            async with self._temporary_path("video_", suffix) as video_path:
                await asyncio.to_thread(video_path.write_bytes, video_data)

                metadata = await self.extract_metadata(str(video_path))
                raw_frame = await self.generate_thumbnail(
                    str(video_path), thumbnail_timestamp(metadata.duration)
                )

            thumbnail = await asyncio.to_thread(
                resize_thumbnail, raw_frame, self._thumbnail_size, self._thumbnail_quality
            )

        except (ConfigError, CryptoError):
            raise
        except (ChronoFrameError, OSError) as e:
            logger.error(
                f"Video processing failed: {storage_key}: {e}",
                extra={"storage_key": storage_key, "error_type": type(e).__name__}
            )
            return None

        logger.info(
            f"Processed video: {metadata.width}x{metadata.height}, {metadata.duration}s",
            extra={"storage_key": storage_key, "thumbnail_bytes": len(thumbnail)}
        )
        return ProcessedVideo(metadata=metadata, thumbnail=thumbnail)

    # -- temp files -----------------------------------------------------------

    @asynccontextmanager
    async def _temporary_path(self, prefix: str, suffix: str) -> AsyncIterator[Path]:
        """
        A unique temp path, removed on exit whatever happens.

        Millisecond timestamp plus a random UUID keeps concurrent
        invocations from colliding.
        """
        name = f"{prefix}{int(time.time() * 1000)}_{uuid.uuid4().hex}{suffix}"
        path = Path(self._temp_dir) / name
        try:
            yield path
        finally:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass
