"""ffmpeg command construction and process spawning."""

import asyncio
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol

REDACTED = "***"

READ_CHUNK_SIZE = 4096
# A run without any line break is cut here so the buffer stays bounded
MAX_LINE_LENGTH = 16 * 1024

_LINE_BREAK = re.compile(rb"[\r\n]")


class EncoderProcess(Protocol):
    """The subset of `asyncio.subprocess.Process` the supervisor relies on."""

    pid: int
    returncode: int | None
    stderr: asyncio.StreamReader | None

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


Spawner = Callable[[list[str]], Awaitable[EncoderProcess]]


def build_ingest_url(rtmp_url: str, stream_key: str) -> str:
    return f"{rtmp_url.rstrip('/')}/{stream_key}"


def build_ffmpeg_command(
    manifest_url: str,
    target_url: str,
    *,
    ffmpeg_bin: str = "ffmpeg",
    audio_bitrate: str = "128k",
) -> list[str]:
    """Copy video, re-encode audio to AAC and publish as FLV."""
    return [
        ffmpeg_bin,
        "-i", manifest_url,
        "-c:v", "copy",
        "-c:a", "aac",
        "-b:a", audio_bitrate,
        "-f", "flv",
        "-flvflags", "no_duration_filesize",
        target_url,
    ]  # fmt: skip


def redact(text: str, secret: str | None) -> str:
    if not secret:
        return text
    return text.replace(secret, REDACTED)


def is_error_line(line: str) -> bool:
    """ffmpeg writes progress to stderr too; keep only lines that look like errors."""
    return "error" in line.lower()


async def iter_output_lines(
    reader: asyncio.StreamReader,
    *,
    chunk_size: int = READ_CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """Yield non-empty lines until EOF.

    ffmpeg ends progress updates with a bare CR, so both CR and LF end a line.
    The reader is drained to EOF whatever the output looks like, otherwise a
    full pipe would block the encoder.
    """
    pending = b""
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            break

        parts = _LINE_BREAK.split(pending + chunk)
        pending = parts.pop()
        for part in parts:
            if part:
                yield part

        while len(pending) > MAX_LINE_LENGTH:
            yield pending[:MAX_LINE_LENGTH]
            pending = pending[MAX_LINE_LENGTH:]

    if pending:
        yield pending


async def spawn_encoder(cmd: list[str]) -> asyncio.subprocess.Process:
    """Start an encoder. Raises OSError (e.g. FileNotFoundError) if it cannot be executed."""
    return await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
