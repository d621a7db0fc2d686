"""Same-origin passthrough of the media server's HLS output.

Browsers load the manifest and segments from this service instead of the
media server, which avoids mixed-content and CORS problems. The relay keeps no
state and never retries.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx
from loguru import logger

from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

RELAY_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Cache-Control": "no-cache, no-store, must-revalidate",
}

# Upstream content types passed through as-is
ALLOWED_CONTENT_TYPES = {
    "application/vnd.apple.mpegurl",
    "application/x-mpegurl",
    "audio/mpegurl",
    "video/mp2t",
    "video/mp4",
    "video/iso.segment",
    "audio/mp4",
    "audio/aac",
}

CONTENT_TYPES_BY_SUFFIX = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
    ".m4s": "video/iso.segment",
    ".mp4": "video/mp4",
    ".aac": "audio/aac",
}

FALLBACK_CONTENT_TYPE = "application/octet-stream"


@dataclass
class RelayResponse:
    status_code: int
    content_type: str
    body: bytes | AsyncIterator[bytes] = b""
    headers: dict[str, str] = field(default_factory=lambda: dict(RELAY_HEADERS))


def check_sub_path(sub_path: str) -> str:
    """Reject paths that could point the relay anywhere but the media server."""
    path = sub_path.lstrip("/")
    if not path or urlsplit(path).scheme or "//" in path or "\\" in path:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_REQUEST,
            errmesg="Invalid stream path",
            status_code=HttpStatusCode.BAD_REQUEST,
        )
    if any(segment in ("..", ".") for segment in path.split("/")):
        raise AppError(
            errcode=AppErrorCode.E_INVALID_REQUEST,
            errmesg="Invalid stream path",
            status_code=HttpStatusCode.BAD_REQUEST,
        )
    return path


def resolve_content_type(upstream: str | None, path: str) -> str:
    if upstream:
        media_type = upstream.split(";", 1)[0].strip().lower()
        if media_type in ALLOWED_CONTENT_TYPES:
            return upstream
    for suffix, media_type in CONTENT_TYPES_BY_SUFFIX.items():
        if path.lower().endswith(suffix):
            return media_type
    return FALLBACK_CONTENT_TYPE


class HlsRelay:
    def __init__(self, base_url: str, *, http_client: httpx.AsyncClient, timeout: float = 10.0):
        self._base_url = base_url.rstrip("/")
        self._client = http_client
        self._timeout = timeout

    def upstream_url(self, sub_path: str) -> str:
        return f"{self._base_url}/{check_sub_path(sub_path)}"

    async def relay(self, sub_path: str) -> RelayResponse:
        url = self.upstream_url(sub_path)
        request = self._client.build_request("GET", url, timeout=httpx.Timeout(self._timeout))

        try:
            upstream = await self._client.send(request, stream=True)
        except httpx.TimeoutException:
            logger.warning(f"Relay upstream timed out: {url}")
            return _bad_gateway("Upstream timeout")
        except httpx.HTTPError as e:
            logger.warning(f"Relay upstream unavailable: {url} ({type(e).__name__})")
            return _bad_gateway("Upstream unavailable")

        if not upstream.is_success:
            logger.debug(f"Relay upstream returned {upstream.status_code} for {url}")

        return RelayResponse(
            status_code=upstream.status_code,
            content_type=resolve_content_type(upstream.headers.get("content-type"), url),
            body=_iter_body(upstream, url),
        )


async def _iter_body(upstream: httpx.Response, url: str) -> AsyncIterator[bytes]:
    try:
        async for chunk in upstream.aiter_bytes():
            yield chunk
    except httpx.HTTPError as e:
        # Headers are already sent; the client sees a truncated body
        logger.warning(f"Relay stream interrupted: {url} ({type(e).__name__})")
    finally:
        await upstream.aclose()


def _bad_gateway(message: str) -> RelayResponse:
    return RelayResponse(
        status_code=HttpStatusCode.BAD_GATEWAY,
        content_type="text/plain; charset=utf-8",
        body=message.encode("utf-8"),
    )
