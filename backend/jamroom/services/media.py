import asyncio
import logging
import os
import re
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple
from urllib.parse import quote

import httpx
from pydantic import BaseModel
from yt_dlp import YoutubeDL

from jamroom import config
from jamroom.models.messages import SearchResult

logger = logging.getLogger(__name__)

_VIDEO_ID = r"[0-9A-Za-z_-]{11}"
_BARE_ID_RE = re.compile(rf"^{_VIDEO_ID}$")
_ID_PATTERNS = [
    re.compile(rf"[?&]v=({_VIDEO_ID})"),
    re.compile(rf"youtu\.be/({_VIDEO_ID})"),
    re.compile(rf"/shorts/({_VIDEO_ID})"),
]
_YOUTUBE_HOST_RE = re.compile(r"youtube\.com|youtu\.be", re.IGNORECASE)
_DIRECT_FILE_RE = re.compile(r"\.(mp3|m4a|mp4|webm|ogg|opus|wav|flac)(?:\?|$)", re.IGNORECASE)

MIME_TYPES = {
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "webm": "audio/webm",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
    "wav": "audio/wav",
    "flac": "audio/flac",
}


class TrackUnavailable(Exception):
    """The locator cannot be turned into a playable stream."""


class ResolvedStream(BaseModel):
    url: str
    mime_type: str


class TrackResolver(Protocol):
    async def check_available(self, locator: str) -> None: ...

    async def resolve(self, locator: str) -> ResolvedStream: ...


class Catalog(Protocol):
    async def search(self, query: str, limit: int = ...) -> List[SearchResult]: ...


def extract_video_id(locator: Optional[str]) -> Optional[str]:
    if not locator:
        return None
    if _BARE_ID_RE.match(locator):
        return locator
    for pattern in _ID_PATTERNS:
        m = pattern.search(locator)
        if m:
            return m.group(1)
    return None


def is_direct_link(locator: str) -> bool:
    """Plain audio file hosted somewhere other than YouTube."""
    return (
        locator.startswith(('http://', 'https://'))
        and not _YOUTUBE_HOST_RE.search(locator)
        and _DIRECT_FILE_RE.search(locator) is not None
    )


def guess_mime(ext: Optional[str]) -> str:
    return MIME_TYPES.get((ext or "").lower(), "application/octet-stream")


def _extract_info(url: str, ydl_opts: Dict[str, Any]) -> Dict[str, Any]:
    with YoutubeDL(ydl_opts) as ydl:
        info = ydl.extract_info(url, download=False)
    # Playlists and search results: take the first entry
    if info and 'entries' in info:
        entries = list(info['entries'] or [])
        if not entries:
            raise TrackUnavailable(f"No results for {url}")
        info = entries[0]
    return info


def _search(query: str, limit: int, ydl_opts: Dict[str, Any]) -> List[Dict[str, Any]]:
    with YoutubeDL(ydl_opts) as ydl:
        info = ydl.extract_info(f"ytsearch{limit}:{query}", download=False)
    return list((info or {}).get('entries') or [])


class MediaService:
    """
    yt-dlp backed track resolution and catalog search.

    All yt-dlp calls run in the default thread pool so they never block the
    event loop. Extracted info is cached per track for ``info_ttl`` seconds and
    concurrent lookups of the same track share one extraction.
    """

    def __init__(
        self,
        proxy_url: Optional[str] = config.PROXY_URL,
        cookies_path: Optional[str] = config.COOKIES_PATH,
        info_ttl: float = config.INFO_CACHE_TTL,
        stream_proxy_path: Optional[str] = config.STREAM_PROXY_PATH,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.proxy_url = proxy_url
        self.cookies_path = cookies_path
        self.info_ttl = info_ttl
        self.stream_proxy_path = stream_proxy_path
        self.transport = transport
        self.clock = clock
        self._info_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._inflight: Dict[str, asyncio.Future] = {}

    def _ydl_opts(self) -> Dict[str, Any]:
        ydl_opts = {
            'format': 'bestaudio[ext=m4a]/bestaudio/best',
            'noplaylist': True,
            'quiet': True,
            'no_warnings': True,
            'skip_download': True,
            'source_address': '0.0.0.0', # bind to ipv4
        }
        if self.proxy_url:
            ydl_opts['proxy'] = self.proxy_url
        if self.cookies_path and os.path.exists(self.cookies_path):
            ydl_opts['cookiefile'] = self.cookies_path
        return ydl_opts

    def _source(self, locator: str) -> Tuple[str, str]:
        """Cache key and yt-dlp input for a non-direct locator."""
        video_id = extract_video_id(locator)
        if video_id:
            return video_id, f"https://www.youtube.com/watch?v={video_id}"
        if locator.startswith(('http://', 'https://')):
            return locator, locator
        raise TrackUnavailable(f"Unsupported locator: {locator}")

    async def _get_info(self, locator: str) -> Dict[str, Any]:
        key, url = self._source(locator)

        cached = self._info_cache.get(key)
        if cached and cached[0] > self.clock():
            return cached[1]

        pending = self._inflight.get(key)
        if pending is not None:
            return await self._await_info(asyncio.shield(pending), url)

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, _extract_info, url, self._ydl_opts())
        self._inflight[key] = future
        try:
            info = await self._await_info(future, url)
        finally:
            self._inflight.pop(key, None)

        self._evict_expired()
        self._info_cache[key] = (self.clock() + self.info_ttl, info)
        return info

    def _evict_expired(self):
        now = self.clock()
        for key in [k for k, (expires_at, _) in self._info_cache.items() if expires_at <= now]:
            del self._info_cache[key]

    async def _await_info(self, future, url: str) -> Dict[str, Any]:
        try:
            return await future
        except TrackUnavailable:
            raise
        except Exception as e:
            logger.warning(f"yt-dlp extraction error for {url}: {e}")
            raise TrackUnavailable(f"Could not load {url}") from e

    async def _check_direct_link(self, url: str):
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=10) as client:
                response = await client.head(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise TrackUnavailable(f"Could not reach {url}") from e
        if response.status_code >= 400:
            raise TrackUnavailable(f"Source returned {response.status_code} for {url}")

    async def check_available(self, locator: str):
        if is_direct_link(locator):
            await self._check_direct_link(locator)
        else:
            await self._get_info(locator)

    def _stream_reference(self, locator: str, resolved_url: str) -> str:
        if self.stream_proxy_path:
            return f"{self.stream_proxy_path}?url={quote(locator, safe='')}"
        return resolved_url

    async def resolve(self, locator: str) -> ResolvedStream:
        if is_direct_link(locator):
            ext = _DIRECT_FILE_RE.search(locator).group(1)
            return ResolvedStream(url=self._stream_reference(locator, locator), mime_type=guess_mime(ext))

        info = await self._get_info(locator)
        stream_url = info.get('url')
        if not stream_url:
            # Merged selections carry their parts in requested_formats
            formats = info.get('requested_formats') or []
            audio = next((f for f in formats if f.get('acodec') not in (None, 'none')), None)
            if audio is None:
                raise TrackUnavailable("No usable audio format found")
            stream_url = audio.get('url')
            ext = audio.get('ext')
        else:
            ext = info.get('ext')
        if not stream_url:
            raise TrackUnavailable("No usable audio format found")
        return ResolvedStream(url=self._stream_reference(locator, stream_url), mime_type=guess_mime(ext))

    async def search(self, query: str, limit: int = config.SEARCH_RESULT_LIMIT) -> List[SearchResult]:
        ydl_opts = self._ydl_opts()
        ydl_opts['extract_flat'] = 'in_playlist'
        loop = asyncio.get_running_loop()
        try:
            entries = await loop.run_in_executor(None, _search, query, limit, ydl_opts)
        except Exception as e:
            logger.error(f"Search error for '{query}': {e}")
            return []

        results = []
        for entry in entries:
            video_id = entry.get('id')
            title = entry.get('title')
            if not video_id or not title:
                continue
            thumbnail = entry.get('thumbnail')
            if not thumbnail and entry.get('thumbnails'):
                thumbnail = entry['thumbnails'][-1].get('url')
            results.append(SearchResult(
                title=title,
                id=video_id,
                url=entry.get('url') or f"https://www.youtube.com/watch?v={video_id}",
                thumbnail=thumbnail,
            ))
        return results[:limit]
