"""HLS playlist resolution probe.

Fetches an ``.m3u8`` playlist and reports the highest variant height
(``#EXT-X-STREAM-INF:...RESOLUTION=1920x1080`` -> ``"1080p"``). Media
playlists carry no RESOLUTION attribute; for those the label is guessed
from quality markers in the URL path.
"""

from __future__ import annotations

import asyncio
import re

import httpx
import structlog

log = structlog.get_logger(__name__)

_BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    ),
}

_RESOLUTION_RE = re.compile(r"RESOLUTION=(\d+)x(\d+)")

# (pattern, label), checked top-down against the lower-cased URL.
_URL_HINTS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"/4k/|4k\.|-4k"), "4K"),
    (re.compile(r"/1080p/|1080p\.|-1080p"), "1080p"),
    (re.compile(r"/720p/|720p\.|-720p"), "720p"),
    (re.compile(r"/480p/|480p\.|-480p"), "480p"),
)


def parse_playlist_resolution(playlist: str) -> str | None:
    """Highest ``RESOLUTION`` height among the stream variants, as ``"<h>p"``."""
    highest = 0
    for line in playlist.splitlines():
        if not line.startswith("#EXT-X-STREAM-INF"):
            continue
        match = _RESOLUTION_RE.search(line)
        if match:
            highest = max(highest, int(match.group(2)))
    return f"{highest}p" if highest else None


def guess_resolution_from_url(url: str) -> str | None:
    lowered = url.lower()
    for pattern, label in _URL_HINTS:
        if pattern.search(lowered):
            return label
    return None


class M3U8ResolutionProbe:
    """ResolutionProbePort over httpx with a process-lifetime URL cache.

    Concurrent probes of the same URL share one in-flight request. The
    request is cancelled once every caller waiting on it has observed its
    cancellation signal. Transport failures return ``None`` and are not
    cached, so a later probe may retry.
    """

    def __init__(self, http: httpx.AsyncClient, *, timeout: float = 5.0) -> None:
        self._http = http
        self._timeout = timeout
        self._cache: dict[str, str | None] = {}
        self._pending: dict[str, asyncio.Task[str | None]] = {}
        self._waiters: dict[str, int] = {}

    async def probe(
        self,
        stream_url: str,
        signal: asyncio.Event | None = None,
    ) -> str | None:
        if signal is not None and signal.is_set():
            return None
        if stream_url in self._cache:
            return self._cache[stream_url]

        task = self._pending.get(stream_url)
        if task is None:
            task = asyncio.create_task(self._fetch(stream_url))
            self._pending[stream_url] = task
            task.add_done_callback(lambda t: self._forget(stream_url, t))

        self._waiters[stream_url] = self._waiters.get(stream_url, 0) + 1
        try:
            return await self._await_result(stream_url, task, signal)
        finally:
            remaining = self._waiters[stream_url] - 1
            if remaining:
                self._waiters[stream_url] = remaining
            else:
                del self._waiters[stream_url]
                if not task.done():
                    self._forget(stream_url, task)
                    task.cancel()

    def _forget(self, stream_url: str, task: asyncio.Task[str | None]) -> None:
        if self._pending.get(stream_url) is task:
            del self._pending[stream_url]

    async def _await_result(
        self,
        stream_url: str,
        task: asyncio.Task[str | None],
        signal: asyncio.Event | None,
    ) -> str | None:
        if signal is None:
            return await asyncio.shield(task)

        signal_wait = asyncio.create_task(signal.wait())
        try:
            await asyncio.wait(
                {task, signal_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            signal_wait.cancel()

        if signal.is_set():
            log.debug("probe_cancelled", url=stream_url)
            return None
        return task.result()

    async def _fetch(self, stream_url: str) -> str | None:
        try:
            resp = await self._http.get(
                stream_url,
                headers=_BROWSER_HEADERS,
                follow_redirects=True,
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            log.debug("probe_http_error", url=stream_url, error=str(exc))
            return None

        if not resp.is_success:
            log.debug("probe_unexpected_status", url=stream_url, status=resp.status_code)
            return None

        label = parse_playlist_resolution(resp.text) or guess_resolution_from_url(
            stream_url
        )
        self._cache[stream_url] = label
        log.debug("probe_done", url=stream_url, resolution=label)
        return label
