"""Resolution Probe Port - best-effort quality label for a stream URL."""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable


@runtime_checkable
class ResolutionProbePort(Protocol):
    """Inspect a playlist URL and report a quality label such as ``1080p``.

    Contract: idempotent, cached by URL, honors *signal* by returning
    ``None`` without side effects, never raises on network failure.
    """

    async def probe(
        self,
        stream_url: str,
        signal: asyncio.Event | None = None,
    ) -> str | None: ...
