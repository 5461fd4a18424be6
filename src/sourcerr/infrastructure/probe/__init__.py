"""Resolution probe adapters."""

from .m3u8_probe import M3U8ResolutionProbe

__all__ = ["M3U8ResolutionProbe"]
