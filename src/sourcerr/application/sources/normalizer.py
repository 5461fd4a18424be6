"""Identifier normalization for free-text provider and source names.

Pure transformation logic without I/O or framework dependencies.
Turns names like ``"暴风资源 线路1"`` or ``"ProviderX 蓝光"`` into a
comparable canonical key so decorated listings of the same provider
collapse onto one identity.
"""

from __future__ import annotations

import re
import unicodedata

# ASCII and common CJK punctuation removed from identifiers.
_PUNCTUATION = "·•~!@#$%^&*()_+=[]{}|\\;:'\",.<>/?`！￥…（）—【】「」『』、《》？。，丨-"
_PUNCT_RE = re.compile(f"[{re.escape(_PUNCTUATION)}]")

# Any whitespace, including the ideographic (full-width) space and NBSP.
_WHITESPACE_RE = re.compile(r"[\u3000\u00a0\s]+")

# Trailing decorations that aggregators append to provider names.
# Applied repeatedly until none matches, so stacked suffixes such as
# "蓝光线路2" are peeled off one at a time.
VARIANT_SUFFIX_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"第?\d{1,3}[线源]$"),  # "第1线", "2源"
    re.compile(r"线路?\d{1,3}$"),  # "线路3", "线1"
    re.compile(r"line\d{1,3}$"),  # "line2"
    re.compile(r"(?:主线|多线|备用)$"),  # dispatch words
    re.compile(r"(?:无广告|无广)$"),  # no-ads markers
    re.compile(r"(?:超清|高清|蓝光|标清|普清)$"),  # quality words
    re.compile(r"\d{3,4}p$"),  # "1080p"
    re.compile(r"(?:4k|2k|uhd|fhd)$"),
    re.compile(r"(?:资源|源|source)\d{1,3}$"),  # "资源1", "source2"
)


def normalize(text: str | None) -> str:
    """Canonical form: NFKC, trim, lowercase, no whitespace, no punctuation."""
    if not text:
        return ""
    value = unicodedata.normalize("NFKC", text).strip().lower()
    value = _WHITESPACE_RE.sub("", value)
    return _PUNCT_RE.sub("", value)


def strip_variant_suffixes(text: str) -> str:
    """Remove trailing line/quality/no-ads markers until a fixed point.

    Every pass either shortens the string or leaves it unchanged, so the
    loop always terminates.
    """
    result = text
    while True:
        previous = result
        for pattern in VARIANT_SUFFIX_PATTERNS:
            result = pattern.sub("", result, count=1)
        if result == previous:
            return result


def normalize_provider_name(name: str | None) -> str:
    return strip_variant_suffixes(normalize(name))


def build_cache_key(
    query: str,
    preferred_provider_id: str | None = None,
    stable_id: str | None = None,
) -> str:
    """Cache key for one aggregation session: ``query::provider::id``."""
    normalized_query = normalize(query)
    normalized_provider = normalize(preferred_provider_id)
    return f"{normalized_query}::{normalized_provider}::{stable_id or ''}"
