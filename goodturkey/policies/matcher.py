"""Hostname pattern normalization and matching."""

import re
from typing import Optional
from urllib.parse import urlsplit

from goodturkey.errors import ValidationError

# Browser-internal pages are never blocked
INTERNAL_PREFIXES = ("chrome://", "chrome-extension://", "about:", "moz-extension://", "edge://")

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_pattern(raw: str) -> str:
    """Reduce user input to a bare hostname pattern.

    "https://www.YouTube.com/watch?v=1" -> "youtube.com"

    Raises:
        ValidationError: If nothing usable is left
    """
    pattern = raw.strip().lower()
    pattern = re.sub(r"^(https?://)?(www\.)?", "", pattern)
    pattern = re.split(r"[/?#]", pattern, maxsplit=1)[0]
    # Drop a port if one was pasted in
    pattern = pattern.split(":")[0].strip(".")

    if not pattern:
        raise ValidationError("URL required")
    if any(ch.isspace() for ch in pattern):
        raise ValidationError(f"Hostname pattern cannot contain whitespace: {raw!r}")
    return pattern


def is_internal_url(url: str) -> bool:
    return url.lower().startswith(INTERNAL_PREFIXES)


def extract_hostname(url: str) -> Optional[str]:
    """Hostname of a navigated URL, lower-cased. Bare hostnames are accepted."""
    candidate = url.strip()
    if not candidate:
        return None
    if not _SCHEME_RE.match(candidate):
        candidate = "http://" + candidate

    try:
        hostname = urlsplit(candidate).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def hostname_matches(hostname: str, pattern: str) -> bool:
    """Substring match of the pattern inside the hostname (case-insensitive)."""
    return bool(pattern) and pattern.lower() in hostname.lower()
