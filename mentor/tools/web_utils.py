from __future__ import annotations

import re
from urllib.parse import urlparse


def is_valid_url(url: str) -> bool:
    """Absolute http(s) URL with a host."""
    try:
        result = urlparse(url or "")
    except ValueError:
        return False
    return result.scheme in ("http", "https") and bool(result.netloc)


def collapse_blank_lines(text: str) -> str:
    """Collapse runs of three or more newlines into a single blank line."""
    return re.sub(r"\n{3,}", "\n\n", text)


def truncate(text: str, max_chars: int) -> str:
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."
