"""
Small input validators shared by schemas and services.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)


def validate_email(email: str) -> bool:
    return bool(_EMAIL_RE.match((email or "").strip()))


def validate_url(url: str) -> bool:
    try:
        parts = urlsplit((url or "").strip())
    except ValueError:
        return False
    return parts.scheme in {"http", "https"} and bool(parts.netloc)


def sanitize_input(text: str) -> str:
    """
    Strip inline <script>...</script> blocks.
    """
    return _SCRIPT_RE.sub("", text or "")


def sanitize_optional(text: str | None) -> str | None:
    if text is None:
        return None
    return sanitize_input(text)
