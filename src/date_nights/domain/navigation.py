"""Navigation target helpers."""

from urllib.parse import urlencode
from uuid import UUID

import httpx

_TIMELINE_PREFIX = "/t/"


def timeline_path(couple_id: UUID) -> str:
    """Return the path addressing a couple's timeline."""
    return f"{_TIMELINE_PREFIX}{couple_id}"


def is_timeline_path(path: str | None) -> bool:
    """Return whether a path points into the timeline section."""
    return path is not None and path.startswith(_TIMELINE_PREFIX)


def parse_timeline_target(path: str | None) -> UUID | None:
    """Return the couple id a path targets, if it is a timeline path."""
    if not path or not path.startswith(_TIMELINE_PREFIX):
        return None
    raw = path[len(_TIMELINE_PREFIX) :].split("/", 1)[0].split("?", 1)[0]
    try:
        return UUID(raw)
    except ValueError:
        return None


def safe_next_path(raw: str | None) -> str:
    """Return a same-site path for a ``next`` parameter, defaulting to ``/``."""
    if not raw:
        return "/"
    cleaned = raw.strip()
    if not cleaned.startswith("/") or cleaned.startswith("//") or "\\" in cleaned:
        return "/"
    return cleaned


def callback_redirect_url(site_url: str, next_path: str) -> str:
    """Build the magic link redirect back to the auth callback."""
    query = urlencode({"next": safe_next_path(next_path)}, safe="/")
    return f"{site_url.rstrip('/')}/auth/callback?{query}"


def query_param(url: str | None, name: str) -> str | None:
    """Return a query parameter from a URL, if present and non-empty."""
    if not url:
        return None
    value = httpx.URL(url).params.get(name)
    return value or None
