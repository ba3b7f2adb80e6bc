"""Content URL canonicalization and per-campaign link collection.

``normalize_url`` is a pure, idempotent function: the canonical form is used
both as the deduplication key and as the URL handed to the scrapers.  Only
query segments that are tracking parameters are removed; every other segment
is kept byte-for-byte so the remaining query is never re-encoded.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import structlog

from analytics_refresh.domain.models import ContentLink
from analytics_refresh.domain.types import PLATFORM_ORDER, Platform, parse_platform

logger = structlog.get_logger()

_TRACKING_EXACT = frozenset({"si"})
_TRACKING_PREFIX = "utm_"

_YOUTUBE_WATCH_BASE = "https://www.youtube.com/watch"
_YOUTUBE_HOSTS = frozenset({"youtube.com", "www.youtube.com", "m.youtube.com"})


def _is_tracking_param(segment: str) -> bool:
    key = segment.split("=", 1)[0].lower()
    return key in _TRACKING_EXACT or key.startswith(_TRACKING_PREFIX)


def strip_tracking_params(query: str) -> str:
    """Remove tracking parameters (``utm_*``, ``si``) from a raw query string.

    Args:
        query: The raw query string, without the leading ``?``.

    Returns:
        The query with tracking segments removed and all others untouched.
    """
    if not query:
        return ""
    return "&".join(
        segment for segment in query.split("&") if segment and not _is_tracking_param(segment)
    )


def _query_value(query: str, name: str) -> str | None:
    for segment in query.split("&"):
        key, _, value = segment.partition("=")
        if key == name and value:
            return value
    return None


def _without_param(query: str, name: str) -> str:
    return "&".join(
        segment for segment in query.split("&") if segment and segment.partition("=")[0] != name
    )


def _youtube_video_id(host: str, path: str, query: str) -> str | None:
    segments = [s for s in path.split("/") if s]
    if host == "youtu.be":
        return segments[0] if segments else None
    if host in _YOUTUBE_HOSTS:
        if len(segments) >= 2 and segments[0] == "shorts":
            return segments[1]
        if segments == ["watch"]:
            return _query_value(query, "v")
    return None


def _normalize_youtube(scheme: str, host: str, path: str, query: str, fragment: str) -> str:
    video_id = _youtube_video_id(host, path, query)
    if video_id is None:
        return urlunsplit((scheme, host, path, query, fragment))
    # Remaining non-tracking parameters (e.g. ``t``) follow the video ID.
    rest = _without_param(query, "v")
    canonical = f"{_YOUTUBE_WATCH_BASE}?v={video_id}"
    return f"{canonical}&{rest}" if rest else canonical


def _normalize_instagram(scheme: str, host: str, path: str, query: str) -> str:
    path = path.rstrip("/") + "/"
    return urlunsplit((scheme, host, path, query, ""))


def _normalize_tiktok(scheme: str, host: str, path: str) -> str:
    return urlunsplit((scheme, host, path.rstrip("/"), "", ""))


def normalize_url(url: str, platform: Platform | str) -> str:
    """Return the canonical form of a content URL for *platform*.

    Rules:
    - Tracking parameters (``utm_*``, ``si``) are stripped for every known
      platform.
    - YouTube: ``youtu.be/<id>``, ``/shorts/<id>`` and ``/watch?v=<id>`` become
      ``https://www.youtube.com/watch?v=<id>``; the ID keeps its case.
    - Instagram: exactly one trailing slash, no fragment.
    - TikTok: no query string, no trailing slash.
    - Unknown platform: the trimmed input is returned unchanged.

    Args:
        url: The raw URL string.
        platform: A :class:`Platform` or platform tag.

    Returns:
        The canonical URL.
    """
    trimmed = url.strip()
    resolved = platform if isinstance(platform, Platform) else parse_platform(platform)
    if resolved is None or not trimmed:
        return trimmed

    candidate = trimmed if "://" in trimmed else f"https://{trimmed}"
    parts = urlsplit(candidate)
    scheme = parts.scheme.lower()
    host = parts.netloc.lower()
    query = strip_tracking_params(parts.query)

    if resolved is Platform.YOUTUBE:
        return _normalize_youtube(scheme, host, parts.path, query, parts.fragment)
    if resolved is Platform.INSTAGRAM:
        return _normalize_instagram(scheme, host, parts.path, query)
    return _normalize_tiktok(scheme, host, parts.path)


def is_trackable_url(url: str, platform: Platform) -> bool:
    """Return True if *url* looks like a scrapeable content link for *platform*.

    Only individual posts and videos are tracked; profile or channel links are
    ignored.
    """
    clean = url.strip().lower()
    if platform is Platform.YOUTUBE:
        return (
            "youtube.com/watch" in clean
            or "youtu.be/" in clean
            or "youtube.com/shorts/" in clean
        )
    if platform is Platform.INSTAGRAM:
        return (
            "instagram.com/p/" in clean
            or "instagram.com/reel/" in clean
            or "instagram.com/tv/" in clean
        )
    if platform is Platform.TIKTOK:
        return "tiktok.com/@" in clean and "/video/" in clean
    return False


def collect_links(content_url_maps: Iterable[Mapping[str, Any]]) -> list[ContentLink]:
    """Collect, normalize and deduplicate a campaign's content links.

    Creators are walked in order and, within a creator, platforms in
    ``youtube, instagram, tiktok`` order.  Links are deduplicated on
    ``(platform, canonical_url)`` keeping the first occurrence, so the same
    URL under two platform tags yields two links.

    Args:
        content_url_maps: One ``{platform: [url, ...]}`` mapping per creator.

    Returns:
        The campaign's links in discovery order.
    """
    links: list[ContentLink] = []
    seen: set[tuple[Platform, str]] = set()

    for urls_by_platform in content_url_maps:
        if not isinstance(urls_by_platform, Mapping):
            continue
        for platform in PLATFORM_ORDER:
            urls = urls_by_platform.get(platform.value)
            if not isinstance(urls, list):
                continue
            for url in urls:
                if not isinstance(url, str) or not url.strip():
                    continue
                if not is_trackable_url(url, platform):
                    logger.debug("Ignoring untrackable content URL", platform=platform, url=url)
                    continue
                link = ContentLink(
                    url=url.strip(),
                    platform=platform,
                    canonical_url=normalize_url(url, platform),
                )
                if link.dedup_key in seen:
                    continue
                seen.add(link.dedup_key)
                links.append(link)

    return links
