"""
YouTube title/description templates for archived VOD parts.

Bump METADATA_TEMPLATE_VERSION whenever the output of build_title or
build_description changes; already archived VODs are then re-synced.
"""

import re
from typing import Iterable, Optional

from .models import VideoPart, parse_timestamp


METADATA_TEMPLATE_VERSION = 1
MAX_TITLE_LENGTH = 100
ELLIPSIS = "..."


def sanitize_title(title: Optional[str]) -> str:
    """Strip characters YouTube rejects and collapse whitespace."""
    text = re.sub(r'[<>]', '', str(title or ''))
    return re.sub(r'\s+', ' ', text).strip()


def format_date_label(value: Optional[str]) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return "unknown-date"
    return parsed.strftime('%Y-%m-%d')


def format_date_description(value: Optional[str]) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return "unknown"
    return parsed.strftime('%Y-%m-%d %H:%M:%S UTC')


def truncate_title(title: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    normalized = str(title or '').strip()
    if len(normalized) <= max_length:
        return normalized
    return f"{normalized[:max_length - len(ELLIPSIS)].rstrip()}{ELLIPSIS}"


def build_title(
    stream_title: Optional[str],
    stream_date: Optional[str],
    part_number: int = 1,
    total_parts: int = 1
) -> str:
    """
    Title for one uploaded part.

    Multi-part titles end with `` - <date> - Part N``; only the stream
    title in front of it is shortened.
    """
    safe_title = sanitize_title(stream_title) or "Stream"
    date_label = format_date_label(stream_date)

    if total_parts > 1:
        suffix = f" - {date_label} - Part {part_number}"
        max_base = max(len(ELLIPSIS) + 1, MAX_TITLE_LENGTH - len(suffix))
        base = truncate_title(safe_title, max_base)
        return f"{base}{suffix}"

    return truncate_title(f"{safe_title} - {date_label}")


def archive_vod_url(site_url: str, vod_id: str) -> str:
    return f"{site_url.rstrip('/')}/#/youtube/{vod_id}"


def twitch_vod_url(vod_id: str) -> str:
    return f"https://www.twitch.tv/videos/{vod_id}"


def youtube_watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def build_description(
    site_url: str,
    vod_id: str,
    stream_title: Optional[str],
    stream_date: Optional[str],
    part_number: int = 1,
    total_parts: int = 1,
    parts: Iterable[VideoPart] = ()
) -> str:
    """Description with chat replay/original links and the part list."""
    lines = [
        f"Chat Replay: {archive_vod_url(site_url, vod_id)}",
        f"Original VOD: {twitch_vod_url(vod_id)}",
        f"Stream Title: {sanitize_title(stream_title) or f'Twitch VOD {vod_id}'}",
        f"Stream Date: {format_date_description(stream_date)}",
    ]

    if total_parts > 1:
        lines.append(f"Part {part_number} of {total_parts}")
        uploaded = sorted(parts, key=lambda part: part.part_number)
        if len(uploaded) > 1:
            lines.append("")
            lines.append("Parts:")
            for part in uploaded:
                lines.append(f"PART {part.part_number}: {youtube_watch_url(part.id)}")

    return "\n".join(lines).strip()
