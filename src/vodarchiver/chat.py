"""
Chat replay retrieval and normalization.

Raw exports come from TwitchDownloaderCLI (``chatdownload``) and are
converted into the comment documents served by the archive site.
"""

import asyncio
import json
import shutil
from pathlib import Path
from typing import Any, List, Optional

import aiofiles

from .errors import ChatExportError
from .logger import get_logger, get_vod_logger
from .models import (
    Chapter,
    EmbeddedEmote,
    EmoteFragment,
    Fragment,
    NormalizedComment,
    TextFragment,
    utc_now_iso,
)


class ChatDownloader:
    """Runs the external chat export tool for one VOD at a time."""

    def __init__(self, executable: str, threads: int = 8, timeout_seconds: int = 3600):
        self.executable = executable
        self.threads = threads
        self.timeout_seconds = timeout_seconds
        self._logger = get_logger('chat')

    def _command(self, vod_id: str, output_path: Path) -> List[str]:
        return [
            self.executable,
            'chatdownload',
            '--id', str(vod_id),
            '--output', str(output_path),
            '--embed-images', 'false',
            '--threads', str(self.threads),
            '--collision', 'overwrite',
        ]

    async def download(self, vod_id: str, output_path: Path) -> Path:
        """
        Export the chat of a VOD to a JSON file.

        Raises:
            ChatExportError: If the tool is missing, fails, times out or
                produces no output.
        """
        logger = get_vod_logger(vod_id, 'chat')
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if not Path(self.executable).exists() and shutil.which(self.executable) is None:
            raise ChatExportError(vod_id, f"chat downloader not found at {self.executable}")

        logger.info("Downloading chat replay")
        self._logger.debug(f"Running {' '.join(self._command(vod_id, output_path))}")
        try:
            process = await asyncio.create_subprocess_exec(
                *self._command(vod_id, output_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise ChatExportError(vod_id, f"cannot start chat downloader: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ChatExportError(vod_id, f"chat download timed out after {self.timeout_seconds}s")

        if process.returncode != 0:
            tail = stderr.decode(errors='replace').strip()[-500:]
            raise ChatExportError(vod_id, f"chat downloader exited with {process.returncode}: {tail}")

        if not output_path.exists():
            raise ChatExportError(vod_id, "chat downloader produced no output")

        return output_path


async def load_raw_chat(vod_id: str, path: Path) -> dict:
    """
    Read a raw chat export.

    Raises:
        ChatExportError: If the file is unreadable or not a JSON object.
    """
    try:
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            data = json.loads(await f.read())
    except (OSError, ValueError) as e:
        raise ChatExportError(vod_id, f"malformed chat export: {e}") from e

    if not isinstance(data, dict):
        raise ChatExportError(vod_id, "malformed chat export: expected a JSON object")
    return data


def normalize_fragment(raw: Any) -> Fragment:
    """Map a raw message fragment onto the text/emote variant."""
    if not isinstance(raw, dict):
        return TextFragment(text=str(raw or ''))

    text = raw.get('text')
    text = '' if text is None else str(text)

    emote = raw.get('emote')
    if isinstance(emote, dict) and emote.get('emoteID'):
        return EmoteFragment(text=text, emote_id=str(emote['emoteID']))

    # Older exports use the v5 API shape
    emoticon = raw.get('emoticon')
    if isinstance(emoticon, dict) and emoticon.get('emoticon_id'):
        return EmoteFragment(text=text, emote_id=str(emoticon['emoticon_id']))

    return TextFragment(text=text)


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def normalize_comments(raw_chat: dict) -> List[NormalizedComment]:
    """
    Convert raw export comments to NormalizedComment, sorted by offset.

    Missing ids become ``comment-<index>`` (index in the raw list), so the
    result is deterministic for the same input.
    """
    raw_comments = raw_chat.get('comments')
    if not isinstance(raw_comments, list):
        return []

    comments = []
    for index, raw in enumerate(raw_comments):
        if not isinstance(raw, dict):
            continue

        message = raw.get('message') if isinstance(raw.get('message'), dict) else {}
        commenter = raw.get('commenter') if isinstance(raw.get('commenter'), dict) else {}

        raw_fragments = message.get('fragments')
        if isinstance(raw_fragments, list):
            fragments = [normalize_fragment(item) for item in raw_fragments]
        else:
            body = message.get('body')
            fragments = [TextFragment(text='' if body is None else str(body))]

        comments.append(NormalizedComment(
            id=str(raw.get('_id') or f"comment-{index}"),
            created_at=raw.get('created_at') or None,
            offset_seconds=_as_float(raw.get('content_offset_seconds')),
            display_name=commenter.get('display_name') or commenter.get('name') or 'unknown',
            badges=message.get('user_badges') or [],
            color=message.get('user_color') or None,
            fragments=fragments,
        ))

    # sort() is stable: equal offsets keep export order
    comments.sort(key=lambda comment: comment.offset_seconds)
    return comments


def extract_chapters(raw_chat: dict, fallback_image: Optional[str] = None) -> List[Chapter]:
    """Chapters from ``video.chapters`` of the export (times in seconds)."""
    video = raw_chat.get('video') if isinstance(raw_chat.get('video'), dict) else {}
    raw_chapters = video.get('chapters')
    if not isinstance(raw_chapters, list):
        return []

    chapters = []
    for index, raw in enumerate(raw_chapters):
        if not isinstance(raw, dict):
            continue
        chapters.append(Chapter(
            game_id=str(raw.get('gameId') or index),
            start=int(_as_float(raw.get('startMilliseconds')) // 1000),
            end=int(_as_float(raw.get('lengthMilliseconds')) // 1000),
            name=raw.get('gameDisplayName') or raw.get('description') or f"Chapter {index + 1}",
            image=raw.get('gameBoxArtUrl') or fallback_image,
        ))
    return chapters


def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(float(value or 0))
    except (TypeError, ValueError):
        return None
    return number or None


def extract_embedded_emotes(raw_chat: dict) -> List[EmbeddedEmote]:
    """
    Third-party emotes embedded in the export, deduplicated by code
    (case-insensitive, last occurrence wins).
    """
    embedded_data = raw_chat.get('embeddedData') if isinstance(raw_chat.get('embeddedData'), dict) else {}
    raw_emotes = embedded_data.get('thirdParty')
    if not isinstance(raw_emotes, list):
        return []

    deduped = {}
    for raw in raw_emotes:
        if not isinstance(raw, dict):
            continue
        code = str(raw.get('name') or '').strip()
        emote_id = str(raw.get('id') or '').strip()
        if not code or not emote_id:
            continue

        deduped[code.lower()] = EmbeddedEmote(
            id=emote_id,
            code=code,
            data=raw['data'] if isinstance(raw.get('data'), str) else None,
            width=_positive_int(raw.get('width')),
            height=_positive_int(raw.get('height')),
            is_zero_width=bool(raw.get('isZeroWidth')),
        )

    return list(deduped.values())


def build_comments_document(vod_id: str, comments: List[NormalizedComment]) -> dict:
    """Comments document as published next to the archive."""
    return {
        'source': 'twitchdownloader',
        'twitchVodId': str(vod_id),
        'generatedAt': utc_now_iso(),
        'comments': [comment.to_dict() for comment in comments],
    }
