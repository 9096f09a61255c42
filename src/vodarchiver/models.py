"""
Data model for VOD Archiver.
Dataclasses mirroring the persisted JSON documents consumed by the archive site.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union


TWITCH_DURATION_RE = re.compile(r'^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$', re.IGNORECASE)
ISO8601_DURATION_RE = re.compile(
    r'^P(?:([\d.]+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$', re.IGNORECASE
)

THUMBNAIL_WIDTH = 640
THUMBNAIL_HEIGHT = 360


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def timestamp_ms(value: Any) -> int:
    """Milliseconds since epoch for a timestamp string, 0 when unparseable."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return 0
    return int(parsed.timestamp() * 1000)


def parse_twitch_duration(text: Any) -> int:
    """Convert Twitch compact duration (``1h2m3s``) to seconds."""
    match = TWITCH_DURATION_RE.match(str(text or '').strip())
    if not match:
        return 0
    hours, minutes, seconds = (int(part or 0) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def parse_iso8601_duration(text: Any) -> int:
    """Convert a YouTube ISO-8601 duration (``PT1H2M3S``) to seconds."""
    match = ISO8601_DURATION_RE.match(str(text or '').strip())
    if not match:
        return 0
    days = float(match.group(1) or 0)
    hours, minutes, seconds = (int(part or 0) for part in match.groups()[1:])
    return round(days * 86400 + hours * 3600 + minutes * 60 + seconds)


def format_duration(total_seconds: float) -> str:
    """Format seconds as ``HH:MM:SS``."""
    total_seconds = max(0, int(total_seconds))
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def normalize_thumbnail_url(template: Optional[str]) -> str:
    """Fill Twitch ``%{width}``/``%{height}`` placeholders."""
    return (
        str(template or '')
        .replace('%{width}', str(THUMBNAIL_WIDTH))
        .replace('%{height}', str(THUMBNAIL_HEIGHT))
    )


@dataclass
class RecordingFile:
    """A local video file found by the scanner."""
    path: str
    name: str
    size: int
    modified_at_ms: float


@dataclass
class RemoteVod:
    """An archived broadcast listed by the Twitch Helix API."""
    id: str
    title: str
    duration: str                  # compact form, e.g. "1h2m3s"
    thumbnail_url: str             # template with %{width}/%{height}
    created_at: str
    stream_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> 'RemoteVod':
        """Create from a Helix ``/videos`` entry."""
        return cls(
            id=str(data['id']),
            title=data.get('title') or '',
            duration=data.get('duration') or '',
            thumbnail_url=data.get('thumbnail_url') or '',
            created_at=data.get('created_at') or '',
            stream_id=str(data['stream_id']) if data.get('stream_id') else None,
        )

    @property
    def created_at_ms(self) -> int:
        return timestamp_ms(self.created_at)

    @property
    def duration_seconds(self) -> int:
        return parse_twitch_duration(self.duration)

    @property
    def thumbnail(self) -> str:
        return normalize_thumbnail_url(self.thumbnail_url)


@dataclass
class VideoPart:
    """One uploaded YouTube video belonging to an archived VOD."""
    id: str
    part_number: int
    duration_seconds: int = 0
    thumbnail_url: Optional[str] = None
    kind: str = "vod"

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'type': self.kind,
            'duration': self.duration_seconds,
            'part': self.part_number,
            'thumbnail_url': self.thumbnail_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'VideoPart':
        return cls(
            id=str(data.get('id') or ''),
            part_number=int(data.get('part') or 0),
            duration_seconds=int(data.get('duration') or 0),
            thumbnail_url=data.get('thumbnail_url'),
            kind=data.get('type') or 'vod',
        )


@dataclass
class Chapter:
    """A game/category chapter taken from the chat export."""
    game_id: str
    start: int
    end: int
    name: str
    image: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'gameId': self.game_id,
            'start': self.start,
            'end': self.end,
            'name': self.name,
            'image': self.image,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Chapter':
        return cls(
            game_id=str(data.get('gameId') or ''),
            start=int(data.get('start') or 0),
            end=int(data.get('end') or 0),
            name=data.get('name') or '',
            image=data.get('image'),
        )


# Keys owned by ArchiveRecord; anything else is carried through untouched
_RECORD_KEYS = {
    'id', 'title', 'duration', 'thumbnail_url', 'youtube', 'stream_id',
    'platform', 'chapters', 'createdAt', 'updatedAt',
}


@dataclass
class ArchiveRecord:
    """Public archive entry for one Twitch VOD."""
    id: str
    title: str
    duration: str = "00:00:00"
    thumbnail_url: str = ""
    parts: List[VideoPart] = field(default_factory=list)
    stream_id: Optional[str] = None
    chapters: List[Chapter] = field(default_factory=list)
    platform: str = "twitch"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    # Fields written by other tools (admin flags etc.)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def vod_parts(self) -> List[VideoPart]:
        """Uploaded VOD parts sorted by part number."""
        return sorted(
            (part for part in self.parts if part.kind == 'vod' and part.id),
            key=lambda part: part.part_number,
        )

    @property
    def max_part_number(self) -> int:
        return max((part.part_number for part in self.parts if part.kind == 'vod'), default=0)

    def touch(self) -> None:
        self.updated_at = utc_now_iso()

    def upsert_part(self, part: VideoPart) -> None:
        """Insert a part, replacing any existing part with the same number."""
        kept = [
            existing for existing in self.parts
            if not (existing.kind == part.kind and existing.part_number == part.part_number)
        ]
        kept.append(part)
        kept.sort(key=lambda item: item.part_number)
        self.parts = kept
        self.touch()

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update(self.owned_fields())
        return data

    def owned_fields(self) -> dict:
        """Keys this pipeline maintains; ``extra`` belongs to other tools."""
        return {
            'id': self.id,
            'title': self.title,
            'duration': self.duration,
            'thumbnail_url': self.thumbnail_url,
            'youtube': [part.to_dict() for part in self.parts],
            'stream_id': self.stream_id,
            'platform': self.platform,
            'chapters': [chapter.to_dict() for chapter in self.chapters],
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ArchiveRecord':
        return cls(
            id=str(data['id']),
            title=data.get('title') or '',
            duration=data.get('duration') or '00:00:00',
            thumbnail_url=data.get('thumbnail_url') or '',
            parts=[VideoPart.from_dict(item) for item in data.get('youtube') or [] if isinstance(item, dict)],
            stream_id=data.get('stream_id'),
            chapters=[Chapter.from_dict(item) for item in data.get('chapters') or [] if isinstance(item, dict)],
            platform=data.get('platform') or 'twitch',
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
            extra={key: value for key, value in data.items() if key not in _RECORD_KEYS},
        )


@dataclass(frozen=True)
class TextFragment:
    """Plain text chat fragment."""
    text: str

    def to_dict(self) -> dict:
        return {'text': self.text}


@dataclass(frozen=True)
class EmoteFragment:
    """Chat fragment rendered as a Twitch emote."""
    text: str
    emote_id: str

    def to_dict(self) -> dict:
        return {'text': self.text, 'emote': {'emoteID': self.emote_id}}


Fragment = Union[TextFragment, EmoteFragment]


@dataclass
class NormalizedComment:
    """One chat message in the published replay format."""
    id: str
    created_at: Optional[str]
    offset_seconds: float
    display_name: str
    badges: List[Any] = field(default_factory=list)
    color: Optional[str] = None
    fragments: List[Fragment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'created_at': self.created_at,
            'content_offset_seconds': self.offset_seconds,
            'display_name': self.display_name,
            'user_badges': self.badges,
            'user_color': self.color,
            'message': [fragment.to_dict() for fragment in self.fragments],
        }


@dataclass(frozen=True)
class Emote:
    """Third-party emote from a live catalog."""
    id: str
    code: str

    def to_dict(self) -> dict:
        return {'id': self.id, 'code': self.code, 'name': self.code}


@dataclass(frozen=True)
class EmbeddedEmote:
    """Third-party emote carried inside the chat export."""
    id: str
    code: str
    data: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    is_zero_width: bool = False

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'code': self.code,
            'name': self.code,
            'data': self.data,
            'width': self.width,
            'height': self.height,
            'isZeroWidth': self.is_zero_width,
        }


@dataclass
class EmoteCatalogs:
    """Live emote catalogs for a channel."""
    ffz: List[Emote] = field(default_factory=list)
    bttv: List[Emote] = field(default_factory=list)
    seventv: List[Emote] = field(default_factory=list)


@dataclass
class EmoteBundle:
    """Per-VOD emote document."""
    vod_id: str
    catalogs: EmoteCatalogs
    embedded: List[EmbeddedEmote] = field(default_factory=list)
    generated_at: str = field(default_factory=utc_now_iso)
    source: str = "local-archive-pipeline"

    def to_dict(self) -> dict:
        return {
            'source': self.source,
            'twitchVodId': self.vod_id,
            'generatedAt': self.generated_at,
            'ffz_emotes': [emote.to_dict() for emote in self.catalogs.ffz],
            'bttv_emotes': [emote.to_dict() for emote in self.catalogs.bttv],
            '7tv_emotes': [emote.to_dict() for emote in self.catalogs.seventv],
            'embedded_emotes': [emote.to_dict() for emote in self.embedded],
        }
