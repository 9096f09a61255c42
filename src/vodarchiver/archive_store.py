"""
Archive record store.

Owns the published ``vods.json`` plus the per-VOD comment and emote
documents. Records are merged into the on-disk file on save, so entries
and fields edited by hand (or by the admin API) in the meantime survive.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from .errors import ConfigurationError
from .logger import get_logger
from .models import (
    ArchiveRecord,
    Chapter,
    EmoteBundle,
    RemoteVod,
    format_duration,
    timestamp_ms,
)


async def read_json(path: Path, fallback: Any = None) -> Any:
    """Read a JSON document, returning ``fallback`` when the file is missing."""
    if not path.exists():
        return fallback
    async with aiofiles.open(path, 'r', encoding='utf-8') as f:
        text = await f.read()
    return json.loads(text) if text.strip() else fallback


async def write_json(path: Path, value: Any) -> None:
    """Write a JSON document atomically (tmp file + replace)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = path.with_suffix(path.suffix + ".tmp")
    async with aiofiles.open(tmp_file, 'w', encoding='utf-8') as f:
        await f.write(json.dumps(value, indent=2, ensure_ascii=False) + "\n")
    tmp_file.replace(path)


def sort_records(records: List[dict]) -> List[dict]:
    """Newest first by ``createdAt``."""
    return sorted(records, key=lambda record: timestamp_ms(record.get('createdAt')), reverse=True)


class ArchiveRecordStore:
    """Persistent collection of ArchiveRecord documents keyed by VOD id."""

    def __init__(self, vods_path: str, comments_dir: str, emotes_dir: str):
        self.vods_path = Path(vods_path)
        self.comments_dir = Path(comments_dir)
        self.emotes_dir = Path(emotes_dir)
        self._logger = get_logger('archive')
        self._lock = asyncio.Lock()

        self._raw: Dict[str, dict] = {}
        # Parsed records, memoized by id; dropped when the raw entry changes
        self._cache: Dict[str, ArchiveRecord] = {}
        # Owned fields of records changed since the last save, by id
        self._dirty: Dict[str, dict] = {}

    async def _read_vods(self) -> List[dict]:
        try:
            data = await read_json(self.vods_path, [])
        except ValueError as e:
            raise ConfigurationError(f"Corrupted archive file {self.vods_path}: {e}") from e
        if not isinstance(data, list):
            raise ConfigurationError(f"Archive file {self.vods_path} must contain a JSON array")
        return [item for item in data if isinstance(item, dict) and item.get('id') is not None]

    async def load(self) -> None:
        """Load archive records from disk."""
        async with self._lock:
            self._raw = {str(item['id']): item for item in await self._read_vods()}
            self._cache.clear()
            self._dirty.clear()
        self._logger.info(f"Loaded {len(self._raw)} archive records")

    def get(self, vod_id: str) -> Optional[ArchiveRecord]:
        vod_id = str(vod_id)
        if vod_id not in self._raw:
            return None
        if vod_id not in self._cache:
            self._cache[vod_id] = ArchiveRecord.from_dict(self._raw[vod_id])
        return self._cache[vod_id]

    def records(self) -> List[ArchiveRecord]:
        return [self.get(vod_id) for vod_id in self._raw]

    def ids(self) -> List[str]:
        return list(self._raw)

    def upsert(self, record: ArchiveRecord) -> None:
        """Stage a record for the next save."""
        self._raw[record.id] = record.to_dict()
        self._cache.pop(record.id, None)
        self._dirty[record.id] = record.owned_fields()

    def ensure_record(
        self,
        vod: RemoteVod,
        chapters: Optional[List[Chapter]] = None
    ) -> ArchiveRecord:
        """
        Create the record for a VOD or refresh its Twitch-derived fields.

        Uploaded parts, ``createdAt`` and foreign fields of an existing
        record are kept.
        """
        thumbnail = vod.thumbnail
        record = self.get(vod.id)
        if record is None:
            record = ArchiveRecord(
                id=vod.id,
                title=vod.title or f"Twitch VOD {vod.id}",
                created_at=vod.created_at,
            )

        record.title = vod.title or record.title or f"Twitch VOD {vod.id}"
        record.duration = format_duration(vod.duration_seconds)
        record.thumbnail_url = thumbnail
        record.stream_id = vod.stream_id
        record.platform = "twitch"
        if chapters is not None:
            record.chapters = chapters
        if not record.created_at:
            record.created_at = vod.created_at
        record.touch()
        return record

    async def save(self) -> bool:
        """
        Merge staged records into the on-disk archive.

        Returns:
            True if anything was written.
        """
        async with self._lock:
            if not self._dirty:
                return False

            merged = {str(item['id']): item for item in await self._read_vods()}
            for vod_id, owned in self._dirty.items():
                # Foreign keys come from disk, owned keys from this run
                base = merged.get(vod_id) or self._raw[vod_id]
                merged[vod_id] = {**base, **owned}

            await write_json(self.vods_path, sort_records(list(merged.values())))
            self._raw = merged
            self._cache.clear()
            self._logger.debug(f"Saved archive ({len(self._dirty)} records changed)")
            self._dirty.clear()
            return True

    def comments_path(self, vod_id: str) -> Path:
        return self.comments_dir / f"{vod_id}.json"

    def emotes_path(self, vod_id: str) -> Path:
        return self.emotes_dir / f"{vod_id}.json"

    def has_emotes(self, vod_id: str) -> bool:
        return self.emotes_path(vod_id).exists()

    def missing_emote_ids(self) -> List[str]:
        """Archived VODs without an emote document."""
        return [vod_id for vod_id in self._raw if not self.has_emotes(vod_id)]

    async def write_comments(self, vod_id: str, document: dict) -> Path:
        path = self.comments_path(vod_id)
        await write_json(path, document)
        return path

    async def write_emotes(self, bundle: EmoteBundle) -> Path:
        path = self.emotes_path(bundle.vod_id)
        await write_json(path, bundle.to_dict())
        return path
