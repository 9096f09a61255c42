"""
State Manager for VOD Archiver.
JSON-based store tracking processed recordings and per-VOD sync progress.
"""

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set

import aiofiles

from .errors import ConfigurationError
from .logger import get_logger
from .models import utc_now_iso


class FileStatus(Enum):
    """Processing status of a local recording."""
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass
class ProcessedFile:
    """Checkpoint for one uploaded recording."""
    status: FileStatus
    remote_vod_id: Optional[str] = None
    video_part_id: Optional[str] = None
    part_number: Optional[int] = None
    processed_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'status': self.status.value,
            'remote_vod_id': self.remote_vod_id,
            'video_part_id': self.video_part_id,
            'part_number': self.part_number,
            'processed_at': self.processed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ProcessedFile':
        # camelCase keys come from the previous script version
        try:
            status = FileStatus(data.get('status', 'pending'))
        except ValueError:
            status = FileStatus.PENDING
        part = data.get('part_number', data.get('part'))
        return cls(
            status=status,
            remote_vod_id=data.get('remote_vod_id') or data.get('twitchVodId'),
            video_part_id=data.get('video_part_id') or data.get('youtubeVideoId'),
            part_number=int(part) if part is not None else None,
            processed_at=data.get('processed_at') or data.get('processedAt'),
        )


@dataclass
class VodProgress:
    """Per-VOD metadata/emote progress."""
    metadata_version: int = 0
    metadata_synced_at: Optional[str] = None
    emotes_backfilled_at: Optional[str] = None
    extra: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            'metadata_version': self.metadata_version,
            'metadata_synced_at': self.metadata_synced_at,
            'emotes_backfilled_at': self.emotes_backfilled_at,
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'VodProgress':
        known = {
            'metadata_version', 'metadata_synced_at', 'emotes_backfilled_at',
            'metadataVersion', 'metadataSyncedAt', 'emotesBackfilledAt',
        }
        version = data.get('metadata_version', data.get('metadataVersion', 0))
        try:
            version = int(version or 0)
        except (TypeError, ValueError):
            version = 0
        return cls(
            metadata_version=version,
            metadata_synced_at=data.get('metadata_synced_at') or data.get('metadataSyncedAt'),
            emotes_backfilled_at=data.get('emotes_backfilled_at') or data.get('emotesBackfilledAt'),
            extra={key: value for key, value in data.items() if key not in known},
        )


class PipelineStateStore:
    """
    Persistent pipeline state.

    Features:
    - JSON-based storage with atomic replace
    - Save after every checkpoint
    - Re-read and merge on save, so entries written by other tools survive
    - Async-safe with an asyncio lock
    """

    def __init__(self, state_file: str = "./data/pipeline-state.json"):
        """
        Initialize state store.

        Args:
            state_file: Path to JSON state file.
        """
        self.state_file = Path(state_file)
        self._logger = get_logger('state')
        self._lock = asyncio.Lock()

        self._files: Dict[str, ProcessedFile] = {}
        self._vods: Dict[str, VodProgress] = {}

        # Keys changed since the last save
        self._dirty_files: Set[str] = set()
        self._dirty_vods: Set[str] = set()

    async def _read_disk(self) -> dict:
        if not self.state_file.exists():
            return {}
        async with aiofiles.open(self.state_file, 'r', encoding='utf-8') as f:
            text = await f.read()
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        return data

    async def load(self) -> None:
        """
        Load state from file.

        Raises:
            ConfigurationError: If the file exists but is not valid JSON.
        """
        async with self._lock:
            if not self.state_file.exists():
                self._logger.info("No state file found, starting fresh")
                return

            try:
                data = await self._read_disk()
            except ValueError as e:
                raise ConfigurationError(f"Corrupted state file {self.state_file}: {e}") from e
            self._files = {
                path: ProcessedFile.from_dict(entry)
                for path, entry in (data.get('processedFiles') or {}).items()
                if isinstance(entry, dict)
            }
            self._vods = {
                str(vod_id): VodProgress.from_dict(entry)
                for vod_id, entry in (data.get('processedVodIds') or {}).items()
                if isinstance(entry, dict)
            }
            self._dirty_files.clear()
            self._dirty_vods.clear()

            self._logger.info(
                f"Loaded state: {len(self._files)} files, "
                f"{len(self._vods)} VODs"
            )

    async def _save_unlocked(self) -> None:
        """Merge pending changes into the on-disk document (caller must hold lock)."""
        dirty_files, dirty_vods = self._dirty_files, self._dirty_vods
        try:
            on_disk = await self._read_disk()
        except ValueError as e:
            self._logger.warning(f"State file unreadable, rewriting it from memory: {e}")
            on_disk = {}
        if not on_disk:
            # Missing, emptied or corrupt: everything loaded at startup must be kept
            dirty_files, dirty_vods = set(self._files), set(self._vods)

        files = on_disk.get('processedFiles')
        files = dict(files) if isinstance(files, dict) else {}
        vods = on_disk.get('processedVodIds')
        vods = dict(vods) if isinstance(vods, dict) else {}
        for path in dirty_files:
            files[path] = self._files[path].to_dict()
        for vod_id in dirty_vods:
            vods[vod_id] = self._vods[vod_id].to_dict()

        data = {
            **on_disk,
            'processedFiles': files,
            'processedVodIds': vods,
            'last_updated': utc_now_iso(),
        }

        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.state_file.with_suffix(self.state_file.suffix + ".tmp")
        async with aiofiles.open(tmp_file, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(data, indent=2, ensure_ascii=False) + "\n")
        tmp_file.replace(self.state_file)

        self._dirty_files.clear()
        self._dirty_vods.clear()

    async def save(self) -> None:
        """Save state to file."""
        async with self._lock:
            await self._save_unlocked()

    def is_completed(self, path: str) -> bool:
        entry = self._files.get(path)
        return entry is not None and entry.status == FileStatus.COMPLETED

    def completed_paths(self) -> List[str]:
        return [path for path in self._files if self.is_completed(path)]

    def get_file(self, path: str) -> Optional[ProcessedFile]:
        return self._files.get(path)

    def get_vod(self, vod_id: str) -> VodProgress:
        return self._vods.get(str(vod_id)) or VodProgress()

    def metadata_version(self, vod_id: str) -> int:
        return self.get_vod(vod_id).metadata_version

    async def mark_file_completed(
        self,
        path: str,
        remote_vod_id: str,
        video_part_id: str,
        part_number: int
    ) -> None:
        """Record an uploaded recording and persist immediately."""
        async with self._lock:
            self._files[path] = ProcessedFile(
                status=FileStatus.COMPLETED,
                remote_vod_id=str(remote_vod_id),
                video_part_id=str(video_part_id),
                part_number=int(part_number),
                processed_at=utc_now_iso(),
            )
            self._dirty_files.add(path)
            await self._save_unlocked()

    async def mark_metadata_synced(self, vod_id: str, version: int) -> None:
        """Record the template version pushed for a VOD and persist."""
        async with self._lock:
            vod_id = str(vod_id)
            progress = self._vods.setdefault(vod_id, VodProgress())
            progress.metadata_version = version
            progress.metadata_synced_at = utc_now_iso()
            self._dirty_vods.add(vod_id)
            await self._save_unlocked()

    async def mark_emotes_backfilled(self, vod_id: str) -> None:
        """Record that an emote document was generated for a VOD (saved later)."""
        async with self._lock:
            vod_id = str(vod_id)
            progress = self._vods.setdefault(vod_id, VodProgress())
            progress.emotes_backfilled_at = utc_now_iso()
            self._dirty_vods.add(vod_id)
