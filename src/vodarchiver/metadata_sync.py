"""
Keeps YouTube titles/descriptions of archived parts on the current template.
"""

from typing import Iterable, List

from .logger import get_logger, get_vod_logger
from .models import ArchiveRecord
from .state_manager import PipelineStateStore
from .templates import METADATA_TEMPLATE_VERSION, build_description, build_title


def records_needing_sync(
    records: Iterable[ArchiveRecord],
    state: PipelineStateStore,
    version: int = METADATA_TEMPLATE_VERSION
) -> List[ArchiveRecord]:
    """Records with uploaded parts whose recorded template version is stale."""
    return [
        record for record in records
        if record.vod_parts and state.metadata_version(record.id) < version
    ]


class MetadataSynchronizer:
    """Pushes canonical metadata to every uploaded part of a record."""

    def __init__(
        self,
        youtube,
        state: PipelineStateStore,
        site_url: str,
        category_id: str = "20",
        version: int = METADATA_TEMPLATE_VERSION
    ):
        self.youtube = youtube
        self.state = state
        self.site_url = site_url
        self.category_id = category_id
        self.version = version
        self._logger = get_logger('metadata')

    async def sync_record(self, record: ArchiveRecord) -> int:
        """
        Rewrite title and description of all parts, then record the version.

        Returns:
            Number of parts updated.
        """
        parts = record.vod_parts
        if not parts:
            return 0

        stream_title = record.title or f"Twitch VOD {record.id}"
        total_parts = len(parts)
        updated = 0
        for part in parts:
            title = build_title(stream_title, record.created_at, part.part_number, total_parts)
            description = build_description(
                self.site_url,
                record.id,
                stream_title,
                record.created_at,
                part.part_number,
                total_parts,
                parts,
            )
            if await self.youtube.update_video_metadata(part.id, title, description, self.category_id):
                updated += 1

        await self.state.mark_metadata_synced(record.id, self.version)
        get_vod_logger(record.id, 'metadata').info(f"Synced YouTube metadata template v{self.version} ({updated}/{total_parts} parts)")
        return updated

    async def sync_stale(self, records: Iterable[ArchiveRecord]) -> List[str]:
        """Sync every stale record; returns the synced VOD ids."""
        synced = []
        for record in records_needing_sync(records, self.state, self.version):
            await self.sync_record(record)
            synced.append(record.id)
        if synced:
            self._logger.info(f"Metadata template applied to {len(synced)} archived VODs")
        return synced
