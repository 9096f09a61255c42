"""
Upload orchestrator for VOD Archiver.
Uploads matched recordings to YouTube as consecutive parts of one VOD.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List

from .archive_store import ArchiveRecordStore
from .logger import get_vod_logger
from .models import ArchiveRecord, RecordingFile, RemoteVod, VideoPart
from .state_manager import PipelineStateStore
from .templates import build_description, build_title


@dataclass
class UploadedPart:
    """Result of uploading one recording."""
    recording: RecordingFile
    vod_id: str
    video_id: str
    part_number: int


class UploadOrchestrator:
    """
    Uploads groups of recordings and checkpoints each finished part.

    A part is written to the archive store and the pipeline state before
    the next recording starts, so a crash never causes a re-upload of a
    finished part.
    """

    def __init__(
        self,
        youtube,
        archive: ArchiveRecordStore,
        state: PipelineStateStore,
        site_url: str,
        category_id: str = "20",
        privacy_status: str = "private"
    ):
        """
        Args:
            youtube: Client with upload_video/get_video_details (YouTubeClient).
            archive: Archive record store.
            state: Pipeline state store.
            site_url: Public archive site, used for chat replay links.
            category_id: YouTube category for uploads.
            privacy_status: YouTube privacy level for uploads.
        """
        self.youtube = youtube
        self.archive = archive
        self.state = state
        self.site_url = site_url
        self.category_id = category_id
        self.privacy_status = privacy_status

    async def upload_group(
        self,
        record: ArchiveRecord,
        vod: RemoteVod,
        recordings: List[RecordingFile]
    ) -> List[UploadedPart]:
        """
        Upload recordings (oldest first) as the next parts of ``record``.

        Errors propagate; recordings uploaded before the failure stay
        checkpointed.
        """
        logger = get_vod_logger(vod.id, 'upload')
        next_part_number = record.max_part_number + 1
        total_parts = len(record.vod_parts) + len(recordings)

        uploaded = []
        for index, recording in enumerate(recordings):
            part_number = next_part_number + index

            title = build_title(
                vod.title or Path(recording.name).stem,
                vod.created_at,
                part_number,
                total_parts,
            )
            description = build_description(
                self.site_url,
                vod.id,
                vod.title,
                vod.created_at,
                part_number,
                total_parts,
            )

            logger.info(f"Uploading {recording.name} as part {part_number}/{total_parts}")
            video_id = await self.youtube.upload_video(
                recording.path,
                title,
                description,
                self.category_id,
                self.privacy_status,
            )
            details = await self.youtube.get_video_details(video_id)

            record.upsert_part(VideoPart(
                id=video_id,
                part_number=part_number,
                duration_seconds=details.duration_seconds or 0,
                thumbnail_url=details.thumbnail_url or record.thumbnail_url,
            ))
            self.archive.upsert(record)
            await self.archive.save()
            await self.state.mark_file_completed(recording.path, vod.id, video_id, part_number)

            logger.info(f"Completed {recording.name} -> YouTube {video_id} (Part {part_number})")
            uploaded.append(UploadedPart(
                recording=recording,
                vod_id=vod.id,
                video_id=video_id,
                part_number=part_number,
            ))

        return uploaded
