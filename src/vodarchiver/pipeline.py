"""
VOD Archiver - Pipeline Orchestrator.

One run:
1. Scan local recordings, skip finished ones
2. Match them against recent Twitch archive VODs
3. Export and normalize chat, collect emotes
4. Upload recordings to YouTube as numbered parts (checkpointed per part)
5. Re-apply the metadata template where it is stale
6. Persist archive records and pipeline state
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .archive_store import ArchiveRecordStore
from .chat import (
    ChatDownloader,
    build_comments_document,
    extract_chapters,
    extract_embedded_emotes,
    load_raw_chat,
    normalize_comments,
)
from .config import Config
from .emotes import EmoteAggregator, build_bundle
from .errors import ChatExportError, ConfigurationError
from .logger import get_logger, get_vod_logger
from .matcher import UploadGroup, plan_uploads
from .metadata_sync import MetadataSynchronizer, records_needing_sync
from .models import EmoteCatalogs
from .scanner import scan_recordings, select_candidates
from .state_manager import PipelineStateStore
from .twitch_api import RemoteVodSource, TwitchAPI
from .uploader import UploadedPart, UploadOrchestrator
from .youtube import YouTubeClient


PublishHook = Callable[[List[Path]], None]


@dataclass
class RunSummary:
    """What a pipeline run did."""
    uploaded: List[UploadedPart] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)
    failed_vods: Dict[str, str] = field(default_factory=dict)
    synced_vods: List[str] = field(default_factory=list)
    backfilled_vods: List[str] = field(default_factory=list)
    chat_exports: List[str] = field(default_factory=list)
    written_paths: List[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_vods

    def describe(self) -> str:
        return (
            f"{len(self.uploaded)} parts uploaded, {len(self.unmatched)} unmatched, "
            f"{len(self.synced_vods)} VODs re-synced, {len(self.backfilled_vods)} emote backfills, "
            f"{len(self.failed_vods)} VODs failed"
        )


class ArchivePipeline:
    """
    Reconciles local recordings with the Twitch archive and publishes them.

    Collaborators can be injected; by default they are built from config.
    """

    def __init__(
        self,
        config: Config,
        twitch_api=None,
        youtube_factory: Optional[Callable[[], object]] = None,
        chat_downloader=None,
        emote_aggregator=None,
        publish_hook: Optional[PublishHook] = None,
        clock: Callable[[], float] = time.time
    ):
        """Initialize pipeline with configuration."""
        self.config = config
        self._logger = get_logger('pipeline')
        self._clock = clock

        self.twitch_api = twitch_api or TwitchAPI(
            client_id=config.twitch.client_id,
            client_secret=config.twitch.client_secret
        )
        self.youtube_factory = youtube_factory or (lambda: YouTubeClient.from_files(
            config.youtube.client_secret_path,
            config.youtube.token_path,
            config.youtube.notify_subscribers
        ))
        self.chat = chat_downloader or ChatDownloader(
            executable=config.chat.downloader_path,
            threads=config.chat.threads,
            timeout_seconds=config.chat.timeout_seconds
        )
        self.emotes = emote_aggregator or EmoteAggregator()
        self.publish_hook = publish_hook

        self.state = PipelineStateStore(state_file=config.state.state_file)
        self.archive = ArchiveRecordStore(
            vods_path=config.archive.vods_path,
            comments_dir=config.archive.comments_dir,
            emotes_dir=config.archive.emotes_dir
        )
        self.source = RemoteVodSource(
            self.twitch_api,
            config.twitch.channel_login,
            config.twitch.vod_page_size
        )

    def _validate(self) -> None:
        if not Path(self.config.recordings.directory).is_dir():
            raise ConfigurationError(
                f"Recording directory does not exist: {self.config.recordings.directory}"
            )

    async def run(self) -> RunSummary:
        """
        Execute one pipeline run.

        Raises:
            ConfigurationError: Before any work when configuration is unusable.
            UpstreamError: When Twitch listing or a YouTube call fails.
        """
        summary = RunSummary()
        dry_run = self.config.dry_run

        self._validate()
        await self.state.load()
        await self.archive.load()

        recordings = scan_recordings(self.config.recordings.directory, self.config.recordings.extensions)
        candidates = select_candidates(
            recordings,
            self.state.completed_paths(),
            self.config.recordings.min_age_minutes,
            now_ms=self._clock() * 1000
        )
        missing_emotes = self.archive.missing_emote_ids()
        stale = records_needing_sync(self.archive.records(), self.state)

        if not candidates and not missing_emotes and not stale:
            self._logger.info("No completed recordings ready for processing.")
            return summary

        self._logger.info(
            f"{len(candidates)} recordings to match, {len(missing_emotes)} VODs missing emotes, "
            f"{len(stale)} VODs with stale metadata"
        )

        youtube = None
        await self.twitch_api.connect()
        try:
            user_id = await self.source.user_id()
            vods = await self.source.fetch() if candidates else []
            catalogs = await self.emotes.fetch_catalogs(user_id)

            plan = plan_uploads(
                candidates,
                vods,
                self.config.matching.max_delta_hours,
                self.config.recordings.max_per_run
            )
            summary.unmatched = [recording.path for recording in plan.unmatched]

            if not dry_run:
                backfill = [vod_id for vod_id in missing_emotes if vod_id not in plan.groups]
                await self._backfill_emotes(backfill, catalogs, summary)

            if not dry_run and (plan.groups or stale):
                youtube = self.youtube_factory()
                await youtube.connect()
                await youtube.ensure_category(self.config.youtube.category_id)

            uploader = UploadOrchestrator(
                youtube,
                self.archive,
                self.state,
                self.config.archive.site_url,
                self.config.youtube.category_id,
                self.config.youtube.privacy_status
            )
            synchronizer = MetadataSynchronizer(
                youtube,
                self.state,
                self.config.archive.site_url,
                self.config.youtube.category_id
            )

            for vod_id, group in plan.groups.items():
                try:
                    await self._archive_group(group, catalogs, uploader, synchronizer, summary)
                except ChatExportError as e:
                    get_vod_logger(vod_id, 'pipeline').error(f"{e} - skipping this VOD until the next run")
                    summary.failed_vods[vod_id] = str(e)

            if not dry_run:
                # Archived VODs whose chat keeps failing still get live catalogs
                retry = [vod_id for vod_id in missing_emotes if vod_id in summary.failed_vods]
                await self._backfill_emotes(retry, catalogs, summary)

            if youtube is not None:
                summary.synced_vods.extend(await synchronizer.sync_stale(self.archive.records()))

            if not dry_run:
                if await self.archive.save():
                    summary.written_paths.append(self.archive.vods_path)
                await self.state.save()
                summary.written_paths.append(self.state.state_file)

        finally:
            await self.twitch_api.disconnect()
            await self.emotes.close()
            if youtube is not None:
                await youtube.disconnect()

        self._publish(summary)
        self._logger.info(f"Run finished: {summary.describe()}")
        return summary

    async def _backfill_emotes(
        self,
        vod_ids: List[str],
        catalogs: EmoteCatalogs,
        summary: RunSummary
    ) -> None:
        """Write current catalogs for archived VODs that have no emote document."""
        for vod_id in vod_ids:
            path = await self.archive.write_emotes(build_bundle(vod_id, catalogs))
            await self.state.mark_emotes_backfilled(vod_id)
            summary.backfilled_vods.append(vod_id)
            summary.written_paths.append(path)
            get_vod_logger(vod_id, 'emotes').info("Backfilled emotes")

    async def _archive_group(
        self,
        group: UploadGroup,
        catalogs: EmoteCatalogs,
        uploader: UploadOrchestrator,
        synchronizer: MetadataSynchronizer,
        summary: RunSummary
    ) -> None:
        vod = group.vod
        logger = get_vod_logger(vod.id, 'pipeline')
        raw_path = Path(self.config.chat.temp_dir) / f"{vod.id}-chat-raw.json"

        await self.chat.download(vod.id, raw_path)
        raw_chat = await load_raw_chat(vod.id, raw_path)
        comments = normalize_comments(raw_chat)
        embedded = extract_embedded_emotes(raw_chat)
        summary.chat_exports.append(vod.id)

        if self.config.dry_run:
            logger.info(
                f"[DRY RUN] Chat export succeeded ({len(comments)} comments, "
                f"{len(embedded)} embedded emotes), {len(group.recordings)} recordings matched"
            )
            return

        summary.written_paths.append(
            await self.archive.write_comments(vod.id, build_comments_document(vod.id, comments))
        )
        summary.written_paths.append(
            await self.archive.write_emotes(build_bundle(vod.id, catalogs, embedded))
        )
        raw_path.unlink(missing_ok=True)

        record = self.archive.ensure_record(vod, extract_chapters(raw_chat, vod.thumbnail))
        self.archive.upsert(record)

        summary.uploaded.extend(await uploader.upload_group(record, vod, group.recordings))
        await synchronizer.sync_record(record)

    def _publish(self, summary: RunSummary) -> None:
        """Hand written documents to the publish hook; failures are only logged."""
        if self.publish_hook is None or not summary.written_paths:
            return
        try:
            self.publish_hook(list(dict.fromkeys(summary.written_paths)))
        except Exception as e:
            self._logger.warning(f"Publish hook failed: {e}")
