"""
Recording <-> Twitch VOD reconciliation.

Several recordings may belong to the same VOD (a broadcast captured as
multiple files); they are grouped and become consecutive parts.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .logger import get_logger
from .models import RecordingFile, RemoteVod


HOUR_MS = 60 * 60 * 1000
DEFAULT_MAX_DELTA_HOURS = 48.0


@dataclass
class UploadGroup:
    """Recordings matched to one VOD, oldest first."""
    vod: RemoteVod
    recordings: List[RecordingFile] = field(default_factory=list)


@dataclass
class MatchPlan:
    """Result of matching a batch of recordings."""
    groups: Dict[str, UploadGroup] = field(default_factory=dict)
    unmatched: List[RecordingFile] = field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return sum(len(group.recordings) for group in self.groups.values())


def select_matching_vod(
    recording: RecordingFile,
    vods: Sequence[RemoteVod],
    max_delta_ms: float = DEFAULT_MAX_DELTA_HOURS * HOUR_MS
) -> Optional[RemoteVod]:
    """
    Pick the VOD created closest to the recording's modification time.

    Returns None when there are no VODs or the closest one is further
    away than ``max_delta_ms``. Ties keep the earlier VOD in listing order.
    """
    best = None
    best_delta = None
    for vod in vods:
        delta = abs(vod.created_at_ms - recording.modified_at_ms)
        if best_delta is None or delta < best_delta:
            best, best_delta = vod, delta

    if best is None or best_delta > max_delta_ms:
        return None
    return best


def plan_uploads(
    recordings: Sequence[RecordingFile],
    vods: Sequence[RemoteVod],
    max_delta_hours: float = DEFAULT_MAX_DELTA_HOURS,
    limit: int = 0
) -> MatchPlan:
    """
    Match candidate recordings against the remote VOD list.

    Args:
        recordings: Candidates, already sorted oldest first.
        vods: Remote VODs listed this run.
        max_delta_hours: Largest accepted mtime/creation distance.
        limit: Max recordings considered this run (0 = all).

    Returns:
        MatchPlan grouping matched recordings by VOD id.
    """
    logger = get_logger('matcher')
    max_delta_ms = max_delta_hours * HOUR_MS
    targets = list(recordings[:limit]) if limit > 0 else list(recordings)

    plan = MatchPlan()
    for recording in targets:
        vod = select_matching_vod(recording, vods, max_delta_ms)
        if vod is None:
            logger.info(f"No Twitch VOD match found for recording: {recording.name}")
            plan.unmatched.append(recording)
            continue

        group = plan.groups.setdefault(vod.id, UploadGroup(vod=vod))
        group.recordings.append(recording)
        logger.info(f"Matched recording \"{recording.name}\" -> Twitch VOD {vod.id}")

    for group in plan.groups.values():
        group.recordings.sort(key=lambda item: item.modified_at_ms)

    return plan
