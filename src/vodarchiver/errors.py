"""
Exception hierarchy for VOD Archiver.

Configuration errors abort before any work starts, upstream errors abort
the run (already checkpointed work is kept), chat export errors only
affect the VOD they were raised for.
"""


class ArchiverError(Exception):
    """Base class for all archiver failures."""


class ConfigurationError(ArchiverError):
    """Missing credentials, unknown channel or unreachable recordings root."""


class UpstreamError(ArchiverError):
    """A remote platform call failed (VOD listing, upload, metadata update)."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class ChatExportError(ArchiverError):
    """The chat export for one VOD could not be produced or parsed."""

    def __init__(self, vod_id: str, message: str):
        super().__init__(f"Chat export failed for VOD {vod_id}: {message}")
        self.vod_id = vod_id
