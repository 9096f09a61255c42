"""VOD Archiver - archive local stream recordings next to their Twitch VODs."""

__version__ = "1.0.0"
