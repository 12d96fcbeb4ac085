"""Source-level feed failures.

Raised inside a syncer when a whole source cannot be processed; the
per-source wrapper records them on the source's status row.
"""


class FeedError(Exception):
    """Base class for errors that abort one feed source."""


class FeedDownloadError(FeedError):
    """An archive, change list or feed file could not be downloaded."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to download {url}: {reason}")


class FeedExtractionError(FeedError):
    """Decompression or extraction failed or exceeded its time bound."""
