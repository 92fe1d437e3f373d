"""Exception hierarchy for the generation pipeline."""


class QRBatchError(Exception):
    """Base class for every error raised by qrbatch.

    Entry-level errors get ``index`` (1-based position among the kept
    entries) and ``source_text`` filled in by the batch orchestrator.
    """

    def __init__(self, message: str = "", *, index: int | None = None, source_text: str | None = None):
        super().__init__(message)
        self.index = index
        self.source_text = source_text

    def attach_entry(self, index: int, source_text: str) -> "QRBatchError":
        self.index = index
        self.source_text = source_text
        return self

    def to_dict(self) -> dict:
        return {
            "error": str(self) or type(self).__name__,
            "type": type(self).__name__,
            "entry": self.index,
            "text": self.source_text,
        }


class NoValidEntriesError(QRBatchError):
    """Every submitted entry was blank."""

    def __init__(self, message: str = "Enter at least one link."):
        super().__init__(message)


class EncodingError(QRBatchError):
    """Payload is empty or does not fit the matrix at the chosen ECC level."""


class ImageDecodeError(QRBatchError):
    """Logo bytes could not be decoded as an image."""


class EntryTimeoutError(QRBatchError):
    """An entry did not finish within the per-entry timeout."""


class VerificationError(QRBatchError):
    """The composited image did not decode back to its payload."""


class ArchiveError(QRBatchError):
    """The zip archive could not be built."""


class ConfigError(QRBatchError, ValueError):
    """Invalid settings."""
