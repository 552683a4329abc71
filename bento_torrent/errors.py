from typing import Any


class BentoTorrentError(Exception):
    """
        Base class for every error raised by this package.
        A tracker replying with a `failure reason` is not an error, see TrackerFailure.
    """
    kind = "error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details = ", ".join(f"{key}={value!r}" for key, value in self.details.items())
            return f"{self.message} ({details})"
        return self.message


class BencodeError(BentoTorrentError):
    pass


class BencodeDecodeError(BencodeError, ValueError):
    """Input bytes are not valid bencode"""
    kind = "bencode decode error"

    def __init__(self, message: str, offset: int):
        super().__init__(message, {"offset": offset})
        self.offset = offset


class MalformedSyntaxError(BencodeDecodeError):
    """The bytes violate the bencode grammar."""
    kind = "malformed syntax"


class TruncatedInputError(BencodeDecodeError):
    """The input ended before the value was complete. More bytes might fix it."""
    kind = "truncated input"


class BencodeEncodeError(BencodeError, ValueError):
    kind = "bencode encode error"


class SchemaError(BentoTorrentError, ValueError):
    """Valid bencode that does not describe a torrent / tracker response."""
    kind = "schema violation"

    def __init__(self, field: str, reason: str):
        super().__init__(f"invalid field '{field}': {reason}", {})
        self.field = field
        self.reason = reason


class TrackerError(BentoTorrentError):
    """The announce request could not be completed."""
    kind = "tracker error"
