"""
Tabwatch exception hierarchy.

Every error raised by the system inherits from TabwatchError.
Most pipeline failures are *not* raised at all — schedule and match
parse problems are data, capture failures land in the capture report,
persistence failures are logged by the background writer. Exceptions
are reserved for the infrastructure seams (config, storage backends).

Usage:
    try:
        config = TabwatchConfig.load()
    except ConfigError as e:
        ...
    except TabwatchError as e:
        ...
"""


class TabwatchError(Exception):
    """Base exception for all Tabwatch errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ━━━ Core ━━━


class ConfigError(TabwatchError):
    """Configuration is invalid, missing, or malformed."""

    pass


class StorageError(TabwatchError):
    """Storage backend failure — database errors, corruption, etc."""

    pass


# ━━━ Capture / collaborators ━━━


class CaptureError(TabwatchError):
    """A frame could not be scanned (destroyed, cross-origin, script threw)."""

    def __init__(
        self,
        message: str,
        tab_id: str = "",
        frame: str = "",
        details: dict | None = None,
    ):
        self.tab_id = tab_id
        self.frame = frame
        super().__init__(message, details)


class CodegenError(TabwatchError):
    """Code-generation provider failure — API errors, bad payloads."""

    def __init__(
        self,
        message: str,
        provider: str = "",
        retryable: bool = False,
        details: dict | None = None,
    ):
        self.provider = provider
        self.retryable = retryable
        super().__init__(message, details)
