"""Exception types raised by the history store, daemon and protocol server."""


class KopaError(Exception):
    """Base class for all kopa errors."""


class LockTimeout(KopaError):
    """The history lock could not be acquired before the timeout elapsed."""

    def __init__(self, path, timeout: float):
        super().__init__(f"Lock timeout after {timeout:.2f}s: {path}")
        self.path = path
        self.timeout = timeout


class HistoryReadError(KopaError):
    """The history file exists but could not be read."""


class HistoryDecodeError(HistoryReadError):
    """The history file could not be parsed or failed validation."""


class HistoryWriteError(KopaError):
    """Persisting the history (or managing its lock) failed."""


class BlobCodecError(KopaError):
    """Re-encoding an image payload to its blob file failed."""


class WatcherExitError(KopaError):
    """A clipboard watcher subprocess exited while the daemon was running."""

    def __init__(self, label: str, returncode: int | None):
        if returncode == 0:
            message = f"{label} watcher exited unexpectedly"
        else:
            message = f"{label} watcher exited with code {returncode}"
        super().__init__(message)
        self.label = label
        self.returncode = returncode


class ProtocolError(KopaError):
    """A client request was malformed."""


class InvalidPathError(KopaError):
    """An image path points outside the images directory."""


class EntryNotFoundError(KopaError):
    """No history entry has the requested id."""


class ClipboardCopyError(KopaError):
    """Writing to the system clipboard failed."""


class DaemonConnectionError(KopaError):
    """The client could not talk to the protocol server."""
