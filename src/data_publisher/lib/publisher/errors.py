"""Publisher exception hierarchy.

Fatal errors abort a publish call and propagate to the caller.
``FilePublishError`` subclasses are recoverable: the batch publisher logs
them, counts them against the error budget, and moves on to the next file.

Hierarchy::

    PublishError
    ├── ConfigurationError
    ├── RestartFileError
    ├── ManifestError
    ├── PreflightError
    │   ├── QCFailedError
    │   └── UnexpectedBarcodeError
    └── FilePublishError
        ├── ChecksumCacheError
        ├── ChecksumMismatchError
        └── MetadataError
"""


class PublishError(Exception):
    """Base exception for all publisher errors.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(PublishError):
    """Raised for invalid publisher options or inputs."""


class RestartFileError(PublishError):
    """Raised when a restart file cannot be read or fails validation.

    Args:
        path: Path of the restart file.
        reason: What was wrong with it.
    """

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"Invalid restart file '{path}': {reason}")
        self.path = path
        self.reason = reason


class ManifestError(PublishError):
    """Raised when a manifest document cannot be read or written."""


class PreflightError(PublishError):
    """Raised when a pre-flight gate refuses to publish a run."""


class QCFailedError(PreflightError):
    """Raised when the upstream QC outcome for a run is a failure."""


class UnexpectedBarcodeError(PreflightError):
    """Raised when a file carries a barcode label not registered for its run.

    Args:
        barcode: The unregistered barcode label.
        path: The file carrying it.
    """

    def __init__(self, barcode: str, path: object) -> None:
        super().__init__(f"Unexpected barcode '{barcode}' found in '{path}'")
        self.barcode = barcode
        self.path = path


class FilePublishError(PublishError):
    """Recoverable failure publishing a single file."""


class ChecksumCacheError(FilePublishError):
    """Raised when a required checksum cache file is missing or unreadable."""


class ChecksumMismatchError(FilePublishError):
    """Raised when the remote checksum differs from the local one.

    Args:
        path: Remote object path.
        expected: Local checksum.
        actual: Checksum reported by the remote store.
    """

    def __init__(self, path: str, expected: str, actual: str) -> None:
        super().__init__(f"Checksum mismatch for '{path}': expected {expected}, got {actual}")
        self.path = path
        self.expected = expected
        self.actual = actual


class MetadataError(FilePublishError):
    """Raised when a metadata or manifest callback fails for an object."""
