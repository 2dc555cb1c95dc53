"""Error types raised by the response-to-action pipeline."""


class DeltaError(Exception):
    """Base class for delta-cli errors."""


class WriteFailure(DeltaError):
    """Raised when an inferred file cannot be written."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Error writing to {path}: {reason}")
        self.path = path
        self.reason = reason


class DirectoryNotFound(DeltaError):
    """Raised when a directory-change target does not exist."""

    def __init__(self, target: str):
        super().__init__(f"Directory not found: {target}")
        self.target = target
