"""Exception classes shared across cargo-deps.

Every fatal condition the tool can hit derives from CargoDepsError so the CLI
can report it with a single handler and exit non-zero.
"""


class CargoDepsError(Exception):
    """Base exception for all cargo-deps errors.

    Attributes:
        message: Human-readable error message
    """

    def __init__(self, message: str):
        """Initialize the exception with a descriptive message.

        Args:
            message: Description of the error
        """
        super().__init__(message)
        self.message = message


class ManifestError(CargoDepsError):
    """Raised when a manifest or lock document is missing or malformed."""


class LockMismatchError(CargoDepsError):
    """Raised when the manifest and the lock file disagree about a root crate."""
