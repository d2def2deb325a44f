"""
Bootstrap exceptions.

Custom exceptions for session bootstrap failures with actionable error messages.
Every fatal kind aborts the run; none is retried (re-running the tool is the
retry mechanism, since every phase is idempotent).
"""


class BootstrapError(Exception):
    """
    Base class for fatal bootstrap failures.

    Attributes:
        stderr: Captured remote error output, surfaced verbatim to the operator
    """

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class RemoteConnectionError(BootstrapError):
    """Raised when the reachability probe fails (ssh exits nonzero)."""
    pass


class DetectionError(BootstrapError):
    """
    Raised when the architecture query itself fails.

    An unrecognized architecture string is NOT an error: it falls back to
    the default tag with a warning.
    """
    pass


class InstallError(BootstrapError):
    """Raised when the remote install script exits nonzero."""
    pass


class ServerStartError(BootstrapError):
    """
    Raised when the launched server dies within the verification window.

    Most often the downloaded binary does not match the host architecture.
    """
    pass


class SessionStateError(BootstrapError):
    """Raised when the local session descriptor cannot be written or read."""
    pass
