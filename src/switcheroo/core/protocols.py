"""Interfaces for everything the session bootstrap touches outside Python.

Structural (typing.Protocol) interfaces: a class with matching methods
qualifies, no inheritance needed.

Everything that touches the outside world during a session (the ssh client,
the local session file, the clock, signal registration) goes through one of
these, so the bootstrap sequence can be exercised in tests without a network.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Dict, Any, Optional, List, Union, IO


@dataclass
class ProcessResult:
    """Outcome of a finished (non-streaming) command."""
    returncode: int
    stdout: str
    stderr: str


class Logger(Protocol):
    """Operator-facing messages.

    Remote output (install progress, server log) is routed through info().
    """

    def info(self, message: str) -> None:
        """Progress and status."""
        ...

    def warning(self, message: str) -> None:
        """Something odd that does not stop the run."""
        ...

    def error(self, message: str) -> None:
        """Fatal problem, shown before exiting."""
        ...

    def debug(self, message: str) -> None:
        """Details shown only with --verbose."""
        ...


class FileSystemService(Protocol):
    """Abstraction for local filesystem operations."""

    def exists(self, path: Union[str, Path]) -> bool:
        """Check if path exists."""
        ...

    def read_file(self, path: Union[str, Path]) -> str:
        """Read entire file as string."""
        ...

    def write_file(self, path: Union[str, Path], content: str) -> None:
        """Write string content to file."""
        ...

    def mkdir(self, path: Union[str, Path], parents: bool = True, exist_ok: bool = True) -> None:
        """Create directory."""
        ...

    def remove(self, path: Union[str, Path]) -> None:
        """Remove a single file. Raises FileNotFoundError if absent."""
        ...


class ProcessHandle(Protocol):
    """Abstraction for a running subprocess.

    Wraps subprocess.Popen. ``stdout`` yields decoded lines; ``stdin`` is
    only set when the process was started with an open stdin pipe.
    """

    stdout: Optional[IO[str]]
    stdin: Optional[IO[str]]

    def poll(self) -> Optional[int]:
        """Exit code, or None while running."""
        ...

    def wait(self, timeout: Optional[float] = None) -> int:
        """Wait for process to terminate and return exit code."""
        ...

    def terminate(self) -> None:
        """Ask the process to exit (SIGTERM)."""
        ...


class ProcessExecutor(Protocol):
    """Starts local processes (in practice: the ssh client).

    Wraps subprocess.run / subprocess.Popen to enable testing without
    spawning real processes.
    """

    def run(self, cmd: List[str]) -> ProcessResult:
        """Run command to completion, capturing stdout and stderr as text."""
        ...

    def popen(
        self,
        cmd: List[str],
        stdin: Optional[Any] = None,
        stdout: Optional[Any] = None,
        stderr: Optional[Any] = None,
    ) -> ProcessHandle:
        """Start command and return process handle (text mode, line buffered)."""
        ...


class TimeProvider(Protocol):
    """Clock used for phase timings."""

    def current_time(self) -> float:
        """Get current time in seconds since epoch."""
        ...


class EnvironmentProvider(Protocol):
    """Environment variables and home directory.

    Wraps os.environ and the user's home directory so local paths can be
    redirected in tests.
    """

    def get_environ(self) -> Dict[str, str]:
        """Get copy of environment variables."""
        ...

    def home_dir(self) -> Path:
        """Get the current user's home directory."""
        ...


class ConfigLoader(Protocol):
    """Reads the settings file into a dict."""

    def load_yaml(self, path: str) -> Dict[str, Any]:
        """Load YAML file and return parsed dictionary."""
        ...


class SignalRegistrar(Protocol):
    """Abstraction over signal.signal()."""

    def register(self, signum: int, handler: Any) -> Any:
        """Install handler for signum and return the one it replaced."""
        ...
