"""Real implementations of the interfaces in protocols.py.

Wired together by Runtime.production(); tests substitute Mocks.
"""

import os
import signal
import subprocess
import sys
import time
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List, Union

from switcheroo.core.protocols import ProcessResult


class ConsoleLogger:
    """Prints to the terminal; errors go to stderr."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def info(self, message: str) -> None:
        """Print to stdout."""
        print(message, flush=True)

    def warning(self, message: str) -> None:
        """Print with a Warning: prefix."""
        print(f"Warning: {message}", flush=True)

    def error(self, message: str) -> None:
        """Print with an Error: prefix to stderr."""
        print(f"Error: {message}", file=sys.stderr, flush=True)

    def debug(self, message: str) -> None:
        """Print debug message to stdout (verbose mode only)."""
        if self.verbose:
            print(f"Debug: {message}", flush=True)


class RealFileSystemService:
    """Production filesystem service using real pathlib operations."""

    def exists(self, path: Union[str, Path]) -> bool:
        """Check if path exists."""
        return Path(path).exists()

    def read_file(self, path: Union[str, Path]) -> str:
        """Read entire file as string."""
        with open(path, 'r') as f:
            return f.read()

    def write_file(self, path: Union[str, Path], content: str) -> None:
        """Write string content to file."""
        with open(path, 'w') as f:
            f.write(content)

    def mkdir(self, path: Union[str, Path], parents: bool = True, exist_ok: bool = True) -> None:
        """Create directory."""
        Path(path).mkdir(parents=parents, exist_ok=exist_ok)

    def remove(self, path: Union[str, Path]) -> None:
        """Remove a single file."""
        os.remove(path)


class SubprocessHandle:
    """ProcessHandle over a subprocess.Popen object."""

    def __init__(self, popen_handle):
        self._handle = popen_handle
        self.stdout = popen_handle.stdout
        self.stdin = popen_handle.stdin

    def poll(self) -> Optional[int]:
        """Check if process has terminated."""
        return self._handle.poll()

    def wait(self, timeout: Optional[float] = None) -> int:
        """Wait for process to terminate."""
        return self._handle.wait(timeout=timeout)

    def terminate(self) -> None:
        """Send SIGTERM unless the process already exited."""
        if self._handle.poll() is None:
            self._handle.terminate()


class SubprocessExecutor:
    """Production process executor using real subprocess module."""

    def run(self, cmd: List[str]) -> ProcessResult:
        """Run command to completion and capture its output.

        Output that is not valid UTF-8 is decoded with replacement characters.
        """
        result = subprocess.run(cmd, capture_output=True, encoding="utf-8", errors="replace")
        return ProcessResult(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr
        )

    def popen(
        self,
        cmd: List[str],
        stdin: Optional[Any] = None,
        stdout: Optional[Any] = None,
        stderr: Optional[Any] = None,
    ) -> SubprocessHandle:
        """Start cmd with line-buffered text pipes (undecodable bytes replaced)."""
        handle = subprocess.Popen(
            cmd,
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
            encoding="utf-8",
            errors="replace",
            bufsize=1
        )
        return SubprocessHandle(handle)


class SystemTimeProvider:
    """Wall clock."""

    def current_time(self) -> float:
        """Get current time in seconds since epoch."""
        return time.time()


class SystemEnvironmentProvider:
    """Production environment provider using real os module."""

    def get_environ(self) -> Dict[str, str]:
        """Get copy of environment variables."""
        return dict(os.environ)

    def home_dir(self) -> Path:
        """Get the current user's home directory."""
        return Path.home()


class YamlConfigLoader:
    """Settings loader backed by yaml.safe_load."""

    def __init__(self, filesystem: 'RealFileSystemService'):
        self.fs = filesystem

    def load_yaml(self, path: str) -> Dict[str, Any]:
        """Load YAML file and return parsed dictionary."""
        content = self.fs.read_file(path)
        return yaml.safe_load(content)


class SystemSignalRegistrar:
    """Production signal registrar using signal.signal()."""

    def register(self, signum: int, handler: Any) -> Any:
        """Install handler for signum and return the one it replaced."""
        return signal.signal(signum, handler)
