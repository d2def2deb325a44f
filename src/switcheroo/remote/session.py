"""
SessionStateStore - local descriptor of the active session.

The descriptor file exists if and only if a supervised remote process may
be running. Outside consumers read it to discover the session; its presence
is the only source of truth for "a session is active".

cleanup() is an idempotent delete-if-present. It runs on two independent
paths (normal end of the stream, interrupt handler) with no coordination
between them.
"""

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from switcheroo.core.protocols import FileSystemService, Logger
from .exceptions import SessionStateError


@dataclass(frozen=True)
class SessionDescriptor:
    """Locally reachable address of the forwarded server."""
    host: str
    port: int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SessionDescriptor":
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        host, port = data.get("host"), data.get("port")
        if not isinstance(host, str) or not isinstance(port, int) or isinstance(port, bool):
            raise ValueError(f"expected {{host: string, port: integer}}, got {data!r}")
        return cls(host=host, port=port)

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


class SessionStateStore:
    """Reads, writes and removes the session descriptor file."""

    def __init__(self, filesystem: FileSystemService, path: Path, logger: Logger):
        self.fs = filesystem
        self.path = Path(path)
        self.log = logger

    def write(self, descriptor: SessionDescriptor) -> None:
        """
        Persist descriptor, creating parent directories as needed.

        Raises:
            SessionStateError: If the file cannot be written
        """
        try:
            self.fs.mkdir(self.path.parent, parents=True, exist_ok=True)
            self.fs.write_file(self.path, json.dumps(descriptor.to_dict(), indent=2))
        except OSError as e:
            raise SessionStateError(f"Could not write session file {self.path}: {e}")
        self.log.debug(f"Session written to {self.path}")

    def read(self) -> Optional[SessionDescriptor]:
        """
        Load the descriptor, or None if no session is recorded.

        Raises:
            SessionStateError: If the file exists but cannot be read or parsed
        """
        if not self.fs.exists(self.path):
            return None
        try:
            return SessionDescriptor.from_dict(json.loads(self.fs.read_file(self.path)))
        except (OSError, ValueError) as e:
            raise SessionStateError(f"Could not read session file {self.path}: {e}")

    def exists(self) -> bool:
        return self.fs.exists(self.path)

    def cleanup(self) -> bool:
        """
        Delete the descriptor if present.

        Returns:
            True if a file was removed, False if there was nothing to remove
            or the delete failed (failures are logged, never raised)
        """
        try:
            self.fs.remove(self.path)
        except FileNotFoundError:
            return False
        except OSError as e:
            self.log.warning(f"Could not remove session file {self.path}: {e}")
            return False
        self.log.info(f"✓ Removed session file {self.path}")
        return True
