"""
ArchitectureDetector - pick the release artifact for the target platform.
"""

from enum import Enum
from typing import Optional, Union

from switcheroo.core.protocols import Logger
from .exceptions import DetectionError
from .transport import SSHTransport


class ArchTag(str, Enum):
    """Closed set of platform tags, as spelled in release artifact names."""
    LINUX_X64 = "linux-x64"
    LINUX_ARM64 = "linux-arm64"

    def __str__(self) -> str:
        return self.value


DEFAULT_ARCH = ArchTag.LINUX_X64

# Raw `uname -m` output (lower-cased) -> tag
ARCH_ALIASES = {
    "x86_64": ArchTag.LINUX_X64,
    "aarch64": ArchTag.LINUX_ARM64,
    "arm64": ArchTag.LINUX_ARM64,
}


def map_architecture(raw: str, logger: Logger) -> ArchTag:
    """
    Map a raw hardware identifier to an ArchTag.

    Total: unknown values fall back to DEFAULT_ARCH with a warning, never
    an exception.
    """
    normalized = raw.strip().lower()
    tag = ARCH_ALIASES.get(normalized)
    if tag is None:
        logger.warning(f"Unknown architecture '{normalized}', defaulting to {DEFAULT_ARCH}")
        return DEFAULT_ARCH
    return tag


class ArchitectureDetector:
    """Runs ``uname -m`` on the target and maps the result."""

    def __init__(self, transport: SSHTransport, logger: Logger):
        self.transport = transport
        self.log = logger

    def detect(self, override: Optional[Union[ArchTag, str]] = None) -> ArchTag:
        """
        Determine the architecture tag.

        Args:
            override: Caller-supplied tag. Skips detection entirely and is
                trusted without validation.

        Returns:
            ArchTag (or the override, as given)

        Raises:
            DetectionError: If the remote command itself fails
        """
        if override is not None:
            self.log.info(f"Using architecture {override} (override, detection skipped)")
            try:
                return ArchTag(override)
            except ValueError:
                return override

        result = self.transport.run("uname -m")
        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise DetectionError(
                f"Failed to detect architecture on {self.transport.describe()} "
                f"(exit code {result.returncode})\n"
                f"Error: {stderr or '(no output)'}\n\n"
                f"Workaround: pass --arch {ArchTag.LINUX_X64} or --arch {ArchTag.LINUX_ARM64}",
                stderr=stderr
            )

        tag = map_architecture(result.stdout, self.log)
        self.log.info(f"Detected architecture: {result.stdout.strip()} -> {tag}")
        return tag
