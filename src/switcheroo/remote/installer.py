"""
InstallationManager - idempotent fetch + unpack of the server bundle.

Idempotency key is two booleans on the remote filesystem:

    archive present?    -> skip DOWNLOAD
    directory present?  -> skip EXTRACT

No version or checksum is recorded. A cached artifact from another version
stays until --clear-cache removes it.

Sequence:
    1. inspect()  - read-only presence checks (skipped with clear_cache)
    2. plan_install() - decide which InstallSteps are needed
    3. render_install_script() - one bash script for the whole plan,
       streamed to the operator line by line

Downloads land in ``<archive>.part`` and are renamed when complete.
Extraction happens in a temporary directory next to the install dir and is
renamed into place only after tar succeeds, so a half-extracted tree is
never mistaken for an installed one on the next run.
"""

import shlex
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Union

from switcheroo.core.protocols import Logger
from switcheroo.utils.paths import REMOTE_BASE_DIR
from .arch import ArchTag
from .exceptions import InstallError
from .transport import SSHTransport

# Lines of install output kept for the InstallError message
ERROR_TAIL_LINES = 40


@dataclass(frozen=True)
class ReleaseArtifact:
    """Where the server bundle comes from and where it goes."""
    version: str
    url_template: str
    archive_name: str = "openvscode-server.tar.gz"
    install_dir: str = "openvscode-server"
    entry_point: str = "bin/openvscode-server"

    def url(self, arch: Union[ArchTag, str]) -> str:
        return self.url_template.format(version=self.version, arch=arch)

    def binary_path(self, base_dir: str = REMOTE_BASE_DIR) -> str:
        return f"{base_dir}/{self.install_dir}/{self.entry_point}"


@dataclass(frozen=True)
class RemoteInstallState:
    archive_present: bool
    directory_present: bool

    @classmethod
    def empty(cls) -> "RemoteInstallState":
        return cls(archive_present=False, directory_present=False)


class InstallStep(str, Enum):
    CLEAR = "clear"
    DOWNLOAD = "download"
    EXTRACT = "extract"


@dataclass(frozen=True)
class InstallPlan:
    steps: tuple

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def __contains__(self, step: InstallStep) -> bool:
        return step in self.steps


def plan_install(state: RemoteInstallState, clear_cache: bool = False) -> InstallPlan:
    """
    Decide which steps to run.

    clear_cache removes everything first, so whatever was present before
    is downloaded and extracted again.
    """
    if clear_cache:
        return InstallPlan(steps=(InstallStep.CLEAR, InstallStep.DOWNLOAD, InstallStep.EXTRACT))

    steps = []
    if not state.archive_present:
        steps.append(InstallStep.DOWNLOAD)
    if not state.directory_present:
        steps.append(InstallStep.EXTRACT)
    return InstallPlan(steps=tuple(steps))


def _script_header(artifact: ReleaseArtifact) -> str:
    return (
        f'BASE="{REMOTE_BASE_DIR}"\n'
        f'ARCHIVE="$BASE/{artifact.archive_name}"\n'
        f'INSTALL_DIR="$BASE/{artifact.install_dir}"\n'
    )


def render_inspect_script(artifact: ReleaseArtifact) -> str:
    """Read-only presence checks, one ``key=0|1`` line each."""
    return (
        _script_header(artifact)
        + 'if [ -f "$ARCHIVE" ]; then echo archive=1; else echo archive=0; fi\n'
        + 'if [ -d "$INSTALL_DIR" ]; then echo directory=1; else echo directory=0; fi\n'
    )


def parse_inspect_output(output: str) -> RemoteInstallState:
    values = {}
    for line in output.splitlines():
        key, sep, value = line.strip().partition("=")
        if sep:
            values[key] = value == "1"
    if "archive" not in values or "directory" not in values:
        raise ValueError(f"Unexpected inspect output: {output!r}")
    return RemoteInstallState(
        archive_present=values["archive"],
        directory_present=values["directory"]
    )


def _clear_fragment() -> str:
    return (
        'echo "Clearing cached server bundle"\n'
        'rm -rf "$ARCHIVE" "$ARCHIVE.part" "$INSTALL_DIR" "$BASE"/.extract.*\n'
    )


def _download_fragment(url: str) -> str:
    return (
        'if [ ! -f "$ARCHIVE" ]; then\n'
        f'  URL={shlex.quote(url)}\n'
        '  echo "Downloading $URL"\n'
        '  curl -fsSL -o "$ARCHIVE.part" "$URL"\n'
        '  mv "$ARCHIVE.part" "$ARCHIVE"\n'
        'fi\n'
    )


def _extract_fragment(artifact: ReleaseArtifact) -> str:
    return (
        'if [ ! -d "$INSTALL_DIR" ]; then\n'
        '  echo "Extracting $ARCHIVE"\n'
        '  TMP_DIR="$(mktemp -d "$BASE/.extract.XXXXXX")"\n'
        '  tar -xzf "$ARCHIVE" -C "$TMP_DIR"\n'
        '  set -- "$TMP_DIR"/*\n'
        '  if [ "$#" -ne 1 ] || [ ! -d "$1" ]; then\n'
        '    echo "Unexpected layout in $ARCHIVE (expected one top-level directory)" >&2\n'
        '    exit 1\n'
        '  fi\n'
        f'  chmod +x "$1/{artifact.entry_point}"\n'
        '  mv "$1" "$INSTALL_DIR"\n'
        'fi\n'
    )


def render_install_script(plan: InstallPlan, artifact: ReleaseArtifact, arch: Union[ArchTag, str]) -> str:
    """
    Render the plan as one bash script.

    Each step keeps its own presence guard, so the script is safe to run
    even if the remote state changed since inspection.
    """
    parts = [
        "set -e\n",
        _script_header(artifact),
        'TMP_DIR=""\n',
        'trap \'if [ -n "$TMP_DIR" ]; then rm -rf "$TMP_DIR"; fi\' EXIT\n',
        'mkdir -p "$BASE"\n',
    ]
    for step in plan.steps:
        if step == InstallStep.CLEAR:
            parts.append(_clear_fragment())
        elif step == InstallStep.DOWNLOAD:
            parts.append(_download_fragment(artifact.url(arch)))
        elif step == InstallStep.EXTRACT:
            parts.append(_extract_fragment(artifact))
    return "".join(parts)


class InstallationManager:
    """Ensures the release bundle for an architecture is unpacked remotely."""

    def __init__(self, transport: SSHTransport, artifact: ReleaseArtifact, logger: Logger):
        self.transport = transport
        self.artifact = artifact
        self.log = logger

    def inspect(self) -> RemoteInstallState:
        """
        Query archive/directory presence on the remote host.

        Raises:
            InstallError: If the query fails or its output is unreadable
        """
        result = self.transport.run_script(render_inspect_script(self.artifact))
        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise InstallError(
                f"Could not inspect installation on {self.transport.describe()} "
                f"(exit code {result.returncode})\n"
                f"Error: {stderr or '(no output)'}",
                stderr=stderr
            )
        try:
            return parse_inspect_output(result.stdout)
        except ValueError as e:
            raise InstallError(str(e), stderr=result.stderr.strip())

    def ensure_installed(self, arch: Union[ArchTag, str], clear_cache: bool = False) -> InstallPlan:
        """
        Download and unpack the bundle unless already present.

        Args:
            arch: Architecture tag selecting the artifact
            clear_cache: Remove archive and directory first, forcing a
                fresh download and extraction

        Returns:
            The plan that was executed (empty when nothing was needed)

        Raises:
            InstallError: If the install script exits nonzero. The remote
                filesystem is left exactly as the script left it.
        """
        state = RemoteInstallState.empty() if clear_cache else self.inspect()
        plan = plan_install(state, clear_cache)

        if plan.is_empty:
            self.log.info(f"✓ openvscode-server already installed ({self.artifact.install_dir})")
            return plan

        self.log.info(
            f"Installing openvscode-server v{self.artifact.version} for {arch} "
            f"(steps: {', '.join(s.value for s in plan.steps)})..."
        )
        script = render_install_script(plan, self.artifact, arch)

        handle = self.transport.stream(script)
        tail: deque = deque(maxlen=ERROR_TAIL_LINES)
        try:
            for line in handle.stdout:
                line = line.rstrip("\n")
                tail.append(line)
                self.log.info(f"  [install] {line}")
            returncode = handle.wait()
        except BaseException:
            handle.terminate()
            raise

        if returncode != 0:
            output = "\n".join(tail)
            raise InstallError(
                f"Install failed on {self.transport.describe()} (exit code {returncode})\n\n"
                f"Last lines of install output:\n{output}\n\n"
                f"The remote cache was left as-is. Re-run with --clear-cache to start over.",
                stderr=output
            )

        self.log.info("✓ openvscode-server installation complete")
        return plan
