"""
RemoteProcessSupervisor - launch the server and tie its lifetime to the
control connection.

The remote script is a small state machine that runs entirely on the target
once launched:

    STARTING --(alive after verify_delay)--> VERIFIED --> SUPERVISING --> TERMINATED
        |
        +--(dead after verify_delay)--> FAILED  (exit 86)

SUPERVISING polls once per poll_interval whether the script's parent (the
sshd session for this channel) is still alive. When the local control process
exits, is interrupted, or the connection drops, the parent goes away, the
loop ends and the server is killed. No stop message is ever sent over the
transport. With channel liveness on, the wait inside the loop is a ``read``
on stdin, so an EOF from the closed channel ends the loop without waiting
for the next poll.

Each state prints a marker line (``##switcheroo state=<name> key=value...``)
which the local side parses to follow the transitions. All other output is
server log and is streamed to the operator.
"""

import shlex
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from switcheroo.core.protocols import Logger
from switcheroo.utils.paths import REMOTE_BASE_DIR
from .cancellation import CancellationToken
from .exceptions import RemoteConnectionError, ServerStartError
from .installer import ReleaseArtifact
from .signals import INTERRUPT_EXIT_CODE
from .transport import SSHTransport
from .tunnel import PortForwardTunnel

MARKER_PREFIX = "##switcheroo"
SERVER_START_EXIT_CODE = 86
# Seconds to wait for the server to exit on SIGTERM before SIGKILL
TERM_GRACE_SECONDS = 5
ERROR_TAIL_LINES = 40


class SupervisorState(str, Enum):
    STARTING = "starting"
    VERIFIED = "verified"
    SUPERVISING = "supervising"
    TERMINATED = "terminated"
    FAILED = "failed"


TRANSITIONS: Dict[Optional[SupervisorState], frozenset] = {
    None: frozenset({SupervisorState.STARTING}),
    SupervisorState.STARTING: frozenset({SupervisorState.VERIFIED, SupervisorState.FAILED}),
    SupervisorState.VERIFIED: frozenset({SupervisorState.SUPERVISING}),
    SupervisorState.SUPERVISING: frozenset({SupervisorState.TERMINATED}),
    SupervisorState.TERMINATED: frozenset(),
    SupervisorState.FAILED: frozenset(),
}


def _seconds(value: float) -> str:
    """Render seconds for sleep/read -t without a trailing .0"""
    return f"{value:g}"


def _grace_steps() -> str:
    return " ".join(str(i) for i in range(1, TERM_GRACE_SECONDS + 1))


# --- script fragments, one per state -------------------------------------

def prelude_fragment() -> str:
    """Helpers shared by all states. No ``set -e``: kills may fail harmlessly."""
    return (
        "PARENT_PID=$PPID\n"
        f'marker() {{ echo "{MARKER_PREFIX} state=$*"; }}\n'
        # Zombies count as dead
        "is_alive() {\n"
        '  kill -0 "$1" 2>/dev/null || return 1\n'
        '  if [ -r "/proc/$1/status" ] && grep -q "^State:[[:space:]]*Z" "/proc/$1/status"; then\n'
        "    return 1\n"
        "  fi\n"
        "  return 0\n"
        "}\n"
        # Parent is gone once we have been reparented
        "parent_alive() {\n"
        '  if [ -r "/proc/$$/stat" ]; then\n'
        "    local stat\n"
        '    read -r stat < "/proc/$$/stat"\n'
        '    stat="${stat##*)}"\n'
        "    set -- $stat\n"
        '    [ "$2" = "$PARENT_PID" ]\n'
        "  else\n"
        '    kill -0 "$PARENT_PID" 2>/dev/null\n'
        "  fi\n"
        "}\n"
    )


def starting_fragment(server_command: str) -> str:
    return (
        f"{server_command} </dev/null 2>&1 &\n"
        "SERVER_PID=$!\n"
        'marker starting pid="$SERVER_PID"\n'
    )


def verify_fragment(verify_delay: float) -> str:
    delay = _seconds(verify_delay)
    return (
        f"sleep {delay}\n"
        'if ! is_alive "$SERVER_PID"; then\n'
        '  wait "$SERVER_PID" 2>/dev/null\n'
        "  STATUS=$?\n"
        '  marker failed pid="$SERVER_PID" status="$STATUS"\n'
        f'  echo "Server process exited within {delay}s (status $STATUS)."\n'
        '  echo "Most likely cause: architecture mismatch, the installed binary does not run on $(uname -m)."\n'
        f"  exit {SERVER_START_EXIT_CODE}\n"
        "fi\n"
        'marker verified pid="$SERVER_PID"\n'
    )


def supervise_fragment(poll_interval: float, channel_liveness: bool) -> str:
    interval = _seconds(poll_interval)
    if channel_liveness:
        # read: 0 = line (ignored), >128 = timeout, otherwise EOF
        wait_step = (
            f"  if read -r -t {interval} _; then :; elif [ $? -le 128 ]; then break; fi\n"
        )
    else:
        wait_step = f"  sleep {interval}\n"
    return (
        'marker supervising pid="$SERVER_PID" parent="$PARENT_PID"\n'
        'while parent_alive && is_alive "$SERVER_PID"; do\n'
        + wait_step
        + "done\n"
    )


def terminate_fragment() -> str:
    """Kill first, report after: the channel may already be gone."""
    return (
        "REASON=channel-closed\n"
        'if ! is_alive "$SERVER_PID"; then REASON=server-exited; fi\n'
        'pkill -TERM -P "$SERVER_PID" 2>/dev/null\n'
        'kill -TERM "$SERVER_PID" 2>/dev/null\n'
        f"for _ in {_grace_steps()}; do\n"
        '  is_alive "$SERVER_PID" || break\n'
        "  sleep 1\n"
        "done\n"
        'kill -KILL "$SERVER_PID" 2>/dev/null\n'
        'wait "$SERVER_PID" 2>/dev/null\n'
        "STATUS=$?\n"
        'marker terminated pid="$SERVER_PID" reason="$REASON" status="$STATUS"\n'
        'if [ "$REASON" = server-exited ]; then exit "$STATUS"; fi\n'
        "exit 0\n"
    )


def render_supervisor_script(
    server_command: str,
    verify_delay: float = 2,
    poll_interval: float = 1,
    channel_liveness: bool = True
) -> str:
    """Assemble the full remote script from the per-state fragments."""
    return "".join([
        prelude_fragment(),
        starting_fragment(server_command),
        verify_fragment(verify_delay),
        supervise_fragment(poll_interval, channel_liveness),
        terminate_fragment(),
    ])


def render_server_command(artifact: ReleaseArtifact, port: int, base_dir: str = REMOTE_BASE_DIR) -> str:
    """openvscode-server command line bound to localhost on the fixed port."""
    return (
        f'"{artifact.binary_path(base_dir)}"'
        f" --host 127.0.0.1 --port {int(port)}"
        f" --without-connection-token"
        f' --server-data-dir "{base_dir}/server-data"'
        f' --user-data-dir "{base_dir}/user-data"'
        f" --disable-workspace-trust"
    )


# --- local side -----------------------------------------------------------

@dataclass(frozen=True)
class Marker:
    state: SupervisorState
    fields: Dict[str, str]


def parse_marker(line: str) -> Optional[Marker]:
    """Parse a state marker line, or None for ordinary output."""
    if not line.startswith(MARKER_PREFIX + " "):
        return None
    values = {}
    for token in shlex.split(line[len(MARKER_PREFIX):]):
        key, sep, value = token.partition("=")
        if sep:
            values[key] = value
    try:
        state = SupervisorState(values.pop("state"))
    except (KeyError, ValueError):
        return None
    return Marker(state=state, fields=values)


@dataclass
class SupervisorOutcome:
    """How a supervised launch ended."""
    state: Optional[SupervisorState]
    returncode: int
    cancelled: bool = False
    fields: Dict[str, str] = field(default_factory=dict)


class SupervisorStateMachine:
    """Follows remote state markers and checks them against TRANSITIONS."""

    def __init__(self, logger: Logger, tunnel: PortForwardTunnel):
        self.log = logger
        self.tunnel = tunnel
        self.state: Optional[SupervisorState] = None
        self.fields: Dict[str, str] = {}

    def advance(self, marker: Marker) -> None:
        if marker.state not in TRANSITIONS[self.state]:
            self.log.warning(
                f"Unexpected supervisor transition {self.state.value if self.state else 'none'}"
                f" -> {marker.state.value}"
            )
        self.state = marker.state
        self.fields = marker.fields

        pid = marker.fields.get("pid", "?")
        if marker.state == SupervisorState.STARTING:
            self.log.info(f"Server starting (remote pid {pid})...")
        elif marker.state == SupervisorState.VERIFIED:
            self.log.info("✓ Server process is alive")
        elif marker.state == SupervisorState.SUPERVISING:
            self.log.info(f"✓ openvscode-server available at {self.tunnel.local_url}")
            self.log.info("Press Ctrl+C to stop the server and close the session")
        elif marker.state == SupervisorState.TERMINATED:
            self.log.info(f"Server stopped ({marker.fields.get('reason', 'unknown reason')})")
        elif marker.state == SupervisorState.FAILED:
            self.log.error(f"Server exited during startup (status {marker.fields.get('status', '?')})")


class RemoteProcessSupervisor:
    """Launches the supervision script together with the port forward."""

    def __init__(
        self,
        transport: SSHTransport,
        artifact: ReleaseArtifact,
        logger: Logger,
        verify_delay: float = 2,
        poll_interval: float = 1,
        channel_liveness: bool = True
    ):
        self.transport = transport
        self.artifact = artifact
        self.log = logger
        self.verify_delay = verify_delay
        self.poll_interval = poll_interval
        self.channel_liveness = channel_liveness

    def build_script(self, port: int) -> str:
        return render_supervisor_script(
            render_server_command(self.artifact, port),
            verify_delay=self.verify_delay,
            poll_interval=self.poll_interval,
            channel_liveness=self.channel_liveness
        )

    def launch(self, tunnel: PortForwardTunnel, token: CancellationToken) -> SupervisorOutcome:
        """
        Run the supervised server and stream its output until the
        invocation ends or the token is cancelled.

        Cancelling the token terminates the local ssh process; the remote
        loop sees its parent go away and kills the server.

        Returns:
            SupervisorOutcome (last remote state, ssh exit code, cancelled flag)

        Raises:
            ServerStartError: If the server died inside the verification window
            RemoteConnectionError: If ssh ended before the script started
                (connection refused, forward port already in use, ...)
        """
        machine = SupervisorStateMachine(self.log, tunnel)
        tail: deque = deque(maxlen=ERROR_TAIL_LINES)

        if token.cancelled:
            return SupervisorOutcome(state=None, returncode=INTERRUPT_EXIT_CODE, cancelled=True)

        handle = self.transport.stream(
            self.build_script(tunnel.remote_port),
            tunnel=tunnel,
            keep_stdin_open=self.channel_liveness
        )
        try:
            # Runs immediately if the token was cancelled while ssh started
            token.add_callback(handle.terminate)

            for line in handle.stdout:
                line = line.rstrip("\n")
                marker = parse_marker(line)
                if marker is not None:
                    machine.advance(marker)
                    continue
                tail.append(line)
                self.log.info(f"  [server] {line}")

            returncode = handle.wait()
        except BaseException:
            handle.terminate()
            raise

        outcome = SupervisorOutcome(
            state=machine.state,
            returncode=returncode,
            cancelled=token.cancelled,
            fields=machine.fields
        )
        if outcome.cancelled:
            return outcome

        output = "\n".join(tail)
        if machine.state == SupervisorState.FAILED or returncode == SERVER_START_EXIT_CODE:
            raise ServerStartError(
                f"openvscode-server exited immediately on {self.transport.describe()}\n\n"
                f"Remote output:\n{output}\n\n"
                f"This almost always means an architecture mismatch: the installed\n"
                f"bundle was built for a different CPU than the host has.\n"
                f"  - Re-run without --arch to auto-detect, or pass the right --arch\n"
                f"  - Re-run with --clear-cache to replace a cached bundle of the wrong type",
                stderr=output
            )

        if machine.state is None:
            raise RemoteConnectionError(
                f"Launch on {self.transport.describe()} failed before the server started "
                f"(ssh exit code {returncode})\n\n"
                f"Output:\n{output or '(no output)'}\n\n"
                f"If the output mentions a forwarding failure, local port "
                f"{tunnel.local_port} is probably already in use.",
                stderr=output
            )

        return outcome
