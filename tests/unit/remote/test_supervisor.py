"""Unit tests for the supervision script and the local state follower."""
from unittest.mock import Mock

import pytest

from switcheroo.core.protocols import Logger
from switcheroo.remote.cancellation import CancellationToken
from switcheroo.remote.exceptions import RemoteConnectionError, ServerStartError
from switcheroo.remote.installer import ReleaseArtifact
from switcheroo.remote.supervisor import (
    MARKER_PREFIX,
    SERVER_START_EXIT_CODE,
    RemoteProcessSupervisor,
    SupervisorState,
    SupervisorStateMachine,
    parse_marker,
    render_server_command,
    render_supervisor_script,
    supervise_fragment,
    verify_fragment,
)
from switcheroo.remote.transport import SSHTransport
from switcheroo.remote.tunnel import PortForwardTunnel
from switcheroo.utils.config import DEFAULT_URL_TEMPLATE


ARTIFACT = ReleaseArtifact(version="1.103.1", url_template=DEFAULT_URL_TEMPLATE)


class FakeHandle:
    """Process handle replaying canned ssh output."""

    def __init__(self, lines, returncode=0, on_line=None):
        self._lines = lines
        self._returncode = returncode
        self._on_line = on_line
        self.stdin = None
        self.terminated = False

    @property
    def stdout(self):
        for index, line in enumerate(self._lines):
            yield line + "\n"
            if self._on_line:
                self._on_line(index)
            if self.terminated:
                return

    def poll(self):
        return self._returncode

    def wait(self, timeout=None):
        return self._returncode

    def terminate(self):
        self.terminated = True


class RaisingHandle(FakeHandle):
    """Replays some output, then fails the way a broken read would."""

    def __init__(self, lines, error):
        super().__init__(lines)
        self._error = error

    @property
    def stdout(self):
        yield from super().stdout
        raise self._error


def marker(state, **fields):
    extra = "".join(f' {k}="{v}"' for k, v in fields.items())
    return f"{MARKER_PREFIX} state={state}{extra}"


def create_supervisor(handle, channel_liveness=True):
    transport = Mock(spec=SSHTransport)
    transport.describe.return_value = "devbox"
    transport.stream.return_value = handle
    logger = Mock(spec=Logger)
    supervisor = RemoteProcessSupervisor(
        transport, ARTIFACT, logger, verify_delay=2, poll_interval=1,
        channel_liveness=channel_liveness
    )
    return supervisor, transport, logger


HEALTHY_RUN = [
    marker("starting", pid=4242),
    "[main] Web UI available at http://localhost:8765/",
    marker("verified", pid=4242),
    marker("supervising", pid=4242, parent=4200),
    marker("terminated", pid=4242, reason="channel-closed", status=143),
]


class TestParseMarker:

    def test_marker_with_fields(self):
        parsed = parse_marker(f'{MARKER_PREFIX} state=terminated pid="12" reason="channel-closed"')

        assert parsed.state == SupervisorState.TERMINATED
        assert parsed.fields == {"pid": "12", "reason": "channel-closed"}

    @pytest.mark.parametrize("line", [
        "[main] Extension host agent started.",
        f"{MARKER_PREFIX}state=starting",
        f"{MARKER_PREFIX} pid=1",
        f"{MARKER_PREFIX} state=exploded",
        "",
    ])
    def test_ordinary_output(self, line):
        assert parse_marker(line) is None


class TestScriptRendering:

    def test_states_appear_in_order(self):
        script = render_supervisor_script("srv")

        positions = [script.index(f"marker {s}") for s in
                     ("starting", "failed", "verified", "supervising", "terminated")]
        assert positions == sorted(positions)

    def test_server_stdin_detached_from_channel(self):
        script = render_supervisor_script("srv")

        assert "srv </dev/null 2>&1 &" in script

    def test_verify_failure_exits_with_start_code(self):
        fragment = verify_fragment(2)

        assert "sleep 2\n" in fragment
        assert f"exit {SERVER_START_EXIT_CODE}" in fragment
        assert "architecture mismatch" in fragment

    def test_fractional_intervals_render_cleanly(self):
        assert "sleep 0.5\n" in verify_fragment(0.5)
        assert "sleep 1\n" in verify_fragment(1.0)

    def test_channel_liveness_reads_stdin(self):
        fragment = supervise_fragment(1, channel_liveness=True)

        assert "read -r -t 1 _" in fragment
        assert "break" in fragment
        assert "sleep" not in fragment

    def test_without_channel_liveness_polls_parent_only(self):
        fragment = supervise_fragment(3, channel_liveness=False)

        assert "sleep 3\n" in fragment
        assert "read -r" not in fragment
        assert 'while parent_alive && is_alive "$SERVER_PID"' in fragment

    def test_termination_escalates_to_kill(self):
        script = render_supervisor_script("srv")

        assert script.index('kill -TERM "$SERVER_PID"') < script.index('kill -KILL "$SERVER_PID"')

    def test_server_command_binds_localhost_on_fixed_port(self):
        command = render_server_command(ARTIFACT, 8765)

        assert command.startswith(
            '"$HOME/.socratic-shell/theoldswitcheroo/openvscode-server/bin/openvscode-server"'
        )
        assert "--host 127.0.0.1 --port 8765" in command
        assert "--without-connection-token" in command

    def test_build_script_uses_tunnel_port(self):
        supervisor, _, _ = create_supervisor(FakeHandle([]))

        assert "--port 9100" in supervisor.build_script(9100)


class TestStateMachine:

    def test_expected_sequence_logs_url(self):
        logger = Mock(spec=Logger)
        machine = SupervisorStateMachine(logger, PortForwardTunnel.fixed(8765))

        for line in HEALTHY_RUN:
            parsed = parse_marker(line)
            if parsed:
                machine.advance(parsed)

        assert machine.state == SupervisorState.TERMINATED
        logger.warning.assert_not_called()
        logger.info.assert_any_call("✓ openvscode-server available at http://localhost:8765")

    def test_unexpected_transition_warns(self):
        logger = Mock(spec=Logger)
        machine = SupervisorStateMachine(logger, PortForwardTunnel.fixed(8765))

        machine.advance(parse_marker(marker("supervising")))

        logger.warning.assert_called_once()


class TestLaunch:

    def test_stream_carries_tunnel_and_open_stdin(self):
        supervisor, transport, _ = create_supervisor(FakeHandle(HEALTHY_RUN))
        tunnel = PortForwardTunnel.fixed(8765)

        supervisor.launch(tunnel, CancellationToken())

        _, kwargs = transport.stream.call_args
        assert kwargs["tunnel"] is tunnel
        assert kwargs["keep_stdin_open"] is True

    def test_healthy_run_streams_server_output(self):
        supervisor, _, logger = create_supervisor(FakeHandle(HEALTHY_RUN))

        outcome = supervisor.launch(PortForwardTunnel.fixed(8765), CancellationToken())

        assert outcome.state == SupervisorState.TERMINATED
        assert outcome.returncode == 0
        assert not outcome.cancelled
        assert outcome.fields["reason"] == "channel-closed"
        logger.info.assert_any_call("  [server] [main] Web UI available at http://localhost:8765/")

    def test_server_dying_early_raises_start_error(self):
        lines = [
            marker("starting", pid=7),
            "openvscode-server: cannot execute binary file: Exec format error",
            marker("failed", pid=7, status=126),
            "Server process exited within 2s (status 126).",
        ]
        supervisor, _, _ = create_supervisor(FakeHandle(lines, returncode=SERVER_START_EXIT_CODE))

        with pytest.raises(ServerStartError) as exc_info:
            supervisor.launch(PortForwardTunnel.fixed(8765), CancellationToken())

        assert "Exec format error" in exc_info.value.stderr
        assert "--clear-cache" in str(exc_info.value)

    def test_start_exit_code_alone_is_a_start_error(self):
        supervisor, _, _ = create_supervisor(FakeHandle([], returncode=SERVER_START_EXIT_CODE))

        with pytest.raises(ServerStartError):
            supervisor.launch(PortForwardTunnel.fixed(8765), CancellationToken())

    def test_ssh_failure_before_script_is_connection_error(self):
        lines = ["bind [127.0.0.1]:8765: Address already in use",
                 "Error: local port forwarding failed for listen port 8765"]
        supervisor, _, _ = create_supervisor(FakeHandle(lines, returncode=255))

        with pytest.raises(RemoteConnectionError) as exc_info:
            supervisor.launch(PortForwardTunnel.fixed(8765), CancellationToken())

        assert "8765" in str(exc_info.value)
        assert "Address already in use" in exc_info.value.stderr

    def test_cancel_terminates_ssh_and_returns(self):
        token = CancellationToken()

        def cancel_when_supervising(index):
            if index == 3:
                token.cancel()

        handle = FakeHandle(HEALTHY_RUN[:4], returncode=-15, on_line=cancel_when_supervising)
        supervisor, _, _ = create_supervisor(handle)

        outcome = supervisor.launch(PortForwardTunnel.fixed(8765), token)

        assert handle.terminated
        assert outcome.cancelled
        assert outcome.state == SupervisorState.SUPERVISING

    def test_server_exit_is_reported_through_returncode(self):
        lines = HEALTHY_RUN[:4] + [marker("terminated", pid=4242, reason="server-exited", status=1)]
        supervisor, _, _ = create_supervisor(FakeHandle(lines, returncode=1))

        outcome = supervisor.launch(PortForwardTunnel.fixed(8765), CancellationToken())

        assert outcome.returncode == 1
        assert outcome.fields["reason"] == "server-exited"

    def test_cancel_while_ssh_starts_terminates_it(self):
        token = CancellationToken()
        handle = FakeHandle(HEALTHY_RUN)
        supervisor, transport, _ = create_supervisor(handle)

        def start_and_cancel(*args, **kwargs):
            token.cancel()
            return handle

        transport.stream.side_effect = start_and_cancel

        outcome = supervisor.launch(PortForwardTunnel.fixed(8765), token)

        assert handle.terminated
        assert outcome.cancelled

    def test_cancelled_token_skips_launch(self):
        token = CancellationToken()
        token.cancel()
        supervisor, transport, _ = create_supervisor(FakeHandle(HEALTHY_RUN))

        outcome = supervisor.launch(PortForwardTunnel.fixed(8765), token)

        assert outcome.cancelled
        assert outcome.state is None
        transport.stream.assert_not_called()

    @pytest.mark.parametrize("error", [
        UnicodeDecodeError("utf-8", b"caf\xe9", 3, 4, "invalid continuation byte"),
        SystemExit(130),
    ])
    def test_error_while_reading_terminates_ssh(self, error):
        handle = RaisingHandle(HEALTHY_RUN[:2], error)
        supervisor, _, _ = create_supervisor(handle)

        with pytest.raises(type(error)):
            supervisor.launch(PortForwardTunnel.fixed(8765), CancellationToken())

        assert handle.terminated
