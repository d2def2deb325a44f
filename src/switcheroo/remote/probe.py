"""
ConnectionProbe - verify the transport can reach and execute on the host.
"""

from switcheroo.core.protocols import Logger
from .exceptions import RemoteConnectionError
from .transport import SSHTransport

HEALTH_COMMAND = "curl -sL -o /dev/null -w '%{{http_code}}' http://localhost:{port} || true"


class ConnectionProbe:
    """Runs a remote no-op. No retries: the first failure aborts the run."""

    def __init__(self, transport: SSHTransport, logger: Logger):
        self.transport = transport
        self.log = logger

    def probe(self) -> None:
        """
        Execute ``true`` on the remote host.

        Raises:
            RemoteConnectionError: If ssh exits nonzero (unreachable host,
                auth refused, remote shell broken)
        """
        result = self.transport.run("true")

        if result.returncode != 0:
            stderr = result.stderr.strip()
            hint = self.transport.ssh_hint()
            raise RemoteConnectionError(
                f"Cannot reach {self.transport.describe()} (ssh exit code {result.returncode})\n"
                f"Error: {stderr or '(no output)'}\n\n"
                f"Troubleshooting:\n"
                f"  1. Verify SSH access: {hint} true\n"
                f"  2. Passwordless login is required (BatchMode): ssh-copy-id {self.transport.host}\n"
                f"  3. Check network: ping {self.transport.host}",
                stderr=stderr
            )

        self.log.debug(f"Probe of {self.transport.host} succeeded")

    def check_server(self, port: int) -> bool:
        """
        Ask the remote host whether the server answers HTTP 200 on port.

        Used by ``switcheroo status --check``; never raises on a failed
        check, only reports it.
        """
        result = self.transport.run(HEALTH_COMMAND.format(port=port))
        if result.returncode != 0:
            self.log.debug(f"Health check command failed: {result.stderr.strip()}")
            return False
        return result.stdout.strip() == "200"
