"""
SSHTransport - remote execution through the system ssh client.

Provides the three primitives the bootstrap sequence needs:
    run()     - run a command, wait, capture exit status + stdout + stderr
    stream()  - start a command and read its combined output line by line
    tunnel    - optional -L forward attached to a streamed command

Scripts are always executed by bash on the remote side (``exec bash -c``),
whatever the user's login shell is. The ``exec`` matters: it makes the
sshd session process the direct parent of the script, which is what the
supervision loop watches.
"""

import shlex
import subprocess
from typing import Optional

from switcheroo.core.protocols import Logger, ProcessExecutor, ProcessHandle, ProcessResult
from .tunnel import PortForwardTunnel


def bash_command(script: str) -> str:
    """Wrap a multi-line script so the remote login shell hands it to bash."""
    return f"exec bash -c {shlex.quote(script)}"


class SSHTransport:
    """
    Remote execution over ssh.

    Authentication is whatever ssh is already configured for (keys, agent,
    ~/.ssh/config). BatchMode is always on: the tool never prompts.
    """

    def __init__(
        self,
        host: str,
        process_executor: ProcessExecutor,
        logger: Logger,
        ssh_port: Optional[int] = None,
        connect_timeout: int = 10
    ):
        """
        Initialize SSH transport.

        Args:
            host: ssh destination (alias, user@host, IP)
            process_executor: Subprocess abstraction
            logger: Logging abstraction
            ssh_port: Explicit port (None: leave it to ssh config)
            connect_timeout: Seconds before ssh gives up connecting
        """
        self.host = host
        self.process = process_executor
        self.log = logger
        self.ssh_port = ssh_port
        self.connect_timeout = connect_timeout

    def _ssh_cmd(self, command: str, extra_args: Optional[list[str]] = None) -> list[str]:
        """Build ssh command line."""
        cmd = ["ssh"]
        if self.ssh_port is not None:
            cmd += ["-p", str(self.ssh_port)]
        cmd += [
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self.connect_timeout}",
        ]
        cmd += extra_args or []
        cmd += [self.host, command]
        return cmd

    def run(self, command: str) -> ProcessResult:
        """Run command remotely and wait for it."""
        self.log.debug(f"ssh {self.host}: {command}")
        return self.process.run(self._ssh_cmd(command))

    def run_script(self, script: str) -> ProcessResult:
        """Run a bash script remotely and wait for it."""
        return self.run(bash_command(script))

    def stream(
        self,
        script: str,
        tunnel: Optional[PortForwardTunnel] = None,
        keep_stdin_open: bool = False
    ) -> ProcessHandle:
        """
        Start a bash script remotely with stdout and stderr merged.

        Args:
            script: bash script body
            tunnel: Port forward to attach to this invocation
            keep_stdin_open: Give ssh a stdin pipe that is never written to.
                When this process dies the pipe closes and the remote side
                reads EOF, an explicit channel-closed signal.

        Returns:
            Handle whose stdout yields decoded lines
        """
        extra_args = tunnel.ssh_args() if tunnel else []
        cmd = self._ssh_cmd(bash_command(script), extra_args)
        self.log.debug(f"ssh {self.host} (streaming): {' '.join(cmd[:-1])} <script>")
        return self.process.popen(
            cmd,
            stdin=subprocess.PIPE if keep_stdin_open else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT
        )

    def describe(self) -> str:
        """Human-readable destination, for messages."""
        if self.ssh_port is not None:
            return f"{self.host} (port {self.ssh_port})"
        return self.host

    def ssh_hint(self) -> str:
        """The ssh command an operator would type to reach this host."""
        port = f"-p {self.ssh_port} " if self.ssh_port is not None else ""
        return f"ssh {port}{self.host}"
