"""
PortForwardTunnel - fixed local-to-remote port mapping.

The tunnel is not a separate connection: its ssh options are added to the
same invocation that launches the supervised server, so the forward lives
exactly as long as the supervised session.
"""

from dataclasses import dataclass

LOCAL_BIND_HOST = "localhost"


@dataclass(frozen=True)
class PortForwardTunnel:
    """
    Forward localhost:<local_port> to <remote_host>:<remote_port> on the target.

    fixed() puts the same port on both ends; there is no free-port search.
    """
    local_port: int
    remote_port: int
    remote_host: str = "localhost"

    @classmethod
    def fixed(cls, port: int) -> "PortForwardTunnel":
        """Same port on both ends."""
        return cls(local_port=port, remote_port=port)

    def ssh_args(self) -> list[str]:
        """Options to add to the ssh command line."""
        return [
            # Fail the launch instead of running a server nobody can reach
            "-o", "ExitOnForwardFailure=yes",
            "-L", f"{self.local_port}:{self.remote_host}:{self.remote_port}",
        ]

    @property
    def local_host(self) -> str:
        return LOCAL_BIND_HOST

    @property
    def local_url(self) -> str:
        return f"http://{LOCAL_BIND_HOST}:{self.local_port}"
