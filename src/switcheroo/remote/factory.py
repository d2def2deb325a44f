"""
BootstrapFactory - parse host strings and wire production components.

Host formats:
    devbox                  -> ssh devbox            (alias from ~/.ssh/config)
    user@host               -> ssh user@host
    user@host:2222          -> ssh -p 2222 user@host
    user@[fe80::1]:2222     -> ssh -p 2222 user@fe80::1
    [fe80::1]               -> ssh fe80::1
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from switcheroo.core import (
    ConsoleLogger,
    EnvironmentProvider,
    FileSystemService,
    Logger,
    ProcessExecutor,
    RealFileSystemService,
    SignalRegistrar,
    SubprocessExecutor,
    SystemEnvironmentProvider,
    SystemSignalRegistrar,
    SystemTimeProvider,
    TimeProvider,
)
from switcheroo.utils.config import Settings
from switcheroo.utils.paths import session_file
from .arch import ArchitectureDetector
from .cancellation import CancellationToken
from .installer import InstallationManager, ReleaseArtifact
from .lifecycle import SessionBootstrapper
from .probe import ConnectionProbe
from .session import SessionStateStore
from .signals import SignalHandler
from .supervisor import RemoteProcessSupervisor
from .transport import SSHTransport
from .tunnel import PortForwardTunnel


def parse_host(host: str) -> Tuple[str, Optional[int]]:
    """
    Split a host string into an ssh destination and an optional port.

    Raises:
        ValueError: If the string is empty or malformed
    """
    if not host or not host.strip():
        raise ValueError("Host must not be empty")
    host = host.strip()

    user = ""
    host_part = host
    if '@' in host:
        user, host_part = host.rsplit('@', 1)
        user += '@'

    # IPv6: [fe80::1] or [fe80::1]:2222
    if host_part.startswith('['):
        bracket_end = host_part.find(']')
        if bracket_end == -1:
            raise ValueError(f"Malformed IPv6 address: {host}")
        address = host_part[1:bracket_end]
        remainder = host_part[bracket_end + 1:]
        port = _parse_port(remainder[1:], host) if remainder.startswith(':') else None
        return f"{user}{address}", port

    # hostname:port (a bare IPv6 address without brackets has several colons)
    if host_part.count(':') == 1:
        name, port_str = host_part.rsplit(':', 1)
        return f"{user}{name}", _parse_port(port_str, host)

    return f"{user}{host_part}", None


def _parse_port(port_str: str, original: str) -> int:
    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port in host string: {original}")
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range in host string: {original}")
    return port


@dataclass
class Runtime:
    """Production dependencies shared by the commands."""
    filesystem: FileSystemService
    process_executor: ProcessExecutor
    time_provider: TimeProvider
    env_provider: EnvironmentProvider
    signal_registrar: SignalRegistrar
    logger: Logger

    @classmethod
    def production(cls, verbose: bool = False) -> "Runtime":
        return cls(
            filesystem=RealFileSystemService(),
            process_executor=SubprocessExecutor(),
            time_provider=SystemTimeProvider(),
            env_provider=SystemEnvironmentProvider(),
            signal_registrar=SystemSignalRegistrar(),
            logger=ConsoleLogger(verbose=verbose)
        )


class BootstrapFactory:
    """Builds fully wired components from Settings."""

    def __init__(self, settings: Settings, runtime: Runtime):
        if not settings.host:
            raise ValueError(
                "No host given. Pass --host HOST or set 'host' in the settings file."
            )
        self.settings = settings
        self.runtime = runtime
        self.destination, port_from_host = parse_host(settings.host)
        self.ssh_port = port_from_host if port_from_host is not None else settings.ssh_port

    def transport(self) -> SSHTransport:
        return SSHTransport(
            self.destination,
            self.runtime.process_executor,
            self.runtime.logger,
            ssh_port=self.ssh_port,
            connect_timeout=self.settings.connect_timeout
        )

    def artifact(self) -> ReleaseArtifact:
        return ReleaseArtifact(version=self.settings.version, url_template=self.settings.url_template)

    def session_store(self) -> SessionStateStore:
        return session_store(self.runtime)

    def bootstrapper(self, token: Optional[CancellationToken] = None) -> SessionBootstrapper:
        rt = self.runtime
        transport = self.transport()
        artifact = self.artifact()
        store = self.session_store()
        token = token or CancellationToken()

        return SessionBootstrapper(
            host=self.destination,
            probe=ConnectionProbe(transport, rt.logger),
            detector=ArchitectureDetector(transport, rt.logger),
            installer=InstallationManager(transport, artifact, rt.logger),
            store=store,
            supervisor=RemoteProcessSupervisor(
                transport,
                artifact,
                rt.logger,
                verify_delay=self.settings.verify_delay,
                poll_interval=self.settings.poll_interval,
                channel_liveness=self.settings.channel_liveness
            ),
            tunnel=PortForwardTunnel.fixed(self.settings.port),
            signal_handler=SignalHandler(token, store, rt.logger, rt.signal_registrar),
            token=token,
            time_provider=rt.time_provider,
            logger=rt.logger
        )


def session_store(runtime: Runtime) -> SessionStateStore:
    """Session store at the default location (no host needed)."""
    return SessionStateStore(
        runtime.filesystem,
        session_file(runtime.env_provider.home_dir()),
        runtime.logger
    )
