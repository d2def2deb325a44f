"""
Remote session subsystem.

Bootstraps a supervised openvscode-server on a remote host over ssh:
    probe -> detect -> install -> record session -> launch + tunnel -> teardown

Public API:
    - SessionBootstrapper, Phase: End-to-end lifecycle
    - BootstrapFactory, Runtime: Production wiring
    - ConnectionProbe, ArchitectureDetector, InstallationManager,
      RemoteProcessSupervisor, PortForwardTunnel, SessionStateStore,
      SignalHandler, CancellationToken: Individual components
    - BootstrapError and subclasses: Failure taxonomy
"""

from .arch import ArchTag, ArchitectureDetector, map_architecture
from .cancellation import CancellationToken
from .exceptions import (
    BootstrapError,
    RemoteConnectionError,
    DetectionError,
    InstallError,
    ServerStartError,
    SessionStateError,
)
from .factory import BootstrapFactory, Runtime, parse_host, session_store
from .installer import InstallationManager, InstallPlan, InstallStep, ReleaseArtifact, RemoteInstallState
from .lifecycle import Phase, SessionBootstrapper
from .probe import ConnectionProbe
from .session import SessionDescriptor, SessionStateStore
from .signals import SignalHandler
from .supervisor import RemoteProcessSupervisor, SupervisorOutcome, SupervisorState
from .transport import SSHTransport
from .tunnel import PortForwardTunnel

__all__ = [
    # Lifecycle
    "SessionBootstrapper",
    "Phase",
    "BootstrapFactory",
    "Runtime",
    "parse_host",
    "session_store",

    # Components
    "SSHTransport",
    "ConnectionProbe",
    "ArchTag",
    "ArchitectureDetector",
    "map_architecture",
    "InstallationManager",
    "InstallPlan",
    "InstallStep",
    "ReleaseArtifact",
    "RemoteInstallState",
    "RemoteProcessSupervisor",
    "SupervisorOutcome",
    "SupervisorState",
    "PortForwardTunnel",
    "SessionDescriptor",
    "SessionStateStore",
    "SignalHandler",
    "CancellationToken",

    # Exceptions
    "BootstrapError",
    "RemoteConnectionError",
    "DetectionError",
    "InstallError",
    "ServerStartError",
    "SessionStateError",
]
