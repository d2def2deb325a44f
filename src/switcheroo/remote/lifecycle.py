"""
SessionBootstrapper - the end-to-end session lifecycle.

Phases run strictly in order; each has one named failure:

    PROBE           -> RemoteConnectionError
    DETECT          -> DetectionError
    INSTALL         -> InstallError
    RECORD_SESSION  -> SessionStateError
    LAUNCH          -> ServerStartError | RemoteConnectionError
    TEARDOWN        (always runs once the session was recorded)

Any failure moves to FAILED and is re-raised after teardown. Nothing is
retried; every phase is idempotent, so running the tool again is the retry.
"""

from enum import Enum
from typing import Optional, Union

from switcheroo.core.protocols import Logger, TimeProvider
from .arch import ArchitectureDetector, ArchTag
from .cancellation import CancellationToken
from .exceptions import BootstrapError
from .installer import InstallationManager
from .probe import ConnectionProbe
from .session import SessionDescriptor, SessionStateStore
from .signals import SignalHandler
from .supervisor import RemoteProcessSupervisor, SupervisorOutcome
from .tunnel import PortForwardTunnel


class Phase(str, Enum):
    PENDING = "pending"
    PROBE = "probe"
    DETECT = "detect"
    INSTALL = "install"
    RECORD_SESSION = "record-session"
    LAUNCH = "launch"
    TEARDOWN = "teardown"
    DONE = "done"
    FAILED = "failed"


class SessionBootstrapper:
    """
    Drives probe -> detect -> install -> record -> launch -> teardown.

    All collaborators are injected, so the whole sequence can run against
    fakes in tests.
    """

    def __init__(
        self,
        host: str,
        probe: ConnectionProbe,
        detector: ArchitectureDetector,
        installer: InstallationManager,
        store: SessionStateStore,
        supervisor: RemoteProcessSupervisor,
        tunnel: PortForwardTunnel,
        signal_handler: SignalHandler,
        token: CancellationToken,
        time_provider: TimeProvider,
        logger: Logger
    ):
        self.host = host
        self.probe = probe
        self.detector = detector
        self.installer = installer
        self.store = store
        self.supervisor = supervisor
        self.tunnel = tunnel
        self.signals = signal_handler
        self.token = token
        self.time = time_provider
        self.log = logger

        self.phase = Phase.PENDING
        self.failed_phase: Optional[Phase] = None
        self.arch: Optional[Union[ArchTag, str]] = None
        self._session_recorded = False
        self._phase_started = 0.0

    def _enter(self, phase: Phase, announce: Optional[str] = None) -> None:
        now = self.time.current_time()
        if self.phase not in (Phase.PENDING, Phase.FAILED):
            self.log.debug(f"Phase {self.phase.value} took {now - self._phase_started:.1f}s")
        self.phase = phase
        self._phase_started = now
        if announce:
            self.log.info(announce)

    def run(
        self,
        arch_override: Optional[Union[ArchTag, str]] = None,
        clear_cache: bool = False
    ) -> SupervisorOutcome:
        """
        Run one session to completion.

        Args:
            arch_override: Skip detection and use this tag
            clear_cache: Force re-download and re-extraction

        Returns:
            SupervisorOutcome of the supervised launch

        Raises:
            BootstrapError: The failure of whichever phase failed, after
                teardown has run
        """
        try:
            self._enter(Phase.PROBE, f"[1/5] Connecting to {self.host}...")
            self.probe.probe()

            self._enter(Phase.DETECT, "[2/5] Detecting architecture...")
            self.arch = self.detector.detect(arch_override)

            self._enter(Phase.INSTALL, "[3/5] Checking installation...")
            self.installer.ensure_installed(self.arch, clear_cache=clear_cache)

            self._enter(Phase.RECORD_SESSION, "[4/5] Recording session...")
            if self.store.exists():
                self.log.warning(
                    f"Stale session file {self.store.path} from a previous run, replacing it"
                )
            self.signals.install()
            self._session_recorded = True
            self.store.write(SessionDescriptor(host=self.tunnel.local_host, port=self.tunnel.local_port))

            self._enter(
                Phase.LAUNCH,
                f"[5/5] Starting openvscode-server (forwarding localhost:{self.tunnel.local_port})..."
            )
            outcome = self.supervisor.launch(self.tunnel, self.token)
        except BootstrapError:
            self.failed_phase = self.phase
            self.phase = Phase.FAILED
            raise
        finally:
            if self._session_recorded:
                self._teardown()

        self._enter(Phase.DONE)
        return outcome

    def _teardown(self) -> None:
        if self.phase != Phase.FAILED:
            self._enter(Phase.TEARDOWN)
        self.store.cleanup()
        self.signals.restore()
        self._session_recorded = False
