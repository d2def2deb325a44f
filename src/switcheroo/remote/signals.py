"""
SignalHandler - interrupt the control process and clean up.

Installed once, right before the supervised launch. On the first SIGINT or
SIGTERM it announces shutdown, deletes the session descriptor, cancels the
token (which terminates the local ssh process) and exits. Nothing is sent
to the remote host: the channel closing is what stops the server there.
"""

import signal
import sys
from typing import Any, Callable, Dict, Optional

from switcheroo.core.protocols import Logger, SignalRegistrar
from .cancellation import CancellationToken
from .session import SessionStateStore

INTERRUPT_EXIT_CODE = 130
HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SignalHandler:
    """Routes interrupts to session cleanup + cancellation."""

    def __init__(
        self,
        token: CancellationToken,
        store: SessionStateStore,
        logger: Logger,
        registrar: SignalRegistrar,
        exit_fn: Optional[Callable[[int], Any]] = None
    ):
        """
        Args:
            token: Cancelled on the first interrupt
            store: Session descriptor to delete
            logger: Logging abstraction
            registrar: Installs the handler (signal.signal in production)
            exit_fn: Ends the control process (sys.exit by default)
        """
        self.token = token
        self.store = store
        self.log = logger
        self.registrar = registrar
        self.exit_fn = exit_fn or sys.exit
        self._installed = False
        self._previous: Dict[int, Any] = {}

    def install(self) -> None:
        """Register for SIGINT and SIGTERM. Repeated calls are no-ops."""
        if self._installed:
            return
        for signum in HANDLED_SIGNALS:
            self._previous[signum] = self.registrar.register(signum, self.handle)
        self._installed = True

    def restore(self) -> None:
        """Put back the handlers install() replaced. No-op unless installed."""
        if not self._installed:
            return
        for signum, previous in self._previous.items():
            # None: the previous handler was not installed from Python
            if previous is not None:
                self.registrar.register(signum, previous)
        self._previous = {}
        self._installed = False

    def handle(self, signum: int, frame: Any = None) -> None:
        """Signal entry point; safe at any point of the main sequence."""
        self.log.info("")
        self.log.info(f"Received {signal.Signals(signum).name}, shutting down...")
        self.store.cleanup()
        self.token.cancel()
        self.log.info("Session terminated")
        self.exit_fn(INTERRUPT_EXIT_CODE)
