"""Show the active session, if any"""
from switcheroo.core import YamlConfigLoader
from switcheroo.remote import BootstrapFactory, ConnectionProbe, Runtime, SessionStateError, session_store
from switcheroo.utils.config import load_settings


def setup_parser(parser):
    """Setup argument parser for status command"""
    parser.add_argument(
        '--check',
        action='store_true',
        help='Also ask the remote host whether the server answers on the session port'
    )
    parser.add_argument(
        '--host',
        help='Host to check (default: "host" from the settings file)'
    )
    parser.add_argument(
        '--config',
        help='Settings file (default: ~/.socratic-shell/theoldswitcheroo/settings.yaml)'
    )


def execute(args, runtime=None):
    """Execute status command

    Exit codes: 0 = session recorded (and healthy, with --check),
    1 = error or unhealthy, 3 = no session.
    """
    runtime = runtime or Runtime.production()
    log = runtime.logger
    store = session_store(runtime)

    try:
        descriptor = store.read()
    except SessionStateError as e:
        log.error(str(e))
        return 1

    if descriptor is None:
        log.info("No active session.")
        return 3

    log.info(f"Active session: {descriptor.url}")
    log.info(f"Session file: {store.path}")

    if not args.check:
        return 0

    try:
        settings = load_settings(
            YamlConfigLoader(runtime.filesystem),
            runtime.filesystem,
            runtime.env_provider,
            config_path=args.config,
            overrides={'host': args.host}
        )
        factory = BootstrapFactory(settings, runtime)
    except ValueError as e:
        log.error(str(e))
        return 1

    probe = ConnectionProbe(factory.transport(), log)
    if probe.check_server(descriptor.port):
        log.info(f"✓ Server on {factory.destination} answers on port {descriptor.port}")
        return 0

    log.warning(f"Server on {factory.destination} is not answering on port {descriptor.port}")
    return 1
