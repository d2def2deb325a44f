"""Remove the remote installation and the local session file"""
from switcheroo.core import YamlConfigLoader
from switcheroo.remote import BootstrapFactory, Runtime, session_store
from switcheroo.utils.config import load_settings
from switcheroo.utils.paths import REMOTE_BASE_DIR


def setup_parser(parser):
    """Setup argument parser for clean command"""
    parser.add_argument(
        '--host',
        help='Target host (default: "host" from the settings file)'
    )
    parser.add_argument(
        '--local-only',
        action='store_true',
        help='Only remove the local session file (e.g. after a crash)'
    )
    parser.add_argument(
        '--config',
        help='Settings file (default: ~/.socratic-shell/theoldswitcheroo/settings.yaml)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show ssh commands'
    )


def execute(args, runtime=None):
    """Execute clean command"""
    runtime = runtime or Runtime.production(verbose=args.verbose)
    log = runtime.logger

    if args.local_only:
        if not session_store(runtime).cleanup():
            log.info("No session file to remove.")
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

    transport = factory.transport()
    log.info(f"Cleaning {REMOTE_BASE_DIR} on {transport.describe()}...")
    result = transport.run(f'rm -rf "{REMOTE_BASE_DIR}"')

    if result.returncode != 0:
        log.error(
            f"Failed to clean {transport.describe()} (exit code {result.returncode})\n"
            f"{result.stderr.strip()}"
        )
        return result.returncode

    log.info(f"✓ Cleaned {transport.describe()}")
    factory.session_store().cleanup()
    return 0
