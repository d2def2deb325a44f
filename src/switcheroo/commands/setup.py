"""Bootstrap a remote openvscode-server session"""
import sys

from switcheroo.core import YamlConfigLoader
from switcheroo.remote import ArchTag, BootstrapError, BootstrapFactory, Runtime
from switcheroo.remote.signals import INTERRUPT_EXIT_CODE
from switcheroo.utils.config import load_settings


def setup_parser(parser):
    """Setup argument parser for setup command"""
    parser.add_argument(
        '--host',
        help='Target host: ssh alias, user@host, or user@host:port '
             '(default: "host" from the settings file)'
    )
    parser.add_argument(
        '--arch',
        choices=[tag.value for tag in ArchTag],
        help='Skip detection and install this architecture'
    )
    parser.add_argument(
        '--clear-cache',
        action='store_true',
        help='Remove the cached download and unpacked server first'
    )
    parser.add_argument(
        '--port',
        type=int,
        help='Local and remote port for the server (default: 8765)'
    )
    parser.add_argument(
        '--config',
        help='Settings file (default: ~/.socratic-shell/theoldswitcheroo/settings.yaml)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show ssh commands and phase timings'
    )


def describe_remote_state(outcome):
    """Last remote state plus whatever the supervisor reported with it."""
    parts = [f"last remote state: {outcome.state.value if outcome.state else 'none'}"]
    for key, label in (('reason', 'reason'), ('pid', 'remote pid'), ('status', 'status')):
        if key in outcome.fields:
            parts.append(f"{label} {outcome.fields[key]}")
    return ", ".join(parts)


def execute(args, runtime=None):
    """Execute setup command"""
    runtime = runtime or Runtime.production(verbose=args.verbose)
    log = runtime.logger

    try:
        settings = load_settings(
            YamlConfigLoader(runtime.filesystem),
            runtime.filesystem,
            runtime.env_provider,
            config_path=args.config,
            overrides={'host': args.host, 'port': args.port}
        )
        factory = BootstrapFactory(settings, runtime)
    except ValueError as e:
        log.error(str(e))
        return 1

    bootstrapper = factory.bootstrapper()

    try:
        outcome = bootstrapper.run(arch_override=args.arch, clear_cache=args.clear_cache)
    except BootstrapError as e:
        log.error(f"{bootstrapper.failed_phase.value} failed\n{e}")
        return 1

    if outcome.cancelled:
        return INTERRUPT_EXIT_CODE

    if outcome.returncode != 0:
        log.error(
            f"Session on {factory.destination} ended with ssh exit code {outcome.returncode}"
            f" ({describe_remote_state(outcome)})"
        )
        return 1

    log.info("Session closed")
    return 0


if __name__ == '__main__':
    import argparse
    parser = argparse.ArgumentParser(prog='switcheroo setup')
    setup_parser(parser)
    sys.exit(execute(parser.parse_args()))
