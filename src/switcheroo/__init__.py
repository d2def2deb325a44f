"""
switcheroo - Remote openvscode-server bootstrapper

Connects to a host over SSH, installs a pinned openvscode-server release
for the host's architecture, runs it under a supervisor that stops it when
the connection goes away, and forwards its port to localhost.
"""
import argparse
import sys

__version__ = "0.1.0"


def main():
    """Main CLI entry point"""
    from switcheroo.commands import setup, clean, status

    parser = argparse.ArgumentParser(
        prog='switcheroo',
        description='switcheroo: openvscode-server on a remote host, one command away',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  switcheroo setup --host devbox              # Install (if needed) and start a session
  switcheroo setup --host me@box:2222 -v      # Non-default ssh port, verbose
  switcheroo setup --arch linux-arm64         # Skip detection, use settings host
  switcheroo setup --clear-cache              # Re-download and re-extract first
  switcheroo status --check                   # Show session and probe the server
  switcheroo clean --host devbox              # Remove the remote installation
  switcheroo clean --local-only               # Remove a stale session file
        '''
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Setup command
    setup_parser = subparsers.add_parser('setup', help='Start a remote session')
    setup.setup_parser(setup_parser)

    # Clean command
    clean_parser = subparsers.add_parser('clean', help='Remove remote installation')
    clean.setup_parser(clean_parser)

    # Status command
    status_parser = subparsers.add_parser('status', help='Show the active session')
    status.setup_parser(status_parser)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Dispatch to command handler
    try:
        if args.command == 'setup':
            sys.exit(setup.execute(args))
        elif args.command == 'clean':
            sys.exit(clean.execute(args))
        elif args.command == 'status':
            sys.exit(status.execute(args))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
