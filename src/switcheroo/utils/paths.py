"""Local and remote path layout.

Local state lives under a dotted per-tool directory in the user's home:

    ~/.socratic-shell/theoldswitcheroo/
        settings.yaml   - optional user settings
        session.json    - descriptor of the active session (if any)

The remote host uses the same relative layout under its own $HOME. Remote
paths keep the literal ``$HOME`` so the remote shell expands them.
"""
from pathlib import Path

TOOL_DIR_NAME = '.socratic-shell'
APP_DIR_NAME = 'theoldswitcheroo'

SESSION_FILE_NAME = 'session.json'
SETTINGS_FILE_NAME = 'settings.yaml'

REMOTE_BASE_DIR = f'$HOME/{TOOL_DIR_NAME}/{APP_DIR_NAME}'


def local_data_dir(home: Path) -> Path:
    """Per-tool cache directory for the given home directory."""
    return Path(home) / TOOL_DIR_NAME / APP_DIR_NAME


def session_file(home: Path) -> Path:
    return local_data_dir(home) / SESSION_FILE_NAME


def settings_file(home: Path) -> Path:
    return local_data_dir(home) / SETTINGS_FILE_NAME
