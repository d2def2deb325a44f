"""Settings management with YAML overrides.

Resolution order (later wins):
    1. Built-in defaults (DEFAULTS)
    2. settings.yaml (path from --config, $SWITCHEROO_CONFIG, or the
       per-tool directory in $HOME)
    3. Command-line overrides (None values are ignored)
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from switcheroo.core.protocols import ConfigLoader, EnvironmentProvider, FileSystemService
from switcheroo.utils.paths import settings_file

CONFIG_ENV_VAR = 'SWITCHEROO_CONFIG'

DEFAULT_VERSION = '1.103.1'
DEFAULT_URL_TEMPLATE = (
    'https://github.com/gitpod-io/openvscode-server/releases/download/'
    'openvscode-server-v{version}/openvscode-server-v{version}-{arch}.tar.gz'
)

DEFAULTS: Dict[str, Any] = {
    'host': None,
    'ssh_port': None,
    'port': 8765,
    'version': DEFAULT_VERSION,
    'url_template': DEFAULT_URL_TEMPLATE,
    'verify_delay': 2,
    'poll_interval': 1,
    'channel_liveness': True,
    'connect_timeout': 10,
}


@dataclass
class Settings:
    """Resolved settings for one invocation.

    Attributes:
        host: SSH destination (anything ssh accepts: alias, user@host, IP)
        ssh_port: SSH port (None: whatever ~/.ssh/config or ssh defaults say)
        port: Fixed port, used for both ends of the tunnel and the server
        version: openvscode-server release to install
        url_template: Download URL with {version} and {arch} placeholders
        verify_delay: Seconds to wait before checking the server is still alive
        poll_interval: Seconds between control-channel liveness checks
        channel_liveness: Also end supervision on stdin EOF from the channel
        connect_timeout: ssh ConnectTimeout for the reachability probe
    """
    host: Optional[str]
    ssh_port: Optional[int]
    port: int
    version: str
    url_template: str
    verify_delay: float
    poll_interval: float
    channel_liveness: bool
    connect_timeout: int


def resolve_settings_path(env: EnvironmentProvider, explicit: Optional[str] = None) -> Path:
    """Pick the settings file path: explicit flag, env var, then default."""
    if explicit:
        return Path(explicit).expanduser()
    from_env = env.get_environ().get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env).expanduser()
    return settings_file(env.home_dir())


def load_settings(
    config_loader: ConfigLoader,
    filesystem: FileSystemService,
    env: EnvironmentProvider,
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> Settings:
    """Load settings from YAML and apply command-line overrides.

    Args:
        config_loader: YAML loader
        filesystem: Used to check whether the settings file exists
        env: Environment (for $SWITCHEROO_CONFIG and $HOME)
        config_path: Explicit settings path (--config). Must exist if given.
        overrides: Values from the command line; None means "not given"

    Returns:
        Fully resolved Settings

    Raises:
        ValueError: If the file is missing (explicit path only), is not a
            mapping, or contains unknown keys or bad values
    """
    values = dict(DEFAULTS)
    path = resolve_settings_path(env, config_path)

    if filesystem.exists(path):
        try:
            loaded = config_loader.load_yaml(str(path))
        except Exception as e:
            raise ValueError(f"Could not parse settings file {path}: {e}")

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Settings file {path} must contain a mapping, got {type(loaded).__name__}")

        unknown = sorted(set(loaded) - set(DEFAULTS))
        if unknown:
            raise ValueError(
                f"Unknown setting(s) in {path}: {', '.join(unknown)}\n"
                f"Valid keys: {', '.join(sorted(DEFAULTS))}"
            )
        values.update(loaded)
    elif config_path:
        raise ValueError(f"Settings file not found: {path}")

    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    return _coerce(values, path)


def _coerce(values: Dict[str, Any], path: Path) -> Settings:
    """Validate types of numeric settings and build the Settings object."""
    try:
        ssh_port = int(values['ssh_port']) if values['ssh_port'] is not None else None
        port = int(values['port'])
        verify_delay = float(values['verify_delay'])
        poll_interval = float(values['poll_interval'])
        connect_timeout = int(values['connect_timeout'])
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid numeric setting (from {path} or command line): {e}")

    if not 0 < port < 65536:
        raise ValueError(f"port must be between 1 and 65535, got {port}")
    if poll_interval <= 0:
        raise ValueError(f"poll_interval must be positive, got {poll_interval}")
    if verify_delay < 0:
        raise ValueError(f"verify_delay must not be negative, got {verify_delay}")

    return Settings(
        host=values['host'],
        ssh_port=ssh_port,
        port=port,
        version=str(values['version']),
        url_template=str(values['url_template']),
        verify_delay=verify_delay,
        poll_interval=poll_interval,
        channel_liveness=bool(values['channel_liveness']),
        connect_timeout=connect_timeout,
    )
