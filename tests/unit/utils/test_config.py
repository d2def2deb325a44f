"""Unit tests for settings loading and validation."""
from pathlib import Path
from unittest.mock import Mock

import pytest

from switcheroo.core import RealFileSystemService, YamlConfigLoader
from switcheroo.core.protocols import EnvironmentProvider
from switcheroo.utils.config import (
    CONFIG_ENV_VAR,
    DEFAULT_VERSION,
    load_settings,
    resolve_settings_path,
)


def create_env(home, environ=None):
    env = Mock(spec=EnvironmentProvider)
    env.home_dir.return_value = Path(home)
    env.get_environ.return_value = environ or {}
    return env


def write_settings(home, content):
    path = Path(home) / ".socratic-shell" / "theoldswitcheroo" / "settings.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def load(home, environ=None, config_path=None, overrides=None):
    fs = RealFileSystemService()
    return load_settings(YamlConfigLoader(fs), fs, create_env(home, environ),
                         config_path=config_path, overrides=overrides)


class TestResolveSettingsPath:

    def test_default_under_home(self, tmp_path):
        path = resolve_settings_path(create_env(tmp_path))

        assert path == tmp_path / ".socratic-shell" / "theoldswitcheroo" / "settings.yaml"

    def test_env_var(self, tmp_path):
        path = resolve_settings_path(create_env(tmp_path, {CONFIG_ENV_VAR: "/etc/sw.yaml"}))

        assert path == Path("/etc/sw.yaml")

    def test_explicit_beats_env(self, tmp_path):
        env = create_env(tmp_path, {CONFIG_ENV_VAR: "/etc/sw.yaml"})

        assert resolve_settings_path(env, "/opt/sw.yaml") == Path("/opt/sw.yaml")


class TestLoadSettings:

    def test_defaults_without_file(self, tmp_path):
        settings = load(tmp_path)

        assert settings.host is None
        assert settings.ssh_port is None
        assert settings.port == 8765
        assert settings.version == DEFAULT_VERSION
        assert settings.channel_liveness is True

    def test_file_values(self, tmp_path):
        write_settings(tmp_path, "host: devbox\nport: 9000\npoll_interval: 0.5\n")

        settings = load(tmp_path)

        assert settings.host == "devbox"
        assert settings.port == 9000
        assert settings.poll_interval == 0.5

    def test_empty_file_is_defaults(self, tmp_path):
        write_settings(tmp_path, "")

        assert load(tmp_path).port == 8765

    def test_overrides_win_and_none_is_ignored(self, tmp_path):
        write_settings(tmp_path, "host: devbox\nport: 9000\n")

        settings = load(tmp_path, overrides={"host": "other", "port": None})

        assert settings.host == "other"
        assert settings.port == 9000

    def test_unknown_key_rejected(self, tmp_path):
        write_settings(tmp_path, "hostname: devbox\n")

        with pytest.raises(ValueError, match="hostname"):
            load(tmp_path)

    def test_non_mapping_rejected(self, tmp_path):
        write_settings(tmp_path, "- devbox\n")

        with pytest.raises(ValueError, match="mapping"):
            load(tmp_path)

    def test_unparseable_yaml_rejected(self, tmp_path):
        write_settings(tmp_path, "host: [devbox\n")

        with pytest.raises(ValueError, match="Could not parse"):
            load(tmp_path)

    def test_missing_explicit_file_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="not found"):
            load(tmp_path, config_path=str(tmp_path / "nope.yaml"))

    @pytest.mark.parametrize("content,message", [
        ("port: 0\n", "port"),
        ("port: 70000\n", "port"),
        ("port: abc\n", "Invalid numeric"),
        ("poll_interval: 0\n", "poll_interval"),
        ("verify_delay: -1\n", "verify_delay"),
    ])
    def test_bad_values_rejected(self, tmp_path, content, message):
        write_settings(tmp_path, content)

        with pytest.raises(ValueError, match=message):
            load(tmp_path)

    def test_env_var_file(self, tmp_path):
        custom = tmp_path / "custom.yaml"
        custom.write_text("host: from-env\n")

        settings = load(tmp_path, environ={CONFIG_ENV_VAR: str(custom)})

        assert settings.host == "from-env"
