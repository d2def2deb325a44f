"""Unit tests for the clean command."""
import argparse
from pathlib import Path
from unittest.mock import Mock

from switcheroo.commands import clean
from switcheroo.core.protocols import (
    EnvironmentProvider,
    FileSystemService,
    Logger,
    ProcessExecutor,
    ProcessResult,
    SignalRegistrar,
    TimeProvider,
)
from switcheroo.remote import Runtime

SESSION_PATH = Path("/home/dev/.socratic-shell/theoldswitcheroo/session.json")


def create_runtime(returncode=0, stderr=""):
    fs = Mock(spec=FileSystemService)
    fs.exists.return_value = False
    env = Mock(spec=EnvironmentProvider)
    env.home_dir.return_value = Path("/home/dev")
    env.get_environ.return_value = {}
    process = Mock(spec=ProcessExecutor)
    process.run.return_value = ProcessResult(returncode=returncode, stdout="", stderr=stderr)
    return Runtime(
        filesystem=fs,
        process_executor=process,
        time_provider=Mock(spec=TimeProvider),
        env_provider=env,
        signal_registrar=Mock(spec=SignalRegistrar),
        logger=Mock(spec=Logger)
    )


def parse_args(argv):
    parser = argparse.ArgumentParser()
    clean.setup_parser(parser)
    return parser.parse_args(argv)


class TestClean:

    def test_removes_remote_base_dir_and_session(self):
        runtime = create_runtime()

        code = clean.execute(parse_args(["--host", "devbox"]), runtime=runtime)

        assert code == 0
        cmd = runtime.process_executor.run.call_args[0][0]
        assert cmd[-2:] == ["devbox", 'rm -rf "$HOME/.socratic-shell/theoldswitcheroo"']
        runtime.filesystem.remove.assert_called_once_with(SESSION_PATH)

    def test_remote_failure_propagates_exit_status(self):
        runtime = create_runtime(returncode=255, stderr="Connection refused")

        code = clean.execute(parse_args(["--host", "devbox"]), runtime=runtime)

        assert code == 255
        assert "Connection refused" in runtime.logger.error.call_args[0][0]
        runtime.filesystem.remove.assert_not_called()

    def test_local_only_never_contacts_host(self):
        runtime = create_runtime()

        code = clean.execute(parse_args(["--local-only"]), runtime=runtime)

        assert code == 0
        runtime.process_executor.run.assert_not_called()
        runtime.filesystem.remove.assert_called_once_with(SESSION_PATH)

    def test_local_only_without_session_file(self):
        runtime = create_runtime()
        runtime.filesystem.remove.side_effect = FileNotFoundError()

        code = clean.execute(parse_args(["--local-only"]), runtime=runtime)

        assert code == 0
        runtime.logger.info.assert_any_call("No session file to remove.")

    def test_missing_host(self):
        runtime = create_runtime()

        code = clean.execute(parse_args([]), runtime=runtime)

        assert code == 1
        runtime.process_executor.run.assert_not_called()
