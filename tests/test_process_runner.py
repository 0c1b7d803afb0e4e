"""Tests for the external process runner."""

import sys
import threading
import time

import pytest

from mediafetch.errors import Cancelled, CommandFailed, ProcessTimeout
from mediafetch.services import CancelToken, ProcessRunner


def _python(code: str) -> list:
    return ["-c", code]


@pytest.fixture
def runner() -> ProcessRunner:
    runner = ProcessRunner()
    runner.terminate_grace = 2.0
    return runner


class TestRun:
    def test_captures_both_streams(self, runner):
        code = "import sys; print('out-line', flush=True); print('err-line', file=sys.stderr, flush=True)"
        result = runner.run(sys.executable, _python(code))

        assert result.exit_code == 0
        assert "out-line" in result.output
        assert "err-line" in result.output

    def test_every_line_offered_to_observer(self, runner):
        seen = []
        code = "import sys\nfor i in range(3):\n    print(f'line {i}', flush=True)\nprint('warn', file=sys.stderr)"
        runner.run(sys.executable, _python(code), on_line=seen.append)

        assert sorted(seen) == ["line 0", "line 1", "line 2", "warn"]

    def test_observer_errors_are_swallowed(self, runner):
        def broken(line):
            raise RuntimeError("observer failure")

        result = runner.run(sys.executable, _python("print('still captured')"), on_line=broken)

        assert "still captured" in result.output

    def test_working_dir_is_used(self, runner, temp_dir):
        result = runner.run(sys.executable, _python("import os; print(os.getcwd())"), working_dir=str(temp_dir))

        assert temp_dir.resolve().name in result.output

    def test_non_zero_exit_raises_command_failed(self, runner):
        code = "import sys; print('bad things', file=sys.stderr); sys.exit(3)"
        with pytest.raises(CommandFailed) as exc_info:
            runner.run(sys.executable, _python(code))

        assert exc_info.value.exit_code == 3
        assert "bad things" in exc_info.value.output
        assert "bad things" in str(exc_info.value)
        assert exc_info.value.kind == "CommandFailed"

    def test_missing_binary_raises_127(self, runner):
        with pytest.raises(CommandFailed) as exc_info:
            runner.run("definitely-not-a-real-binary-xyz", ["--version"])

        assert exc_info.value.exit_code == 127
        assert "not found" in str(exc_info.value)


class TestTimeout:
    def test_timeout_kills_and_keeps_partial_output(self, runner):
        code = "import time; print('started', flush=True); time.sleep(30)"
        start = time.monotonic()
        with pytest.raises(ProcessTimeout) as exc_info:
            runner.run(sys.executable, _python(code), timeout=1.0)

        assert time.monotonic() - start < 10
        assert exc_info.value.kind == "Timeout"
        assert exc_info.value.timeout == 1.0
        assert "started" in exc_info.value.output


class TestCancellation:
    def test_pre_cancelled_token_never_spawns(self, runner, temp_dir):
        marker = temp_dir / "spawned"
        token = CancelToken()
        token.cancel()

        with pytest.raises(Cancelled):
            runner.run(sys.executable, _python(f"open({str(marker)!r}, 'w').close()"), cancel_token=token)

        assert not marker.exists()

    def test_cancel_terminates_running_process(self, runner):
        token = CancelToken()
        timer = threading.Timer(0.5, token.cancel)
        timer.start()
        start = time.monotonic()
        try:
            with pytest.raises(Cancelled):
                runner.run(sys.executable, _python("import time; time.sleep(30)"), cancel_token=token)
        finally:
            timer.cancel()

        assert time.monotonic() - start < 10


class TestCancelToken:
    def test_flag_and_wait(self):
        token = CancelToken()
        assert not token.is_cancelled
        assert token.wait(0.01) is False

        token.cancel()

        assert token.is_cancelled
        assert token.wait(0.01) is True
        with pytest.raises(Cancelled):
            token.raise_if_cancelled("download")
