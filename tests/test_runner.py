"""
Tests for running a child process with resolved variables
"""

import sys

import pytest

from enject.exceptions import RunnerError, ValidationError
from enject.runner import build_environment, run_command


def test_build_environment_overrides_base():
    env = build_environment({"A": "new", "B": "2"}, base_env={"A": "old", "C": "3"})
    assert env == {"A": "new", "B": "2", "C": "3"}


def test_build_environment_inherits_os_environ(monkeypatch):
    monkeypatch.setenv("ENJECT_TEST_INHERITED", "yes")
    assert build_environment({})["ENJECT_TEST_INHERITED"] == "yes"


def test_run_command_passes_variables():
    """Test the child sees injected and inherited variables"""
    code = run_command(
        [
            sys.executable,
            "-c",
            "import os, sys; sys.exit(0 if os.environ['INJECTED'] == 'v=1' else 3)",
        ],
        {"INJECTED": "v=1"},
    )
    assert code == 0


def test_run_command_returns_child_exit_code():
    assert run_command([sys.executable, "-c", "import sys; sys.exit(7)"], {}) == 7


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
def test_run_command_signal_exit_is_one():
    code = run_command(
        [sys.executable, "-c", "import os, signal; os.kill(os.getpid(), signal.SIGTERM)"],
        {},
    )
    assert code == 1


def test_run_command_empty():
    with pytest.raises(ValidationError, match="No command"):
        run_command([], {})


def test_run_command_not_found():
    with pytest.raises(RunnerError, match="Command not found"):
        run_command(["enject-definitely-not-a-real-program"], {})


def test_run_command_logs_names_not_values(caplog):
    """Test debug logging never includes secret values"""
    with caplog.at_level("DEBUG", logger="enject.runner"):
        run_command([sys.executable, "-c", "pass"], {"API_KEY": "TOP-SECRET-VALUE"})
    assert "API_KEY" in caplog.text
    assert "TOP-SECRET-VALUE" not in caplog.text
