import sys
import subprocess
from pathlib import Path
from typing import List, Optional

from enject import __version__


def run_cli(
    args: List[str], cwd: Optional[Path] = None, input_text: Optional[str] = None
) -> subprocess.CompletedProcess:
    """
    Helper to run the enject CLI in tests.

    Runs the module to avoid PATH issues in CI. Only commands that fail or
    finish before any password prompt are exercised here.
    """
    return subprocess.run(
        [sys.executable, "-m", "enject.main"] + args,
        cwd=str(cwd) if cwd else None,
        capture_output=True,
        text=True,
        input=input_text,
        check=False,
    )


def test_version_shows_package_version():
    proc = run_cli(["--version"])
    assert proc.returncode == 0
    assert proc.stdout.strip() == f"enject {__version__}"
    assert proc.stderr == ""


def test_no_command_shows_help_and_fails(tmp_path: Path):
    proc = run_cli([], cwd=tmp_path)
    assert proc.returncode == 1
    assert "usage: enject" in proc.stderr


def test_list_uninitialized_fails(tmp_path: Path):
    proc = run_cli(["--dir", str(tmp_path), "list"])
    assert proc.returncode == 1
    assert "enject init" in proc.stderr
    assert not (tmp_path / ".enject").exists()


def test_quiet_still_reports_errors(tmp_path: Path):
    proc = run_cli(["--quiet", "--dir", str(tmp_path), "list"])
    assert proc.returncode == 1
    assert "StoreNotInitializedError" in proc.stderr


def test_run_missing_env_file_fails(tmp_path: Path):
    proc = run_cli(["--dir", str(tmp_path), "run", "--", "true"])
    assert proc.returncode == 1
    assert ".env not found" in proc.stderr


def test_run_without_command_fails(tmp_path: Path):
    (tmp_path / ".env").write_text("A=1\n")
    proc = run_cli(["--dir", str(tmp_path), "run"])
    assert proc.returncode == 1
    assert "No command provided" in proc.stderr


def test_run_malformed_template_fails(tmp_path: Path):
    (tmp_path / ".env").write_text("A=1\nNOEQUALS\n")
    proc = run_cli(["--dir", str(tmp_path), "run", "--", "true"])
    assert proc.returncode == 1
    assert "line 2" in proc.stderr


def test_import_missing_file_fails(tmp_path: Path):
    proc = run_cli(["--dir", str(tmp_path), "import", str(tmp_path / "nope.env")])
    assert proc.returncode == 1
    assert "File not found" in proc.stderr


def test_set_reserved_name_fails(tmp_path: Path):
    proc = run_cli(["--dir", str(tmp_path), "set", "global/shared"])
    assert proc.returncode == 1
    assert "reserved" in proc.stderr
