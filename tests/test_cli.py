"""Tests for the CLI interface."""
import os
import subprocess
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner
from unittest.mock import patch, MagicMock, ANY

from wslprovision.cli import app
from wslprovision.errors import NotFoundError, PreconditionError
from wslprovision.executor import RunMode
from wslprovision.outcome import Outcome
from wslprovision.registry import Registry, Step
from wslprovision.report import Report

runner = CliRunner()


def sample_registry():
    registry = Registry()
    registry.register(Step(name="docker", check=lambda: True, apply=Outcome.success,
                           description="Docker Engine"))
    registry.register(Step(name="fzf", check=lambda: True, apply=Outcome.success,
                           optional=True, description="fuzzy finder"))
    return registry


@pytest.fixture(autouse=True)
def no_log_file():
    with patch('wslprovision.utils.setup_logging') as mock_setup_logging:
        yield mock_setup_logging


@pytest.fixture
def mock_registry():
    with patch('wslprovision.steps.build_registry', return_value=sample_registry()) as mock_build:
        yield mock_build


@pytest.fixture
def mock_provision(mock_registry):
    with patch('wslprovision.steps.provision_system', return_value=Report()) as mock_provision:
        yield mock_provision


def test_cli_help():
    """Test CLI help command."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "provisioning tool" in result.stdout.lower()
    assert "--check" in result.stdout
    assert "--fix-warnings" in result.stdout


@patch('wslprovision.cli.platform.system', return_value='Linux')
def test_default_is_full_install(mock_platform, mock_provision):
    """Test running without flags installs everything."""
    result = runner.invoke(app, [])

    assert result.exit_code == 0
    mock_provision.assert_called_once_with(RunMode.FULL_INSTALL, only=None, registry=ANY)
    assert "Provisioning summary" in result.stdout
    assert "wsl -t Ubuntu-24.04" in result.stdout


@patch('wslprovision.cli.platform.system', return_value='Windows')
def test_full_install_on_windows_has_no_restart_hint(mock_platform, mock_provision):
    """Test the WSL restart reminder is only shown inside the distribution."""
    result = runner.invoke(app, [])

    assert result.exit_code == 0
    assert "wsl -t" not in result.stdout


@pytest.mark.parametrize("flag, mode", [
    ("--check", RunMode.CHECK_ONLY),
    ("--fix", RunMode.FIX_MISSING),
    ("--fix-warnings", RunMode.FIX_WARNINGS),
])
def test_mode_flags(flag, mode, mock_provision):
    """Test each flag selects its run mode."""
    result = runner.invoke(app, [flag])

    assert result.exit_code == 0
    mock_provision.assert_called_once_with(mode, only=None, registry=ANY)
    assert "wsl -t" not in result.stdout


def test_mode_flags_are_exclusive(mock_provision):
    """Test combining mode flags is a usage error."""
    result = runner.invoke(app, ["--check", "--fix"])

    assert result.exit_code == 2
    mock_provision.assert_not_called()


def test_step_subset(mock_provision):
    """Test --step limits the run to the named steps."""
    result = runner.invoke(app, ["--check", "--step", "docker", "-s", "fzf"])

    assert result.exit_code == 0
    mock_provision.assert_called_once_with(RunMode.CHECK_ONLY, only=["docker", "fzf"], registry=ANY)


def test_unknown_step(mock_provision):
    """Test an unknown step name is a usage error."""
    mock_provision.side_effect = NotFoundError("No step named 'nope'")

    result = runner.invoke(app, ["--step", "nope"])

    assert result.exit_code == 2


def test_no_network_exits_with_error(mock_provision):
    """Test a failed precondition exits with code 1."""
    mock_provision.side_effect = PreconditionError("No internet connection. Please check your network and try again.")

    result = runner.invoke(app, [])

    assert result.exit_code == 1
    assert "No internet connection" in result.stdout


def test_unsupported_platform_exits_with_error():
    """Test an unsupported platform exits with code 1."""
    with patch('wslprovision.steps.build_registry', side_effect=PreconditionError("Platform Darwin is not supported")):
        result = runner.invoke(app, [])

    assert result.exit_code == 1
    assert "not supported" in result.stdout


def test_failed_steps_still_exit_zero(mock_provision):
    """Test a completed run with failures exits successfully."""
    report = Report()
    report.record("docker", Outcome.failure("apt-get install docker-ce failed (exit 100)"))
    mock_provision.return_value = report

    result = runner.invoke(app, ["--fix"])

    assert result.exit_code == 0
    assert "Failed: 1" in result.stdout


def test_list_steps(mock_provision):
    """Test --list prints the steps without running them."""
    result = runner.invoke(app, ["--list"])

    assert result.exit_code == 0
    assert "docker: Docker Engine" in result.stdout
    assert "fzf (optional): fuzzy finder" in result.stdout
    mock_provision.assert_not_called()


def test_log_file_option(mock_provision, no_log_file, tmp_path):
    """Test the log file and verbosity are passed to logging setup."""
    log_file = tmp_path / "run.log"

    result = runner.invoke(app, ["--check", "--log-file", str(log_file), "-v"])

    assert result.exit_code == 0
    no_log_file.assert_called_once_with(True, log_file)


def test_log_file_from_environment(mock_provision, no_log_file, tmp_path):
    """Test the log file can be set through the environment."""
    log_file = tmp_path / "env.log"

    result = runner.invoke(app, ["--check"], env={"WSLPROVISION_LOG_FILE": str(log_file)})

    assert result.exit_code == 0
    no_log_file.assert_called_once_with(False, Path(log_file))


WINDOWS_IMPORT = """
import platform
import sys

platform.system = lambda: 'Windows'
sys.modules['sh'] = None

import wslprovision.cli
from wslprovision.steps import build_registry

print(','.join(step.name for step in build_registry().all()))
"""


def test_cli_loads_on_windows():
    """Test the CLI and the Windows steps load where sh cannot be imported."""
    root = Path(__file__).resolve().parents[1]
    env = dict(os.environ, PYTHONPATH=str(root))

    result = subprocess.run(
        [sys.executable, "-c", WINDOWS_IMPORT],
        cwd=root, env=env, capture_output=True, text=True,
    )

    assert result.returncode == 0, result.stderr
    assert result.stdout.strip().split(",") == [
        "wsl-feature", "virtual-machine-platform", "wsl-default-version", "wsl-distro",
    ]
