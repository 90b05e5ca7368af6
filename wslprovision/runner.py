"""External command execution with bounded retries, and package installers."""
import platform
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol, Union

if platform.system() != 'Windows':
    # sh refuses to import on Windows; commands there go through subprocess.
    import sh

from wslprovision.outcome import Outcome
from wslprovision.utils import log_action, log_info, log_warning, logger, sudo_prefix

RETRY_DELAY = 5
DOWNLOAD_ATTEMPTS = 3


@dataclass(frozen=True)
class CommandResult:
    """Structured result of an external command."""

    ok: bool
    exit_code: int
    output: str = ""


def _decode(data: Union[bytes, str, None]) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class CommandRunner:
    """Run external programs and report success or failure instead of raising.

    Retries use a fixed count and a fixed delay between attempts. Commands run
    through ``sh`` on Linux and through ``subprocess`` on Windows hosts.
    """

    def __init__(
        self,
        delay: float = RETRY_DELAY,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        windows: Optional[bool] = None,
    ) -> None:
        self.delay = delay
        self.timeout = timeout
        self._sleep = sleep
        if windows is None:
            windows = platform.system() == 'Windows'
        self._run_once = self._run_subprocess if windows else self._run_sh

    def run(self, command: str, *args: str, retries: int = 0) -> CommandResult:
        """Run ``command`` with ``args`` up to ``retries + 1`` times."""
        cmdline = " ".join([command, *args])
        attempts = retries + 1
        result = CommandResult(False, -1)
        for attempt in range(1, attempts + 1):
            logger.debug("Running: %s (attempt %d/%d)", cmdline, attempt, attempts)
            result = self._run_once(command, args)
            if result.ok:
                return result
            logger.debug("Command exited with %d: %s", result.exit_code, result.output.strip())
            if attempt < attempts:
                log_warning(
                    f"{command} failed (attempt {attempt}/{attempts}). "
                    f"Retrying in {self.delay} seconds..."
                )
                self._sleep(self.delay)
        return result

    def run_privileged(self, command: str, *args: str, retries: int = 0) -> CommandResult:
        """Run a command that needs root, through sudo unless already root."""
        prefix = sudo_prefix()
        if prefix:
            return self.run(prefix[0], command, *args, retries=retries)
        return self.run(command, *args, retries=retries)

    def download(self, url: str, target: Union[str, Path], retries: int = DOWNLOAD_ATTEMPTS - 1) -> CommandResult:
        """Download ``url`` to ``target`` with curl, retrying on failure."""
        log_action(f"Downloading {url}...")
        result = self.run("curl", "-fsSL", url, "-o", str(target), retries=retries)
        if result.ok:
            log_info("Download successful.")
        else:
            log_warning(f"Failed to download {url} after {retries + 1} attempts.")
        return result

    def _run_subprocess(self, command: str, args: Iterable[str]) -> CommandResult:
        try:
            completed = subprocess.run(
                [command, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            return CommandResult(False, 127, f"{command}: command not found")
        except subprocess.TimeoutExpired:
            return CommandResult(False, -1, f"{command}: timed out")
        output = _decode(completed.stdout)
        return CommandResult(completed.returncode == 0, completed.returncode, output)

    def _run_sh(self, command: str, args: Iterable[str]) -> CommandResult:
        kwargs = {"_err_to_out": True}
        if self.timeout is not None:
            kwargs["_timeout"] = self.timeout
        try:
            output = sh.Command(command)(*args, **kwargs)
        except sh.CommandNotFound:
            return CommandResult(False, 127, f"{command}: command not found")
        except sh.ErrorReturnCode as exc:
            return CommandResult(False, exc.exit_code, _decode(exc.stdout))
        except sh.TimeoutException as exc:
            return CommandResult(False, exc.exit_code, f"{command}: timed out")
        return CommandResult(True, 0, str(output))


class Installer(Protocol):
    """Capability to look up and install packages by name."""

    def is_available(self, name: str) -> bool: ...

    def is_installed(self, name: str) -> bool: ...

    def install(self, name: str) -> Outcome: ...

    def install_many(self, names: Iterable[str], upgrade: bool = False) -> Outcome: ...


class PackageManager(Installer, Protocol):
    """An installer whose package index has to be refreshed."""

    def update(self) -> Outcome: ...


class AptInstaller:
    """Install Debian packages through apt."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def is_available(self, name: str) -> bool:
        return self.runner.run("apt-cache", "show", name).ok

    def is_installed(self, name: str) -> bool:
        result = self.runner.run("dpkg-query", "-W", "-f=${Status}", name)
        return result.ok and "install ok installed" in result.output

    def install(self, name: str) -> Outcome:
        # Missing from the repositories and a failed install end up the same
        # way: a Failure that lets the caller try a fallback package.
        if not self.is_available(name):
            return Outcome.failure(f"Package {name} not found in repositories")
        return self.install_many([name])

    def install_many(self, names: Iterable[str], upgrade: bool = False) -> Outcome:
        names = list(names)
        args = ["install", "-y"]
        if upgrade:
            args.append("--only-upgrade")
        result = self.runner.run_privileged("apt-get", *args, *names)
        if result.ok:
            return Outcome.success()
        return Outcome.failure(f"apt-get install {' '.join(names)} failed (exit {result.exit_code})")

    def update(self) -> Outcome:
        result = self.runner.run_privileged("apt-get", "update", retries=2)
        if not result.ok:
            return Outcome.failure(f"apt-get update failed (exit {result.exit_code})")
        result = self.runner.run_privileged("apt-get", "upgrade", "-y")
        if not result.ok:
            return Outcome.failure(f"apt-get upgrade failed (exit {result.exit_code})")
        return Outcome.success()


class PipInstaller:
    """Install Python packages with the system interpreter's pip."""

    def __init__(self, runner: CommandRunner, python: str = "python3") -> None:
        self.runner = runner
        self.python = python

    def _pip(self, *args: str) -> CommandResult:
        return self.runner.run(self.python, "-m", "pip", *args)

    def is_available(self, name: str) -> bool:
        return self._pip("index", "versions", name).ok

    def is_installed(self, name: str) -> bool:
        return self._pip("show", name).ok

    def install(self, name: str) -> Outcome:
        return self.install_many([name])

    def install_many(self, names: Iterable[str], upgrade: bool = False) -> Outcome:
        names = list(names)
        args = ["install", "--break-system-packages"]
        if upgrade:
            args.append("--upgrade")
        result = self._pip(*args, *names)
        if result.ok:
            return Outcome.success()
        return Outcome.failure(f"pip install {' '.join(names)} failed (exit {result.exit_code})")
