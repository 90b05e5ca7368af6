"""Utility functions for the provisioning tool."""
import logging
import os
import platform
import shutil
from pathlib import Path
from typing import List, Optional, Union

from wslprovision.errors import PreconditionError

LOG_FILE = Path.home() / "wsl2_setup.log"
CONNECTIVITY_HOST = "8.8.8.8"

logger = logging.getLogger("wslprovision")


def command_exists(command: str) -> bool:
    """Check if a command exists in the system PATH."""
    return shutil.which(command) is not None


def is_root() -> bool:
    """Check if the script is running as root."""
    # Windows has no effective uid.
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def sudo_prefix() -> List[str]:
    """Return the command prefix needed for privileged operations."""
    return [] if is_root() else ["sudo"]


def get_real_user() -> str:
    """Get the real username (handles sudo)."""
    return os.environ.get('SUDO_USER', os.environ.get('USER', ''))


def get_real_home() -> str:
    """Get the real user's home directory (handles sudo)."""
    sudo_user = os.environ.get('SUDO_USER')
    if sudo_user:
        return os.path.expanduser(f'~{sudo_user}')
    return os.environ.get('HOME', '')


def ping_count_flag() -> str:
    """Return the flag that limits ping to a number of echo requests."""
    return "-n" if platform.system() == 'Windows' else "-c"


def check_internet(host: str = CONNECTIVITY_HOST, runner=None) -> None:
    """Raise PreconditionError unless a single ping to ``host`` succeeds."""
    log_info("Checking internet connectivity...")
    if runner is None:
        from wslprovision.runner import CommandRunner
        runner = CommandRunner()
    if not runner.run("ping", ping_count_flag(), "1", host).ok:
        raise PreconditionError(
            "No internet connection. Please check your network and try again."
        )
    log_info("Internet connection confirmed.")


def log_info(message: str) -> None:
    """Log an informational message."""
    print(f"[INFO] {message}")
    logger.info(message)


def log_action(message: str) -> None:
    """Log an action being performed."""
    print(f"  -> {message}")
    logger.info(message)


def log_warning(message: str) -> None:
    """Log a warning that does not stop provisioning."""
    print(f"[WARN] {message}")
    logger.warning(message)


def log_error(message: str) -> None:
    """Log an error."""
    print(f"[ERROR] {message}")
    logger.error(message)


def setup_logging(verbose: bool = False, log_file: Optional[Union[str, Path]] = None) -> None:
    """Append every log record to ``log_file``; debug records only when verbose."""
    path = Path(log_file) if log_file else LOG_FILE
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()

    path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    )
    logger.addHandler(file_handler)
