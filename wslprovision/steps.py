"""Provisioning workflow: pick the platform's steps and run them."""
import platform
import signal
from typing import Dict, Iterable, Optional

from wslprovision.errors import PreconditionError
from wslprovision.executor import Executor, RunMode
from wslprovision.prompter import Prompter, TyperPrompter
from wslprovision.registry import Registry
from wslprovision.report import Report
from wslprovision.runner import CommandRunner
from wslprovision.utils import check_internet, log_info

CANCEL_SIGNALS = ("SIGINT", "SIGTERM")


def build_registry(runner: Optional[CommandRunner] = None, prompter: Optional[Prompter] = None) -> Registry:
    """Build the step registry for the current platform."""
    current_platform = platform.system()
    runner = runner or CommandRunner()

    if current_platform == 'Linux':
        from wslprovision.linux import build_registry as build_linux_registry
        return build_linux_registry(runner, prompter or TyperPrompter())
    if current_platform == 'Windows':
        from wslprovision.windows import build_registry as build_windows_registry
        return build_windows_registry(runner)
    raise PreconditionError(f"Platform {current_platform} is not supported")


def install_cancel_handlers(executor: Executor) -> Dict[int, object]:
    """Turn SIGINT/SIGTERM into a cancellation honoured at the next step.

    Returns the previous handlers so they can be restored.
    """
    previous = {}

    def handler(signum, frame):
        log_info("Cancellation requested; finishing the current step...")
        executor.cancel()

    for name in CANCEL_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is not None:
            previous[signum] = signal.signal(signum, handler)
    return previous


def provision_system(
    mode: RunMode = RunMode.FULL_INSTALL,
    only: Optional[Iterable[str]] = None,
    registry: Optional[Registry] = None,
    executor: Optional[Executor] = None,
) -> Report:
    """Main provisioning workflow.

    Network connectivity is checked once up front for every mode that may
    install something; that is the only failure that stops the run.
    """
    if registry is None:
        registry = build_registry()
    if executor is None:
        executor = Executor()

    if mode is not RunMode.CHECK_ONLY:
        check_internet()

    previous = install_cancel_handlers(executor)
    try:
        return executor.run(mode, registry, only=only)
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
