"""Run provisioning steps under a run mode and collect a report."""
from enum import Enum
from typing import Iterable, List, Optional

from wslprovision.errors import ApplyError, CheckError, FallbackError, VerifyError
from wslprovision.outcome import Outcome, OutcomeKind
from wslprovision.registry import Registry, Step
from wslprovision.report import Report
from wslprovision.utils import log_action, log_error, log_info, log_warning, logger


class RunMode(Enum):
    FULL_INSTALL = "full-install"
    CHECK_ONLY = "check"
    FIX_MISSING = "fix"
    FIX_WARNINGS = "fix-warnings"


class Executor:
    """Sequential step runner.

    A failing step never stops the run; its outcome is recorded and the next
    step starts. ``cancel()`` is honoured between steps only, and whatever a
    partially applied step changed stays in place.
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def select(self, mode: RunMode, registry: Registry, only: Optional[Iterable[str]] = None) -> List[Step]:
        """Steps a run in ``mode`` considers, in registration order."""
        if only is not None:
            wanted = {registry.by_name(name).name for name in only}
            steps = [step for step in registry.all() if step.name in wanted]
        else:
            steps = registry.all()

        if mode is RunMode.FIX_WARNINGS:
            steps = [step for step in steps if step.optional]
        return steps

    def run(self, mode: RunMode, registry: Registry, only: Optional[Iterable[str]] = None) -> Report:
        steps = self.select(mode, registry, only)
        report = Report()
        log_info(f"Running {len(steps)} step(s) in {mode.value} mode")

        for step in steps:
            if self._cancelled:
                log_warning("Cancellation requested; remaining steps were not run.")
                report.cancelled = True
                break

            logger.info("Step %s: started", step.name)
            present = self._check(step)

            if mode is RunMode.CHECK_ONLY:
                outcome = self._inspect(step, present)
            elif present and mode is RunMode.FIX_MISSING:
                log_info(f"{step.name} is already present, skipping.")
                continue
            else:
                outcome = self._provision(step, present)

            status = report.record(step.name, outcome, optional=step.optional)
            logger.info("Step %s: %s (%s)", step.name, status, outcome)

        return report

    def _check(self, step: Step) -> bool:
        try:
            return bool(step.check())
        except Exception as exc:
            error = CheckError(f"{step.name}: could not determine presence: {exc}")
            log_warning(f"{error}; treating as missing.")
            return False

    def _verify(self, step: Step) -> Outcome:
        try:
            verified = step.is_verified()
        except Exception as exc:
            verified = False
            error = VerifyError(f"{step.name}: verification raised: {exc}")
        else:
            error = VerifyError(f"{step.name}: verification failed")

        if verified:
            return Outcome.success()
        log_warning(str(error))
        return Outcome.failure(str(error))

    def _attempt(self, action, label: str) -> Outcome:
        try:
            outcome = action()
        except Exception as exc:
            return Outcome.failure(f"{label} raised {type(exc).__name__}: {exc}")
        if outcome is None:
            return Outcome.success()
        return outcome

    def _apply(self, step: Step) -> Outcome:
        log_action(f"Installing {step.name}...")
        outcome = self._attempt(step.apply, "install")
        if outcome.kind is not OutcomeKind.FAILURE:
            return outcome

        error = ApplyError(f"{step.name}: {outcome.reason}")
        if step.fallback is None:
            log_warning(f"{error}; no fallback available.")
            return Outcome.failure(str(error))

        log_warning(f"{error}; trying fallback...")
        fallback = self._attempt(step.fallback, "fallback")
        if fallback.kind is OutcomeKind.FAILURE:
            error = FallbackError(f"{step.name}: install and fallback failed: {fallback.reason}")
            log_error(str(error))
            return Outcome.failure(str(error))
        return fallback

    def _provision(self, step: Step, present: bool) -> Outcome:
        applied = Outcome.success()
        if not present:
            applied = self._apply(step)
        else:
            log_info(f"{step.name} is already present.")

        verified = self._verify(step)
        if verified.ok:
            return verified
        if applied.kind is not OutcomeKind.SUCCESS:
            return applied
        return verified

    def _inspect(self, step: Step, present: bool) -> Outcome:
        if not present:
            return Outcome.failure("not installed")
        return self._verify(step)
