"""Result of applying or verifying a provisioning step."""
from dataclasses import dataclass
from enum import Enum


class OutcomeKind(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Outcome:
    """Tagged result: success, failure with a reason, or skipped with a reason."""

    kind: OutcomeKind
    reason: str = ""

    @classmethod
    def success(cls) -> "Outcome":
        return cls(OutcomeKind.SUCCESS)

    @classmethod
    def failure(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.FAILURE, reason)

    @classmethod
    def skipped(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.SKIPPED, reason)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def __str__(self) -> str:
        if self.reason:
            return f"{self.kind.value}: {self.reason}"
        return self.kind.value
