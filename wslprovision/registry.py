"""Provisioning steps and the ordered registry that holds them."""
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from wslprovision.errors import DuplicateNameError, NotFoundError
from wslprovision.outcome import Outcome


@dataclass(frozen=True)
class Step:
    """A single named provisioning unit.

    ``check`` returns True when the component is already present, ``apply``
    installs it, ``fallback`` is tried once if ``apply`` fails, and ``verify``
    confirms the component works afterwards. When ``verify`` is omitted the
    presence check doubles as verification.
    """

    name: str
    check: Callable[[], bool]
    apply: Callable[[], Outcome]
    fallback: Optional[Callable[[], Outcome]] = None
    verify: Optional[Callable[[], bool]] = None
    optional: bool = False
    description: str = ""

    def is_verified(self) -> bool:
        if self.verify is None:
            return self.check()
        return self.verify()


class Registry:
    """Steps in registration order, looked up by unique name."""

    def __init__(self) -> None:
        self._steps: Dict[str, Step] = {}

    def register(self, step: Step) -> Step:
        if step.name in self._steps:
            raise DuplicateNameError(f"Step '{step.name}' is already registered")
        self._steps[step.name] = step
        return step

    def all(self) -> List[Step]:
        return list(self._steps.values())

    def by_name(self, name: str) -> Step:
        try:
            return self._steps[name]
        except KeyError:
            raise NotFoundError(f"No step named '{name}'") from None

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[Step]:
        return iter(self.all())

    def __contains__(self, name: object) -> bool:
        return name in self._steps
