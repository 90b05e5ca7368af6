"""User interaction needed during provisioning."""
from typing import Protocol

import typer


class Prompter(Protocol):
    def ask(self, question: str) -> str: ...


class TyperPrompter:
    """Ask questions on the terminal."""

    def ask(self, question: str) -> str:
        return typer.prompt(question).strip()
