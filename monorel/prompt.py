"""Interactive prompts for the version flow.

The resolver only talks to the Prompter protocol, one synchronous question
at a time. RichPrompter is the terminal implementation; tests pass their
own object with canned answers.
"""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel
from rich.console import Console
from rich.prompt import Confirm, Prompt

from .errors import UserAbort
from .versions import BumpKind, bump_version, parse_version


class BumpChoice(BaseModel):
    """Answer to "how should this unit be bumped?"."""

    kind: BumpKind
    custom: str | None = None


class Prompter(Protocol):
    def select_bump(
        self, unit: str, current: str, pre_id: str | None, reason: str
    ) -> BumpChoice: ...

    def confirm(self, message: str) -> bool: ...


class RichPrompter:
    """Asks on the terminal with rich.prompt."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def select_bump(
        self, unit: str, current: str, pre_id: str | None, reason: str
    ) -> BumpChoice:
        self.console.print(f"\n[bold]{unit}[/bold] {current} ({reason})")
        for kind in BumpKind:
            if kind is BumpKind.CUSTOM:
                continue
            preview = bump_version(current, kind, pre_id=pre_id)
            self.console.print(f"  {kind.value:<11} {preview}")
        try:
            answer = Prompt.ask(
                "Select a new version",
                choices=[k.value for k in BumpKind],
                default=BumpKind.PATCH.value,
                console=self.console,
            )
            kind = BumpKind(answer)
            if kind is not BumpKind.CUSTOM:
                return BumpChoice(kind=kind)
            while True:
                custom = Prompt.ask("Enter a custom version", console=self.console)
                try:
                    parse_version(custom)
                except ValueError:
                    self.console.print(f"[red]{custom!r} is not a semantic version[/red]")
                    continue
                return BumpChoice(kind=kind, custom=custom)
        except (KeyboardInterrupt, EOFError) as exc:
            raise UserAbort("prompt cancelled") from exc

    def confirm(self, message: str) -> bool:
        try:
            return Confirm.ask(message, default=False, console=self.console)
        except (KeyboardInterrupt, EOFError) as exc:
            raise UserAbort("prompt cancelled") from exc
