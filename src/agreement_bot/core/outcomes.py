"""
Results of handling one inbound event.

The router returns exactly one of these per event; the adapter layer only
has to render them. ``Rejected`` and ``Failed`` leave the stored state
untouched.
"""

from dataclasses import dataclass
from typing import Union

from agreement_bot.core.prompts import Buttons, Prompt


@dataclass(frozen=True)
class Advance:
    """Moved (or stayed, for calendar paging) to ``next_state``."""

    next_state: str
    prompt: Prompt
    same_step: bool = False


@dataclass(frozen=True)
class Completed:
    """Flow committed; ``record_id`` is the created or patched agreement."""

    record_id: int
    summary: str


@dataclass(frozen=True)
class Cancelled:
    had_flow: bool = True


@dataclass(frozen=True)
class Rejected:
    reason: str
    args: tuple = ()
    prompt: Prompt | None = None   # current step's prompt, re-shown with the error


@dataclass(frozen=True)
class Unknown:
    """No active conversation for this input."""


@dataclass(frozen=True)
class Failed:
    """Storage failed; the user can resend or press the same button again."""

    reason: str
    prompt: Prompt | None = None   # step to retry, when the failure happened inside one


Outcome = Union[Advance, Completed, Cancelled, Rejected, Unknown, Failed]


@dataclass(frozen=True)
class ActionReply:
    """
    Answer to a stateless button (agreement detail, reminder done/snooze).

    ``notice`` is a short popup on the pressed button. ``prompt`` replaces
    the pressed message; ``buttons`` replaces only its keyboard and
    ``clear_buttons`` removes it.
    """

    notice: str | None = None
    prompt: Prompt | None = None
    buttons: Buttons | None = None
    clear_buttons: bool = False
