"""
Abstract base class for messaging platform adapters.

Every platform must implement this interface. The conversation engine
imports ONLY the dataclasses below, never platform-specific libraries, so
flows, validators and the router stay platform-independent.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class ButtonOption:
    """A single button/option for interactive messages."""

    label: str              # display text
    callback_data: str      # token sent back when pressed


@dataclass
class OutgoingMessage:
    """Platform-agnostic representation of an outgoing message."""

    chat_id: str
    text: str
    format_type: str = "plain"          # "plain", "html", "markdown" — adapter maps to platform format
    buttons: list[list[ButtonOption]] | None = None   # rows of buttons (inline keyboard)
    edit_message_id: str | None = None  # if set, edit existing message instead of sending new
    thread_id: int | None = None        # forum topic, when the chat uses them


class PlatformAdapter(ABC):
    """
    Interface that every messaging platform adapter must implement.

    The engine produces OutgoingMessage lists; the adapter translates
    them into platform-specific API calls.
    """

    @abstractmethod
    async def send_message(self, message: OutgoingMessage) -> None:
        """Send a text message to a chat, with optional buttons."""
        ...

    @abstractmethod
    async def edit_message(self, message: OutgoingMessage) -> None:
        """Edit an existing message (if platform supports it)."""
        ...

    @abstractmethod
    async def deliver(self, messages: list[OutgoingMessage]) -> None:
        """Send or edit each message in order."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start listening for incoming messages (polling, webhook, etc.)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Gracefully shut down the adapter."""
        ...
