"""
Session handle contract.

This module defines the *interface only*: no retries, timers, or lifecycle
decisions live here.

Key invariants:
- Generations are owned by the supervisor. A handle is built for exactly one
  generation and stamps every event it emits with it.
- The handle emits lifecycle events; it does not call the reducer or make
  state transitions.
- After destroy() has been requested the handle emits nothing further.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable

from supervisor.events import Event


EventSink = Callable[[Event], Awaitable[None]]


@dataclass(frozen=True)
class Attachment:
    """A document sent as-is to the chat network."""
    mimetype: str
    data: bytes
    filename: str


class SessionHandle(ABC):
    """
    Abstract interface for one live connection to the chat network.

    Note: the emit_event callback given at construction must be async.

    Implementations are responsible for:
    - Establishing the session on start() and reporting progress through
      PairingChallenge / Authenticated / LoadingProgress / Ready events
    - Reporting AuthFailed and Disconnected when the session is lost
    - Sending messages on behalf of the paired account

    Non-responsibilities:
    - No retry policy, no attempt counting
    - No HTTP concerns
    - Sequential use only: callers may issue overlapping sends, the
      implementation serializes them internally if it has to
    """

    @abstractmethod
    async def start(self) -> None:
        """
        Begin connecting.

        Returns once the connection attempt is under way; lifecycle events
        arrive asynchronously afterwards. Raises if the attempt could not
        be started at all.
        """
        raise NotImplementedError

    @abstractmethod
    async def destroy(self) -> None:
        """
        Release every resource held by the handle.

        MUST be idempotent. Stored pairing credentials are kept.
        """
        raise NotImplementedError

    @abstractmethod
    async def logout(self) -> None:
        """Invalidate the stored pairing credentials on the remote side."""
        raise NotImplementedError

    @abstractmethod
    async def is_registered_user(self, chat_id: str) -> bool:
        """Return True if chat_id belongs to an account on the chat network."""
        raise NotImplementedError

    @abstractmethod
    async def send_text(self, chat_id: str, body: str) -> str:
        """Send a text message and return its serialized message id."""
        raise NotImplementedError

    @abstractmethod
    async def send_document(
        self, chat_id: str, attachment: Attachment, caption: str
    ) -> str:
        """Send a document with a caption and return its serialized message id."""
        raise NotImplementedError


# (generation, emit_event) -> handle bound to that generation
HandleFactory = Callable[[int, EventSink], SessionHandle]
