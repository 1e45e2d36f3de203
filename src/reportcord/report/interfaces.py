"""
Collaborator interfaces for the report pipeline.

The pipeline only talks to its environment through these narrow seams, so
the Discord and OpenAI adapters can be swapped for fakes in tests.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional, Protocol, runtime_checkable

from reportcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from reportcord.report.errors import AuthorizationRevokedError


@dataclass(slots=True)
class AuthorizationContext:
    """
    Authorization passed explicitly into every dispatch call.

    Attributes:
        user_id: Member on whose behalf the call is made.
        authority: Numeric permission tier of that member.
        allow_all: Bypass every permission check in the dispatcher.
    """

    user_id: UserID
    authority: int
    allow_all: bool = False
    _revoked: bool = field(default=False, repr=False)

    @property
    def revoked(self) -> bool:
        return self._revoked

    def ensure_active(self) -> None:
        if self._revoked:
            raise AuthorizationRevokedError(f"Authorization for {self.user_id} is no longer valid")

    def permits(self, required_authority: int) -> bool:
        self.ensure_active()
        return self.allow_all or self.authority >= required_authority


@contextmanager
def elevated(base: AuthorizationContext) -> Iterator[AuthorizationContext]:
    """
    Yield an allow-all copy of ``base`` that is revoked when the block exits.

    ``base`` itself is never modified. The copy stops working on every exit
    path, including exceptions, so it cannot leak past the enforcement phase.
    """
    override = replace(base, allow_all=True, _revoked=False)
    try:
        yield override
    finally:
        override._revoked = True


@dataclass(frozen=True, slots=True)
class ReportSession:
    """The invocation a report came from."""

    guild_id: GuildID
    channel_id: ChannelID
    reporter_id: UserID
    reporter_authority: int
    invoking_message_id: Optional[MessageID] = None

    def authorization(self) -> AuthorizationContext:
        return AuthorizationContext(user_id=self.reporter_id, authority=self.reporter_authority)


@dataclass(frozen=True, slots=True)
class ReportedMessage:
    """A message retrieved from the platform for adjudication.

    ``author_id`` is None when the platform could not tell who sent it.
    ``timestamp`` is a UNIX timestamp, or None when unknown.
    """

    message_id: MessageID
    content: str
    author_id: Optional[UserID]
    timestamp: Optional[float] = None


@runtime_checkable
class Classifier(Protocol):
    """Opaque content classification backend."""

    async def classify(self, prompt: str) -> str:
        ...


@runtime_checkable
class ActionDispatcher(Protocol):
    """Generic executor for enforcement commands (mute, warn, kick)."""

    async def execute(
        self,
        action_name: str,
        args: List[str],
        options: Dict[str, Any],
        authorization: AuthorizationContext,
    ) -> Any:
        ...


@runtime_checkable
class MessageSource(Protocol):
    """Platform query used to load the message being reported."""

    async def fetch_message(
        self,
        guild_id: GuildID,
        channel_id: ChannelID,
        message_id: MessageID,
    ) -> ReportedMessage | None:
        ...
