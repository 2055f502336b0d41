"""
Boundary protocols for the chat platform and the text classifier.

The moderation core never talks to a chat API or a model directly. The bot
layer supplies an :class:`Enforcement` implementation (mute/kick/ban/message
calls) and a :class:`Classifier` implementation; tests use ``AsyncMock``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

from strikewarden.datatypes.chat_datatypes import ChatUser, GroupID, UserID


@dataclass(slots=True, frozen=True)
class ClassificationScores:
    """Classifier output for one message.

    Attributes:
        spam_score: Probability the message is promotional/spam (0..1).
        profanity_score: Probability the message is profane (0..1).
        profanity_type: Optional label of the detected profanity.
    """

    spam_score: float = 0.0
    profanity_score: float = 0.0
    profanity_type: Optional[str] = None


@runtime_checkable
class Classifier(Protocol):
    async def classify(self, text: str, context_keywords: Sequence[str]) -> ClassificationScores:
        ...


@runtime_checkable
class Enforcement(Protocol):
    """Chat-platform actions used by the escalator and the pipeline."""

    async def mute(self, group_id: GroupID, user_id: UserID, minutes: int) -> None:
        ...

    async def kick(self, group_id: GroupID, user_id: UserID) -> None:
        """Remove the user and immediately allow them to rejoin."""
        ...

    async def ban(self, group_id: GroupID, user_id: UserID) -> None:
        ...

    async def send_message(self, group_id: GroupID, text: str, delete_after: Optional[int] = None) -> Any:
        """Send ``text``; when ``delete_after`` is set the platform removes it after that many seconds."""
        ...

    async def delete_message(self, group_id: GroupID, message_id: Any) -> None:
        ...


def mention(user: ChatUser) -> str:
    """``@username`` when available, otherwise the first name (or id)."""
    if user.username:
        return f"@{user.username}"
    return user.first_name or str(user.id)


def render_warning(template: str, user: ChatUser, strike_count: int, reason: Optional[str] = None) -> str:
    """Fill the ``{user}`` placeholder and append the reason and strike number."""
    parts: List[str] = [template.replace("{user}", mention(user))]
    if reason:
        parts.append(f'Reason: "{reason}"')
    parts.append(f"(Strike {strike_count})")
    return " ".join(parts)
