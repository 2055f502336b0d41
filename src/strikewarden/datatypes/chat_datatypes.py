"""
Identifiers and user descriptors for chat groups.

Group and user identifiers are opaque, stable strings supplied by the chat
platform. They are never parsed or compared numerically.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, NewType, Optional

GroupID = NewType("GroupID", str)
UserID = NewType("UserID", str)


def to_group_id(value: Any) -> GroupID:
    """Normalize a raw group identifier (int or str) to a GroupID."""
    return GroupID(str(value).strip())


def to_user_id(value: Any) -> UserID:
    """Normalize a raw user identifier (int or str) to a UserID."""
    return UserID(str(value).strip())


@dataclass(slots=True, frozen=True)
class ChatUser:
    """A chat participant as embedded in audit payloads.

    Serialized with the platform's snake_case keys (``first_name``,
    ``username``) so records written by older bot versions decode unchanged.
    """

    id: UserID
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        """Best human-readable name: first name, then @username, then the id."""
        if self.first_name:
            return self.first_name
        if self.username:
            return f"@{self.username}"
        return str(self.id)

    def to_wire_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": str(self.id)}
        if self.first_name is not None:
            data["first_name"] = self.first_name
        if self.last_name is not None:
            data["last_name"] = self.last_name
        if self.username is not None:
            data["username"] = self.username
        return data

    @classmethod
    def from_wire_dict(cls, data: Any) -> Optional["ChatUser"]:
        """Build a ChatUser from a payload object; returns None for missing data.

        Raises:
            ValueError: If ``data`` is present but is not an object with an ``id``.
        """
        if data is None:
            return None
        if not isinstance(data, dict) or data.get("id") is None:
            raise ValueError(f"user object must carry an id, got {data!r}")
        return cls(
            id=to_user_id(data["id"]),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            username=data.get("username"),
        )
