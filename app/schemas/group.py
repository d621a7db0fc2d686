"""Group chat ODM schemas.

Groups and their memberships are managed by the member CRUD layer; the realtime
gateway only reads them and appends messages.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from beanie import Document, Indexed
from pydantic import field_validator

from .schema_utils import parse_mongo_datetime


class GroupType(str, Enum):
    """Posting policy of a group channel."""

    DISCUSSION = "discussion"
    # Only group admins (or global admins) may post
    ANNOUNCEMENT = "announcement"

    def __str__(self) -> str:
        return self.value


class GroupMemberRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"

    def __str__(self) -> str:
        return self.value


class Group(Document):
    group_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    name: str
    description: str | None = None
    type: GroupType = GroupType.DISCUSSION

    class Settings:
        name = "group"


class GroupMember(Document):
    group_id: Indexed(str)  # type: ignore[valid-type]
    member_id: Indexed(str)  # type: ignore[valid-type]
    role: GroupMemberRole = GroupMemberRole.MEMBER

    class Settings:
        name = "group_member"
        indexes = [
            [("group_id", 1), ("member_id", 1)],
        ]


class GroupMessage(Document):
    message_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    group_id: Indexed(str)  # type: ignore[valid-type]
    member_id: str
    content: str
    created_at: datetime

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    class Settings:
        name = "group_message"
        indexes = [
            [("group_id", 1), ("created_at", -1)],
        ]
