"""Beanie ODM schemas for MongoDB collections."""

from .group import Group, GroupMember, GroupMemberRole, GroupMessage, GroupType
from .init import init_beanie_odm
from .platform_config import PlatformConfig
from .restream_state import RestreamState
from .restream_status import RestreamStatus
from .stream_config import STREAM_CONFIG_KEY, StreamConfig

__all__ = [
    "Group",
    "GroupMember",
    "GroupMemberRole",
    "GroupMessage",
    "GroupType",
    "PlatformConfig",
    "RestreamState",
    "RestreamStatus",
    "STREAM_CONFIG_KEY",
    "StreamConfig",
    "init_beanie_odm",
]
