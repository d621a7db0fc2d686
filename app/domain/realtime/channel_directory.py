"""Membership and message storage consumed by the gateway."""

from typing import Any, Protocol

from loguru import logger

from app.domain.utils.idgen import new_message_id
from app.schemas import Group, GroupMember, GroupMemberRole, GroupMessage
from app.shared.domain.time_utils import utc_now

from .realtime_models import ChatMessage, PostingPolicy


class ChannelDirectory(Protocol):
    async def can_view(self, channel_id: str, subject_id: str) -> bool: ...

    async def get_posting_policy(self, channel_id: str, subject_id: str) -> PostingPolicy | None: ...

    async def save_message(self, channel_id: str, subject_id: str, content: str) -> dict[str, Any]: ...


class MongoChannelDirectory:
    """Group chat channels backed by the `group*` collections."""

    async def _find_member(self, channel_id: str, subject_id: str) -> GroupMember | None:
        return await GroupMember.find_one(
            GroupMember.group_id == channel_id,
            GroupMember.member_id == subject_id,
        )

    async def can_view(self, channel_id: str, subject_id: str) -> bool:
        return await self._find_member(channel_id, subject_id) is not None

    async def get_posting_policy(self, channel_id: str, subject_id: str) -> PostingPolicy | None:
        group = await Group.find_one(Group.group_id == channel_id)
        if group is None:
            return None

        member = await self._find_member(channel_id, subject_id)
        return PostingPolicy(
            channel_type=group.type,
            is_channel_admin=member is not None and member.role == GroupMemberRole.ADMIN,
        )

    async def save_message(self, channel_id: str, subject_id: str, content: str) -> dict[str, Any]:
        doc = GroupMessage(
            message_id=new_message_id(),
            group_id=channel_id,
            member_id=subject_id,
            content=content,
            created_at=utc_now(),
        )
        await doc.insert()
        logger.debug(f"Saved message {doc.message_id} in {channel_id}")

        message = ChatMessage(
            id=doc.message_id,
            channel_id=channel_id,
            member_id=subject_id,
            content=content,
            created_at=doc.created_at,
        )
        return message.model_dump(mode="json")
