"""Realtime gateway models: inbound frames, posting policy, chat messages."""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StringConstraints

from app.schemas import GroupType

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

MAX_MESSAGE_LENGTH = 4000
MessageContent = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_MESSAGE_LENGTH)]


def _channel_id():
    return Field(validation_alias=AliasChoices("channel_id", "channelId"))


class _Frame(BaseModel):
    model_config = ConfigDict(extra="ignore")


class JoinChannelFrame(_Frame):
    type: Literal["join_channel"]
    channel_id: NonEmptyStr = _channel_id()


class LeaveChannelFrame(_Frame):
    type: Literal["leave_channel"]
    channel_id: NonEmptyStr = _channel_id()


class SendMessageFrame(_Frame):
    type: Literal["send_message"]
    channel_id: NonEmptyStr = _channel_id()
    content: MessageContent


class PingFrame(_Frame):
    type: Literal["ping"]


class PongFrame(_Frame):
    type: Literal["pong"]


InboundFrame = Annotated[
    JoinChannelFrame | LeaveChannelFrame | SendMessageFrame | PingFrame | PongFrame,
    Field(discriminator="type"),
]


class PostingPolicy(BaseModel):
    """Who may post into a channel, as seen by one subject."""

    channel_type: GroupType = GroupType.DISCUSSION
    is_channel_admin: bool = False

    @property
    def requires_admin(self) -> bool:
        return self.channel_type == GroupType.ANNOUNCEMENT


class ChatMessage(BaseModel):
    id: str
    channel_id: str
    member_id: str
    content: str
    created_at: datetime
