"""A single authenticated realtime connection and its outbound queue."""

import asyncio
from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger

from app.domain.auth.jwt_auth import AuthSubject
from app.domain.utils.idgen import new_connection_id


class SocketTransport(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


@dataclass(eq=False)
class Connection:
    """Server-side state of one socket.

    Outbound frames are queued with `enqueue` and written by a dedicated task,
    so fan-out never waits on a slow client.
    """

    socket: SocketTransport
    subject: AuthSubject
    outbox_size: int = 256
    connection_id: str = field(default_factory=new_connection_id)
    subscribed_channels: set[str] = field(default_factory=set)
    alive: bool = True
    is_open: bool = True
    outbox: asyncio.Queue = field(init=False)
    _writer: asyncio.Task | None = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.outbox = asyncio.Queue(maxsize=self.outbox_size)

    @property
    def subject_id(self) -> str:
        return self.subject.member_id

    def enqueue(self, text: str) -> bool:
        if not self.is_open:
            return False
        try:
            self.outbox.put_nowait(text)
        except asyncio.QueueFull:
            # The next heartbeat sweep reaps it
            self.alive = False
            logger.warning(f"Outbox full for connection {self.connection_id}, dropping frame")
            return False
        return True

    def start_writer(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    async def _write_loop(self) -> None:
        while True:
            text = await self.outbox.get()
            try:
                await self.socket.send_text(text)
            except Exception as e:
                logger.info(f"Write failed on connection {self.connection_id}: {type(e).__name__}")
                self.is_open = False
                self.alive = False
                return

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        if not self.is_open and self._writer is None:
            return
        self.is_open = False

        writer, self._writer = self._writer, None
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)

        try:
            await self.socket.close(code=code, reason=reason)
        except Exception as e:
            # Already closed by the peer
            logger.debug(f"Close on connection {self.connection_id} failed: {type(e).__name__}")
