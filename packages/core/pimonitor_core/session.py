"""One subscriber connection: inbound reader plus outbound forwarder."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Protocol

from .broadcast import BroadcastHub, Subscription

logger = logging.getLogger("pimonitor.session")


class Transport(Protocol):
    async def receive_text(self) -> str | None:
        """Next inbound text message, or ``None`` once the peer has gone."""

    async def send_text(self, text: str) -> None: ...

    async def close(self) -> None: ...


class SubscriberSession:
    """Binds one transport to one hub subscription for the life of the connection.

    ``run`` returns when either side ends: the peer closes, a send fails, or the
    hub is closed. The surviving task is cancelled, the subscription dropped, and
    the transport closed before it returns.
    """

    def __init__(self, hub: BroadcastHub, transport: Transport, session_id: str | None = None) -> None:
        self.session_id = session_id or str(uuid.uuid4())
        self.messages_received = 0
        self.messages_sent = 0
        self.lagged = 0
        self._hub = hub
        self._transport = transport

    async def run(self) -> None:
        subscription = self._hub.subscribe(self.session_id)
        reader = asyncio.create_task(self._read_inbound(), name=f"session-{self.session_id}-reader")
        forwarder = asyncio.create_task(self._forward(subscription), name=f"session-{self.session_id}-forwarder")
        try:
            done, _ = await asyncio.wait({reader, forwarder}, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.info("session %s ended: %s", self.session_id, task.exception())
        finally:
            for task in (reader, forwarder):
                task.cancel()
            await asyncio.gather(reader, forwarder, return_exceptions=True)
            subscription.close()
            try:
                await self._transport.close()
            except Exception as exc:
                logger.debug("session %s transport close failed: %s", self.session_id, exc)
            logger.info(
                "session %s closed (sent=%d received=%d lagged=%d)",
                self.session_id,
                self.messages_sent,
                self.messages_received,
                self.lagged,
            )

    async def _read_inbound(self) -> None:
        while True:
            text = await self._transport.receive_text()
            if text is None:
                return
            self.messages_received += 1
            logger.debug("session %s received %d chars", self.session_id, len(text))

    async def _forward(self, subscription: Subscription) -> None:
        async for item in subscription:
            missed = subscription.take_lag()
            if missed:
                self.lagged += missed
                logger.warning("session %s lagged, skipped %d snapshots", self.session_id, missed)
            await self._transport.send_text(item.payload)
            self.messages_sent += 1
