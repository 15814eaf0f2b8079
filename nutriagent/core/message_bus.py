"""In-memory routing of channel traffic between clients and conversation agents."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from .models import BusMessage

logger = logging.getLogger(__name__)


class MessageBus:
    """Point-to-point router with one mailbox per open participant.

    Channel clients open a mailbox for the lifetime of a connection and
    agents for their own lifetime. A message for a participant without an
    open mailbox is dropped; a client that went away no longer wants its
    progress events.
    """

    def __init__(self) -> None:
        self._mailboxes: Dict[str, asyncio.Queue[BusMessage]] = {}

    async def send(self, message: BusMessage) -> bool:
        """Route ``message`` to its recipient; return whether it was delivered."""
        mailbox = self._mailboxes.get(message.recipient_id)
        if mailbox is None:
            logger.debug("Dropping %s message for closed mailbox %s", message.payload.get("type"), message.recipient_id)
            return False
        await mailbox.put(message)
        return True

    @asynccontextmanager
    async def deliver(self, participant_id: str) -> AsyncIterator[asyncio.Queue[BusMessage]]:
        """Open the participant's mailbox for the duration of the block."""
        if participant_id in self._mailboxes:
            raise ValueError(f"Mailbox {participant_id} is already open")
        mailbox: asyncio.Queue[BusMessage] = asyncio.Queue()
        self._mailboxes[participant_id] = mailbox
        try:
            yield mailbox
        finally:
            self._mailboxes.pop(participant_id, None)
