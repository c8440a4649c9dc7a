"""Fetches the raw inbox and sent messages of one participant."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List

from portal_messaging.clients.employment_api import EmploymentAPI
from portal_messaging.clients.result import capture
from portal_messaging.metrics.messaging_metrics import source_fetch_failures_total
from portal_messaging.models.messaging import Message

logger = logging.getLogger(__name__)


@dataclass
class FetchedMessages:
    """Inbox ++ sent, unsorted, plus which side actually answered."""

    messages: List[Message] = field(default_factory=list)
    inbox_ok: bool = True
    sent_ok: bool = True

    @property
    def total_failure(self) -> bool:
        return not self.inbox_ok and not self.sent_ok


class MessageFetcher:
    def __init__(self, api: EmploymentAPI):
        self.api = api

    async def fetch_raw_messages(self, participant_id: str) -> FetchedMessages:
        """Load inbox and sent lists concurrently.

        A failing side contributes no messages instead of failing the call.
        Inbox messages come back with ``is_sent=False``, sent ones with
        ``is_sent=True``.
        """
        inbox, sent = await asyncio.gather(
            capture(self.api.get_inbox(participant_id), "inbox"),
            capture(self.api.get_sent(participant_id), "sent"),
        )

        if not inbox.ok:
            source_fetch_failures_total.labels(source="inbox").inc()
        if not sent.ok:
            source_fetch_failures_total.labels(source="sent").inc()

        inbox_messages = [
            m.model_copy(update={"is_sent": False}) for m in inbox.unwrap_or([])
        ]
        sent_messages = [
            m.model_copy(update={"is_sent": True}) for m in sent.unwrap_or([])
        ]
        logger.debug(
            "Fetched %d inbox and %d sent messages for %s",
            len(inbox_messages),
            len(sent_messages),
            participant_id,
        )
        return FetchedMessages(
            messages=inbox_messages + sent_messages,
            inbox_ok=inbox.ok,
            sent_ok=sent.ok,
        )
