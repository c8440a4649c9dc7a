"""Conversation aggregation for one viewer.

Each run fetches inbox and sent messages, resolves names and job positions
with a fresh per-run resolver, groups the result into conversations and
replaces the held state wholesale. Runs may overlap (manual refresh while a
push-triggered one is in flight); whichever finishes last is what callers see.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Set

from portal_messaging.clients.employment_api import EmploymentAPI
from portal_messaging.clients.result import capture
from portal_messaging.clients.websocket import ChatSocketClient
from portal_messaging.core.config import Settings
from portal_messaging.core.exceptions import (
    BaseAppException,
    ConversationNotFoundError,
    MessagesUnavailableError,
    MessageSendError,
    ValidationError,
)
from portal_messaging.core.identifiers import is_valid_object_id
from portal_messaging.metrics.messaging_metrics import (
    aggregation_duration_seconds,
    aggregation_runs_total,
    mark_read_failures_total,
    messages_sent_total,
    push_events_total,
)
from portal_messaging.models.messaging import Conversation, Message
from portal_messaging.services.conversation_grouper import (
    group_conversations,
    select_conversation_id,
)
from portal_messaging.services.identity_resolver import Directory, IdentityResolver
from portal_messaging.services.message_fetcher import MessageFetcher
from portal_messaging.services.participant_resolver import (
    ParticipantResolver,
    Viewer,
)
from portal_messaging.utils.logging import preview

logger = logging.getLogger(__name__)

SocketFactory = Callable[[str], ChatSocketClient]


class ConversationService:
    """Holds the aggregated conversation list of one viewer.

    Exposes the operations the messaging pages need: ``get_conversations``,
    ``select_conversation``, ``send_message`` and ``refresh``, plus the push
    listener that keeps the list current.
    """

    def __init__(
        self,
        api: EmploymentAPI,
        viewer: Viewer,
        settings: Settings,
        socket_factory: Optional[SocketFactory] = None,
    ):
        self.api = api
        self.viewer = viewer
        self.settings = settings
        self._socket_factory = socket_factory or self._default_socket
        self._participant_resolver = ParticipantResolver(api)
        self._fetcher = MessageFetcher(api)

        self._participant_id: Optional[str] = None
        self._conversations: List[Conversation] = []
        self._selected_id: Optional[str] = None
        self._loaded = False
        self._run_sequence = 0
        self.last_error: Optional[str] = None

        self._socket: Optional[ChatSocketClient] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._push_tasks: Set[asyncio.Task] = set()

    def _default_socket(self, url: str) -> ChatSocketClient:
        return ChatSocketClient(
            url,
            initial_delay=self.settings.WS_RECONNECT_INITIAL_DELAY,
            max_delay=self.settings.WS_RECONNECT_MAX_DELAY,
        )

    # State accessors

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def selected_conversation_id(self) -> Optional[str]:
        return self._selected_id

    @property
    def total_unread(self) -> int:
        return sum(c.unread_count for c in self._conversations)

    def get_conversations(self) -> List[Conversation]:
        return list(self._conversations)

    def get_conversation(self, counterparty_id: str) -> Optional[Conversation]:
        for conversation in self._conversations:
            if conversation.counterparty_id == counterparty_id:
                return conversation
        return None

    async def participant_id(self) -> str:
        """Employment-service id of the viewer, resolved once per service."""
        if self._participant_id is None:
            self._participant_id = await self._participant_resolver.resolve(
                self.viewer
            )
        return self._participant_id

    # Aggregation

    async def ensure_loaded(self) -> None:
        """Run the initial load and start the push listener if enabled."""
        if self._loaded:
            return
        await self.refresh(trigger="initial")
        if self.settings.PUSH_ENABLED:
            await self.start_push()

    async def refresh(self, trigger: str = "refresh") -> List[Conversation]:
        """Re-run the whole fetch/resolve/group pipeline.

        Raises:
            ParticipantResolutionError: If the viewer's id cannot be resolved.
            MessagesUnavailableError: If both inbox and sent failed. The held
                conversations are left as they were.
        """
        self._run_sequence += 1
        run_id = self._run_sequence
        start_time = time.perf_counter()

        try:
            conversations = await self._aggregate()
        except BaseAppException as e:
            self.last_error = e.detail
            aggregation_runs_total.labels(trigger=trigger, outcome="failure").inc()
            logger.warning(
                "Aggregation run %d (%s) failed: %s", run_id, trigger, e.detail
            )
            raise

        self._conversations = conversations
        self._selected_id = select_conversation_id(self._selected_id, conversations)
        self._loaded = True
        self.last_error = None

        duration = time.perf_counter() - start_time
        aggregation_duration_seconds.observe(duration)
        aggregation_runs_total.labels(trigger=trigger, outcome="success").inc()
        logger.info(
            "Aggregation run %d (%s) produced %d conversations in %.3fs",
            run_id,
            trigger,
            len(conversations),
            duration,
        )
        return conversations

    async def _aggregate(self) -> List[Conversation]:
        participant_id = await self.participant_id()
        fetched = await self._fetcher.fetch_raw_messages(participant_id)
        if fetched.total_failure:
            raise MessagesUnavailableError(participant_id)

        directory = await Directory.load(self.api)
        resolver = IdentityResolver(self.api, directory)
        enriched = await self._enrich(fetched.messages, resolver)
        return group_conversations(enriched, resolver.identities)

    @staticmethod
    async def _enrich(
        messages: List[Message], resolver: IdentityResolver
    ) -> List[Message]:
        async def enrich_one(message: Message) -> Message:
            sender, receiver, job_position = await asyncio.gather(
                resolver.resolve_identity(message.sender_id),
                resolver.resolve_identity(message.receiver_id),
                resolver.resolve_job_position(message.job_listing_id),
            )
            return message.model_copy(
                update={
                    "sender_name": sender.name,
                    "receiver_name": receiver.name,
                    "job_position": job_position,
                }
            )

        return list(await asyncio.gather(*(enrich_one(m) for m in messages)))

    # User actions

    async def select_conversation(self, counterparty_id: str) -> Conversation:
        """Select a conversation and mark its received messages as read.

        The local read state is updated even when the backend call fails; the
        next refresh brings back whatever the server holds.

        Raises:
            ConversationNotFoundError: If no conversation has this counterparty.
        """
        conversation = self.get_conversation(counterparty_id)
        if conversation is None:
            raise ConversationNotFoundError(counterparty_id)

        self._selected_id = counterparty_id
        if conversation.unread_count == 0:
            return conversation

        participant_id = await self.participant_id()
        result = await capture(
            self.api.mark_read(counterparty_id, participant_id), "mark as read"
        )
        if not result.ok:
            mark_read_failures_total.inc()
            logger.warning(
                "Mark-as-read for conversation %s failed; keeping local read state",
                counterparty_id,
            )

        # A refresh may have replaced the list while the request was in flight.
        current = self.get_conversation(counterparty_id) or conversation
        updated = _mark_received_read(current)
        self._conversations = [
            updated if c.counterparty_id == counterparty_id else c
            for c in self._conversations
        ]
        return updated

    async def send_message(
        self,
        counterparty_id: str,
        content: str,
        job_listing_id: Optional[str] = None,
    ) -> List[Conversation]:
        """Send a message and re-aggregate once the backend accepted it.

        Without an explicit ``job_listing_id`` the first valid job reference of
        the existing conversation is reused.

        Raises:
            ValidationError: For blank or oversized content or no recipient.
            MessageSendError: If the employment service did not accept it.
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content must not be empty", field="content")
        if len(text) > self.settings.MAX_MESSAGE_LENGTH:
            limit = self.settings.MAX_MESSAGE_LENGTH
            raise ValidationError(
                f"Message content exceeds {limit} characters", field="content"
            )
        if not (counterparty_id or "").strip():
            raise ValidationError("Recipient is required", field="receiver_id")

        if job_listing_id is None:
            job_listing_id = self._conversation_job_listing_id(counterparty_id)
        elif not is_valid_object_id(job_listing_id):
            job_listing_id = None

        participant_id = await self.participant_id()
        result = await capture(
            self.api.send_message(
                participant_id, counterparty_id, text, job_listing_id
            ),
            "send message",
        )
        if not result.ok:
            messages_sent_total.labels(outcome="failure").inc()
            raise MessageSendError(str(result.error) or type(result.error).__name__)

        messages_sent_total.labels(outcome="success").inc()
        logger.info("Sent message to %s: %s", counterparty_id, preview(text))
        return await self.refresh(trigger="send")

    def _conversation_job_listing_id(self, counterparty_id: str) -> Optional[str]:
        conversation = self.get_conversation(counterparty_id)
        if conversation is None:
            return None
        for message in conversation.messages:
            if is_valid_object_id(message.job_listing_id):
                return message.job_listing_id
        return None

    # Push channel

    async def start_push(self) -> None:
        """Subscribe to new-message events; each one triggers a full refresh."""
        if self._listen_task is not None and not self._listen_task.done():
            return
        participant_id = await self.participant_id()
        socket = self._socket_factory(self.settings.messages_ws_url(participant_id))
        socket.on_event(self._on_push_event)
        self._socket = socket
        self._listen_task = asyncio.create_task(socket.listen_forever())
        logger.info("Listening for new messages for participant %s", participant_id)

    async def _on_push_event(self, event: Dict[str, Any]) -> None:
        push_events_total.inc()
        # Run detached so a slow refresh never blocks the receive loop.
        task = asyncio.create_task(self._refresh_from_push())
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)

    async def _refresh_from_push(self) -> None:
        try:
            await self.refresh(trigger="push")
        except BaseAppException as e:
            logger.warning("Push-triggered refresh failed: %s", e.detail)

    async def close(self) -> None:
        """Stop the push listener and any refreshes it started."""
        if self._socket is not None:
            await self._socket.stop_listening()
            self._socket = None
        if self._listen_task is not None:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None
        for task in list(self._push_tasks):
            task.cancel()
        self._push_tasks.clear()


def _mark_received_read(conversation: Conversation) -> Conversation:
    messages = [
        m if m.is_sent or m.read else m.model_copy(update={"read": True})
        for m in conversation.messages
    ]
    return conversation.model_copy(
        update={
            "messages": messages,
            "last_message": messages[-1],
            "unread_count": 0,
        }
    )
