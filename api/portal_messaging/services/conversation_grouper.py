"""Groups identity-enriched messages into per-counterparty conversations.

Pure functions: no I/O and no state, so the same input always yields the
same conversation list.
"""

from typing import Dict, Iterable, List, Mapping, Optional

from portal_messaging.models.messaging import (
    UNKNOWN_NAME,
    Conversation,
    Identity,
    Message,
)


def unread_count(messages: Iterable[Message]) -> int:
    """Received messages that have not been read yet."""
    return sum(1 for m in messages if not m.is_sent and not m.read)


def build_conversation(
    counterparty_id: str,
    messages: List[Message],
    identity: Optional[Identity] = None,
) -> Conversation:
    ordered = sorted(messages, key=lambda m: m.sent_at)
    last = ordered[-1]
    job_position = next((m.job_position for m in ordered if m.job_position), None)

    return Conversation(
        counterparty_id=counterparty_id,
        counterparty_name=last.counterparty_name or UNKNOWN_NAME,
        counterparty_firm_name=identity.firm_name if identity else None,
        counterparty_profile_picture=identity.profile_picture if identity else None,
        candidate_profile=identity.candidate_profile if identity else None,
        messages=ordered,
        last_message=last,
        unread_count=unread_count(ordered),
        job_position=job_position,
    )


def group_conversations(
    messages: Iterable[Message],
    identities: Optional[Mapping[str, Identity]] = None,
) -> List[Conversation]:
    """Bucket messages by counterparty and order conversations by recency.

    Every message lands in exactly one conversation, keyed by the participant
    that is not the viewer. Ids that could not be resolved still get their own
    bucket. Within a conversation messages are ascending by ``sent_at`` with
    ties kept in fetch order; conversations are descending by the time of
    their last message.
    """
    identities = identities or {}
    buckets: Dict[str, List[Message]] = {}
    for message in messages:
        buckets.setdefault(message.counterparty_id, []).append(message)

    conversations = [
        build_conversation(counterparty_id, bucket, identities.get(counterparty_id))
        for counterparty_id, bucket in buckets.items()
    ]
    conversations.sort(key=lambda c: c.last_message.sent_at, reverse=True)
    return conversations


def select_conversation_id(
    previous_id: Optional[str], conversations: List[Conversation]
) -> Optional[str]:
    """Keep the previous selection if it survived, else pick the most recent."""
    if previous_id is not None and any(
        c.counterparty_id == previous_id for c in conversations
    ):
        return previous_id
    if conversations:
        return conversations[0].counterparty_id
    return None
