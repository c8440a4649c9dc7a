"""Conversation endpoints consumed by the candidate and employer messaging pages.

The caller's bearer token is forwarded to the employment service untouched;
this service neither issues nor verifies tokens.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import BaseModel, Field

from portal_messaging.core.exceptions import MissingTokenError
from portal_messaging.models.messaging import Conversation
from portal_messaging.services.conversation_registry import ConversationRegistry
from portal_messaging.services.conversation_service import ConversationService
from portal_messaging.services.participant_resolver import Viewer, ViewerRole

router = APIRouter(prefix="/{role}/{user_id}/conversations", tags=["Conversations"])
logger = logging.getLogger(__name__)


class SendMessageRequest(BaseModel):
    """Request model for sending a message to a counterparty."""

    content: str = Field(description="Message text")
    job_listing_id: Optional[str] = Field(
        None, description="Job listing the message refers to"
    )


class ConversationListResponse(BaseModel):
    conversations: List[Conversation]
    selected_counterparty_id: Optional[str] = None
    unread_total: int = 0


def get_registry(request: Request) -> ConversationRegistry:
    return request.app.state.registry


def bearer_token(authorization: Optional[str] = Header(None)) -> str:
    if not authorization:
        raise MissingTokenError()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise MissingTokenError()
    return token.strip()


async def get_conversation_service(
    role: ViewerRole,
    user_id: str,
    email: Optional[str] = Query(
        None, description="Viewer email, used to match candidate profiles"
    ),
    token: str = Depends(bearer_token),
    registry: ConversationRegistry = Depends(get_registry),
) -> ConversationService:
    viewer = Viewer(user_id=user_id, role=role, token=token, email=email)
    return await registry.get(viewer)


def _listing(service: ConversationService) -> ConversationListResponse:
    return ConversationListResponse(
        conversations=service.get_conversations(),
        selected_counterparty_id=service.selected_conversation_id,
        unread_total=service.total_unread,
    )


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    service: ConversationService = Depends(get_conversation_service),
):
    """Current conversations, loading them on first access."""
    await service.ensure_loaded()
    return _listing(service)


@router.post("/refresh", response_model=ConversationListResponse)
async def refresh_conversations(
    service: ConversationService = Depends(get_conversation_service),
):
    """Re-run the aggregation pipeline."""
    if service.is_loaded:
        await service.refresh()
    else:
        await service.ensure_loaded()
    return _listing(service)


@router.post("/{counterparty_id}/select", response_model=Conversation)
async def select_conversation(
    counterparty_id: str,
    service: ConversationService = Depends(get_conversation_service),
):
    """Open a conversation; its received messages become read."""
    await service.ensure_loaded()
    return await service.select_conversation(counterparty_id)


@router.post(
    "/{counterparty_id}/messages",
    response_model=ConversationListResponse,
    status_code=201,
)
async def send_message(
    counterparty_id: str,
    body: SendMessageRequest,
    service: ConversationService = Depends(get_conversation_service),
):
    """Send a message; the response reflects the list after re-aggregation."""
    await service.ensure_loaded()
    await service.send_message(
        counterparty_id, body.content, job_listing_id=body.job_listing_id
    )
    return _listing(service)
