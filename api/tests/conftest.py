"""
Pytest configuration and fixtures for the portal messaging tests.

This module provides:
- Test settings with push disabled and fast reconnect delays
- A mocked EmploymentAPI with every endpoint returning empty data
- Factories for raw and normalized messages
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from portal_messaging.clients.employment_api import EmploymentAPI
from portal_messaging.core.config import Settings
from portal_messaging.models.messaging import Message

VIEWER_ID = "64b7f0c2a1b2c3d4e5f60001"
ALICE_ID = "64b7f0c2a1b2c3d4e5f6000a"
BOB_ID = "64b7f0c2a1b2c3d4e5f6000b"
JOB_ID = "64b7f0c2a1b2c3d4e5f6f00d"
ZERO_ID = "000000000000000000000000"

BASE_TIME = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_settings() -> Settings:
    """Settings instance configured for testing.

    - Push channel disabled so no listener task is started
    - Tiny reconnect delays
    """
    return Settings(
        ENVIRONMENT="testing",
        EMPLOYMENT_API_URL="http://employment.test",
        EMPLOYMENT_WS_URL="ws://employment.test",
        PUSH_ENABLED=False,
        WS_RECONNECT_INITIAL_DELAY=0.01,
        WS_RECONNECT_MAX_DELAY=0.04,
        MAX_MESSAGE_LENGTH=200,
    )


@pytest.fixture
def mock_api() -> MagicMock:
    """EmploymentAPI mock; every endpoint succeeds with no data."""
    api = MagicMock(spec=EmploymentAPI)
    api.get_inbox = AsyncMock(return_value=[])
    api.get_sent = AsyncMock(return_value=[])
    api.send_message = AsyncMock(return_value=None)
    api.mark_read = AsyncMock(return_value=None)
    api.get_employers = AsyncMock(return_value=[])
    api.get_candidates = AsyncMock(return_value=[])
    api.get_employer_by_user_id = AsyncMock(return_value=None)
    api.get_job_listing = AsyncMock(return_value=None)
    api.with_token = MagicMock(return_value=api)
    return api


@pytest.fixture
def raw_message() -> Callable[..., Dict[str, Any]]:
    """Factory for employment-service message payloads."""

    def _make(
        id: str,
        sender_id: str,
        receiver_id: str,
        minutes: int = 0,
        read: bool = False,
        content: str = "hello",
        job_listing_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": id,
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "content": content,
            "sent_at": (BASE_TIME + timedelta(minutes=minutes))
            .isoformat()
            .replace("+00:00", "Z"),
            "read": read,
        }
        if job_listing_id is not None:
            payload["job_listing_id"] = job_listing_id
        return payload

    return _make


@pytest.fixture
def make_message(raw_message) -> Callable[..., Message]:
    """Factory for normalized messages; ``is_sent`` sets the direction."""

    def _make(*args: Any, is_sent: bool = False, **kwargs: Any) -> Message:
        message = Message.model_validate(raw_message(*args, **kwargs))
        return message.model_copy(update={"is_sent": is_sent})

    return _make


@pytest.fixture
def ids() -> SimpleNamespace:
    """Well-formed participant and job listing ids used across tests."""
    return SimpleNamespace(
        viewer=VIEWER_ID,
        alice=ALICE_ID,
        bob=BOB_ID,
        job=JOB_ID,
        zero=ZERO_ID,
    )
