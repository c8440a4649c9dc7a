import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from portal_messaging.core.config import Settings
from portal_messaging.models.messaging import (
    Candidate,
    Employer,
    JobListing,
    Message,
    message_payload,
    parse_candidates,
    parse_employer,
    parse_employers,
    parse_job_listing,
    parse_message,
    parse_messages,
)

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class EmploymentAPI:
    """Client for the employment service's messaging and directory endpoints.

    One instance carries one bearer token. Instances created through
    ``with_token()`` share the parent's HTTP session, so a process needs a
    single connection pool no matter how many viewers it serves.
    """

    def __init__(
        self,
        settings: Settings,
        token: str = "",
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = settings
        self.base_url = settings.EMPLOYMENT_API_URL
        self.token = token
        self._session = session
        self._owns_session = session is None

    def with_token(self, token: str) -> "EmploymentAPI":
        """Return a client for ``token`` that reuses this client's session."""
        return EmploymentAPI(self.settings, token=token, session=self._session)

    async def setup(self):
        """Initialize the HTTP session with timeouts."""
        if not self._session:
            timeout = aiohttp.ClientTimeout(
                total=self.settings.HTTP_TIMEOUT_SECONDS,
                connect=self.settings.HTTP_CONNECT_TIMEOUT_SECONDS,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def cleanup(self):
        """Close the session if this client created it."""
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Make an HTTP request to the employment service.

        Returns:
            Decoded JSON body, ``{"content": text}`` for non-JSON bodies, or
            ``None`` when the resource does not exist (404).

        Raises:
            aiohttp.ClientError: On connection errors and non-404 HTTP errors.
        """
        if not self._session:
            await self.setup()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            async with self._session.request(
                method, url, headers=headers, **kwargs
            ) as response:
                if response.status == 404:
                    logger.debug("Employment API returned 404 for %s %s", method, url)
                    return None
                response.raise_for_status()
                if "application/json" in response.headers.get("content-type", ""):
                    return await response.json()
                return {"content": await response.text()}
        except aiohttp.ClientError as e:
            logger.error(
                "Error making request to employment API %s %s: %s", method, url, e
            )
            raise

    # Messages

    async def get_inbox(self, participant_id: str) -> List[Message]:
        payload = await self._make_request(
            "GET", f"/messages/inbox/{_segment(participant_id)}"
        )
        return parse_messages(payload, is_sent=False)

    async def get_sent(self, participant_id: str) -> List[Message]:
        payload = await self._make_request(
            "GET", f"/messages/sent/{_segment(participant_id)}"
        )
        return parse_messages(payload, is_sent=True)

    async def send_message(
        self,
        sender_id: str,
        receiver_id: str,
        content: str,
        job_listing_id: Optional[str] = None,
    ) -> Optional[Message]:
        payload = await self._make_request(
            "POST",
            "/messages",
            json=message_payload(sender_id, receiver_id, content, job_listing_id),
        )
        return parse_message(payload)

    async def mark_read(self, sender_id: str, receiver_id: str) -> None:
        """Mark everything ``sender_id`` sent to ``receiver_id`` as read."""
        await self._make_request(
            "PUT", f"/messages/{_segment(sender_id)}/{_segment(receiver_id)}/read"
        )

    # Directory

    async def get_employers(self) -> List[Employer]:
        return parse_employers(await self._make_request("GET", "/employers"))

    async def get_candidates(self) -> List[Candidate]:
        return parse_candidates(await self._make_request("GET", "/candidates"))

    async def get_employer_by_user_id(self, user_id: str) -> Optional[Employer]:
        payload = await self._make_request(
            "GET", f"/employers/user/{_segment(user_id)}"
        )
        return parse_employer(payload)

    async def get_job_listing(self, job_listing_id: str) -> Optional[JobListing]:
        payload = await self._make_request(
            "GET", f"/job-listings/{_segment(job_listing_id)}"
        )
        return parse_job_listing(payload)
