"""Maps an authenticated portal user to their employment-service participant id.

Employers and candidates have their own documents in the employment service,
and messages are addressed to those ids rather than to the auth user id.
When no profile can be found the auth user id is used as-is, which is what
the employment service falls back to for users without a profile.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from portal_messaging.clients.employment_api import EmploymentAPI
from portal_messaging.clients.result import capture
from portal_messaging.core.exceptions import ParticipantResolutionError

logger = logging.getLogger(__name__)


class ViewerRole(str, Enum):
    EMPLOYER = "employer"
    CANDIDATE = "candidate"


@dataclass(frozen=True)
class Viewer:
    """The user looking at their messages, plus the token to act on their behalf."""

    user_id: str
    role: ViewerRole
    token: str = field(default="", repr=False)
    email: Optional[str] = None


class ParticipantResolver:
    def __init__(self, api: EmploymentAPI):
        self.api = api

    async def resolve(self, viewer: Viewer) -> str:
        """Return the participant id used by the messaging endpoints.

        Raises:
            ParticipantResolutionError: If the viewer carries no user id.
        """
        user_id = (viewer.user_id or "").strip()
        if not user_id:
            raise ParticipantResolutionError("Viewer has no user id")

        if viewer.role == ViewerRole.EMPLOYER:
            participant_id = await self._resolve_employer(user_id)
        else:
            participant_id = await self._resolve_candidate(user_id, viewer.email)

        if participant_id != user_id:
            logger.info(
                "Resolved %s %s to participant %s",
                viewer.role.value,
                user_id,
                participant_id,
            )
        return participant_id

    async def _resolve_employer(self, user_id: str) -> str:
        result = await capture(
            self.api.get_employer_by_user_id(user_id), "employer profile lookup"
        )
        employer = result.unwrap_or(None)
        if employer is not None and employer.id:
            return employer.id
        return user_id

    async def _resolve_candidate(self, user_id: str, email: Optional[str]) -> str:
        result = await capture(self.api.get_candidates(), "candidate profile lookup")
        for candidate in result.unwrap_or([]):
            if (
                (email and candidate.email == email)
                or candidate.id == user_id
                or candidate.user_id == user_id
            ):
                return candidate.id or user_id
        return user_id
