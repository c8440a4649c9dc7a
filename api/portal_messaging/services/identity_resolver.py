"""Resolves participant and job-listing ids to display data.

Bulk directories are loaded once per aggregation run, so the number of
network calls does not grow with the number of messages. Whatever the bulk
lists cannot answer falls back to a single employer lookup, and every answer
(including "Unknown") is cached for the rest of the run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from portal_messaging.clients.employment_api import EmploymentAPI
from portal_messaging.clients.result import capture
from portal_messaging.core.identifiers import is_valid_object_id
from portal_messaging.metrics.messaging_metrics import (
    identity_lookups_total,
    job_position_lookups_total,
    source_fetch_failures_total,
)
from portal_messaging.models.messaging import (
    UNKNOWN_IDENTITY,
    Candidate,
    Employer,
    Identity,
)

logger = logging.getLogger(__name__)


@dataclass
class Directory:
    """Employers and candidates fetched in bulk for one aggregation run."""

    employers: List[Employer] = field(default_factory=list)
    candidates: List[Candidate] = field(default_factory=list)

    def __post_init__(self):
        # First entry wins when the backend returns duplicates.
        self._employers_by_id: Dict[str, Employer] = {}
        for employer in self.employers:
            self._employers_by_id.setdefault(employer.id, employer)
        self._candidates_by_id: Dict[str, Candidate] = {}
        for candidate in self.candidates:
            self._candidates_by_id.setdefault(candidate.id, candidate)

    @classmethod
    async def load(cls, api: EmploymentAPI) -> "Directory":
        """Fetch both bulk lists concurrently; a failed list is treated as empty."""
        employers, candidates = await asyncio.gather(
            capture(api.get_employers(), "employer directory"),
            capture(api.get_candidates(), "candidate directory"),
        )
        if not employers.ok:
            source_fetch_failures_total.labels(source="employers").inc()
        if not candidates.ok:
            source_fetch_failures_total.labels(source="candidates").inc()
        return cls(
            employers=employers.unwrap_or([]),
            candidates=candidates.unwrap_or([]),
        )

    def find_employer(self, participant_id: str) -> Optional[Employer]:
        if not participant_id:
            return None
        return self._employers_by_id.get(participant_id)

    def find_candidate(self, participant_id: str) -> Optional[Candidate]:
        if not participant_id:
            return None
        return self._candidates_by_id.get(participant_id)


class IdentityResolver:
    """Per-run identity and job-position resolver.

    Build a new instance for every aggregation run; the caches are not meant
    to outlive it.
    """

    def __init__(self, api: EmploymentAPI, directory: Directory):
        self.api = api
        self.directory = directory
        self._cache: Dict[str, Identity] = {}
        self._inflight: Dict[str, "asyncio.Future[Identity]"] = {}
        self._job_cache: Dict[str, Optional[str]] = {}
        self._job_inflight: Dict[str, "asyncio.Future[Optional[str]]"] = {}

    @property
    def identities(self) -> Dict[str, Identity]:
        """Snapshot of everything resolved so far in this run."""
        return dict(self._cache)

    async def resolve_identity(self, participant_id: Optional[str]) -> Identity:
        """Resolve ``participant_id`` to an Identity; never raises.

        Order: id validation, cache, employer directory, candidate directory,
        single employer fetch, "Unknown".
        """
        key = participant_id or ""
        if not is_valid_object_id(key):
            identity_lookups_total.labels(source="invalid").inc()
            return UNKNOWN_IDENTITY

        cached = self._cache.get(key)
        if cached is not None:
            identity_lookups_total.labels(source="cache").inc()
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            identity_lookups_total.labels(source="cache").inc()
            return await pending

        future = asyncio.ensure_future(self._lookup_identity(key))
        self._inflight[key] = future
        try:
            return await future
        finally:
            self._inflight.pop(key, None)

    async def _lookup_identity(self, key: str) -> Identity:
        employer = self.directory.find_employer(key)
        if employer is not None:
            return self._remember(key, Identity.from_employer(employer), "employers")

        candidate = self.directory.find_candidate(key)
        if candidate is not None:
            return self._remember(
                key, Identity.from_candidate(candidate), "candidates"
            )

        result = await capture(
            self.api.get_employer_by_user_id(key), f"employer lookup {key}"
        )
        if result.ok and result.value is not None:
            return self._remember(
                key, Identity.from_employer(result.value), "employer_fetch"
            )

        return self._remember(key, UNKNOWN_IDENTITY, "unknown")

    def _remember(self, key: str, identity: Identity, source: str) -> Identity:
        identity_lookups_total.labels(source=source).inc()
        self._cache[key] = identity
        return identity

    async def resolve_job_position(
        self, job_listing_id: Optional[str]
    ) -> Optional[str]:
        """Position title for a job listing, or None without a valid reference."""
        key = job_listing_id or ""
        if not is_valid_object_id(key):
            return None
        if key in self._job_cache:
            return self._job_cache[key]

        pending = self._job_inflight.get(key)
        if pending is not None:
            return await pending

        future = asyncio.ensure_future(self._lookup_job_position(key))
        self._job_inflight[key] = future
        try:
            return await future
        finally:
            self._job_inflight.pop(key, None)

    async def _lookup_job_position(self, key: str) -> Optional[str]:
        result = await capture(self.api.get_job_listing(key), f"job listing {key}")
        if not result.ok:
            outcome = "error"
            position = None
        elif result.value is None:
            outcome = "missing"
            position = None
        else:
            outcome = "found"
            position = (result.value.position or "").strip() or None
        job_position_lookups_total.labels(outcome=outcome).inc()
        self._job_cache[key] = position
        return position
