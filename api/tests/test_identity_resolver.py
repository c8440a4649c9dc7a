"""Tests for Directory and IdentityResolver.

Covers:
- Fallback order: employer list, candidate list, single employer fetch, Unknown
- Per-run caching, including negative results
- Invalid and zero ids short-circuiting without network calls
- Concurrent lookups of the same id sharing one request
- Job position resolution
"""

import asyncio

import aiohttp
import pytest
from portal_messaging.models.messaging import (
    UNKNOWN_IDENTITY,
    Candidate,
    Employer,
    JobListing,
)
from portal_messaging.services.identity_resolver import Directory, IdentityResolver


@pytest.fixture
def employer(ids):
    return Employer(id=ids.alice, first_name="Alice", last_name="Ng", firm_name="Acme")


@pytest.fixture
def candidate(ids):
    return Candidate(
        id=ids.bob,
        first_name="Bob",
        last_name="Marsh",
        email="bob@example.com",
        city="Zagreb",
    )


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


class TestDirectory:
    @pytest.mark.asyncio
    async def test_load_fetches_both_lists(self, mock_api, employer, candidate, ids):
        mock_api.get_employers.return_value = [employer]
        mock_api.get_candidates.return_value = [candidate]

        directory = await Directory.load(mock_api)

        assert directory.find_employer(ids.alice) is employer
        assert directory.find_candidate(ids.bob) is candidate
        assert directory.find_employer(ids.bob) is None

    @pytest.mark.asyncio
    async def test_failed_list_is_empty(self, mock_api, candidate, ids):
        mock_api.get_employers.side_effect = aiohttp.ClientConnectionError("down")
        mock_api.get_candidates.return_value = [candidate]

        directory = await Directory.load(mock_api)

        assert directory.employers == []
        assert directory.find_candidate(ids.bob) is candidate

    def test_first_duplicate_wins(self, ids):
        first = Employer(id=ids.alice, firm_name="First")
        second = Employer(id=ids.alice, firm_name="Second")

        directory = Directory(employers=[first, second])

        assert directory.find_employer(ids.alice) is first


# ---------------------------------------------------------------------------
# Identity resolution
# ---------------------------------------------------------------------------


class TestResolveIdentity:
    @pytest.mark.asyncio
    async def test_employer_list_hit(self, mock_api, employer, ids):
        resolver = IdentityResolver(mock_api, Directory(employers=[employer]))

        identity = await resolver.resolve_identity(ids.alice)

        assert identity.name == "Acme"
        assert identity.firm_name == "Acme"
        mock_api.get_employer_by_user_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_candidate_list_hit_carries_profile(self, mock_api, candidate, ids):
        resolver = IdentityResolver(mock_api, Directory(candidates=[candidate]))

        identity = await resolver.resolve_identity(ids.bob)

        assert identity.name == "Bob Marsh"
        assert identity.candidate_profile.email == "bob@example.com"
        assert identity.candidate_profile.city == "Zagreb"
        mock_api.get_employer_by_user_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_employer_list_checked_before_candidates(self, mock_api, ids):
        employer = Employer(id=ids.alice, firm_name="Acme")
        candidate = Candidate(id=ids.alice, first_name="Also", last_name="Alice")
        resolver = IdentityResolver(
            mock_api, Directory(employers=[employer], candidates=[candidate])
        )

        assert (await resolver.resolve_identity(ids.alice)).name == "Acme"

    @pytest.mark.asyncio
    async def test_falls_back_to_single_employer_fetch(self, mock_api, ids):
        mock_api.get_employer_by_user_id.return_value = Employer(
            id=ids.alice, first_name="Dana", last_name="Fox"
        )
        resolver = IdentityResolver(mock_api, Directory())

        identity = await resolver.resolve_identity(ids.alice)

        assert identity.name == "Dana Fox"
        mock_api.get_employer_by_user_id.assert_awaited_once_with(ids.alice)

    @pytest.mark.asyncio
    async def test_unknown_when_every_source_misses(self, mock_api, ids):
        resolver = IdentityResolver(mock_api, Directory())

        identity = await resolver.resolve_identity(ids.alice)

        assert identity == UNKNOWN_IDENTITY
        assert identity.name == "Unknown"

    @pytest.mark.asyncio
    async def test_unknown_when_employer_fetch_fails(self, mock_api, ids):
        mock_api.get_employer_by_user_id.side_effect = aiohttp.ClientConnectionError(
            "down"
        )
        resolver = IdentityResolver(mock_api, Directory())

        assert (await resolver.resolve_identity(ids.alice)).name == "Unknown"

    @pytest.mark.asyncio
    async def test_results_are_cached_including_unknown(self, mock_api, ids):
        resolver = IdentityResolver(mock_api, Directory())

        for _ in range(3):
            await resolver.resolve_identity(ids.alice)

        mock_api.get_employer_by_user_id.assert_awaited_once()
        assert ids.alice in resolver.identities

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "participant_id",
        [None, "", "not-an-id", "000000000000000000000000", "64b7f0c2"],
    )
    async def test_invalid_ids_make_no_calls(self, mock_api, participant_id):
        resolver = IdentityResolver(mock_api, Directory())

        identity = await resolver.resolve_identity(participant_id)

        assert identity.name == "Unknown"
        mock_api.get_employer_by_user_id.assert_not_called()
        assert resolver.identities == {}

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_request(self, mock_api, ids):
        release = asyncio.Event()

        async def slow_lookup(user_id):
            await release.wait()
            return Employer(id=user_id, firm_name="Slow Ltd")

        mock_api.get_employer_by_user_id.side_effect = slow_lookup
        resolver = IdentityResolver(mock_api, Directory())

        pending = asyncio.gather(
            *(resolver.resolve_identity(ids.alice) for _ in range(5))
        )
        await asyncio.sleep(0)
        release.set()
        identities = await pending

        assert {i.name for i in identities} == {"Slow Ltd"}
        mock_api.get_employer_by_user_id.assert_awaited_once()


# ---------------------------------------------------------------------------
# Job positions
# ---------------------------------------------------------------------------


class TestResolveJobPosition:
    @pytest.mark.asyncio
    async def test_found_and_cached(self, mock_api, ids):
        mock_api.get_job_listing.return_value = JobListing(
            id=ids.job, position="  Data Analyst "
        )
        resolver = IdentityResolver(mock_api, Directory())

        first = await resolver.resolve_job_position(ids.job)
        second = await resolver.resolve_job_position(ids.job)

        assert first == second == "Data Analyst"
        mock_api.get_job_listing.assert_awaited_once_with(ids.job)

    @pytest.mark.asyncio
    async def test_missing_listing_is_cached_as_none(self, mock_api, ids):
        resolver = IdentityResolver(mock_api, Directory())

        assert await resolver.resolve_job_position(ids.job) is None
        assert await resolver.resolve_job_position(ids.job) is None
        mock_api.get_job_listing.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fetch_error_yields_none(self, mock_api, ids):
        mock_api.get_job_listing.side_effect = aiohttp.ClientConnectionError("down")
        resolver = IdentityResolver(mock_api, Directory())

        assert await resolver.resolve_job_position(ids.job) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "job_listing_id", [None, "", "000000000000000000000000", "abc"]
    )
    async def test_invalid_reference_makes_no_call(self, mock_api, job_listing_id):
        resolver = IdentityResolver(mock_api, Directory())

        assert await resolver.resolve_job_position(job_listing_id) is None
        mock_api.get_job_listing.assert_not_called()
