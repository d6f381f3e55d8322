"""Tests for the help request lifecycle."""

from datetime import timedelta

import pytest

from src.core.exceptions import (
    ConcurrentUpdateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from src.database.store import Collection
from src.models.records import DeliveryStatus, KnowledgeSource, RequestStatus
from src.services.help_request import HelpRequestService, follow_up_message

from tests.conftest import FakeSession

PHONE = "+15551234567"


class TestCreateRequest:
    @pytest.mark.asyncio
    async def test_new_request_is_pending_with_one_hour_deadline(self, help_service):
        request = await help_service.create_request(PHONE, "Do you have parking?", customer_name="Ana")

        pending = await help_service.get_pending_requests()
        assert [r.id for r in pending] == [request.id]
        assert pending[0].status == RequestStatus.PENDING
        assert pending[0].timeout_at == pending[0].created_at + timedelta(hours=1)
        assert pending[0].customer_name == "Ana"
        assert request.id.startswith("req_")

    @pytest.mark.asyncio
    async def test_supervisor_is_notified(self, help_service, sink):
        request = await help_service.create_request(PHONE, "Do you do perms?", context="caller asked twice")
        assert [r.id for r in sink.supervisor] == [request.id]
        assert sink.supervisor[0].context == "caller asked twice"

    @pytest.mark.asyncio
    async def test_missing_fields_are_rejected(self, help_service, seeded_store):
        with pytest.raises(ValidationError):
            await help_service.create_request(PHONE, "   ")
        with pytest.raises(ValidationError):
            await help_service.create_request("", "Do you do perms?")
        assert seeded_store.count(Collection.HELP_REQUESTS) == 0

    @pytest.mark.asyncio
    async def test_pending_keeps_creation_order(self, help_service, clock):
        first = await help_service.create_request(PHONE, "First question")
        clock.advance(minutes=1)
        second = await help_service.create_request(PHONE, "Second question")
        assert [r.id for r in await help_service.get_pending_requests()] == [first.id, second.id]


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_request_is_still_pending_at_its_deadline(self, help_service, clock):
        await help_service.create_request(PHONE, "Do you have parking?")
        clock.advance(hours=1)
        assert len(await help_service.get_pending_requests()) == 1

    @pytest.mark.asyncio
    async def test_expired_requests_time_out_on_read(self, help_service, clock):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        clock.advance(hours=1, seconds=1)

        assert await help_service.get_pending_requests() == []
        assert help_service.get_request(request.id).status == RequestStatus.TIMEOUT

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, help_service, clock):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        clock.advance(hours=2)

        assert await help_service.check_timeouts() == 1
        for _ in range(3):
            assert await help_service.get_pending_requests() == []
            assert help_service.get_request(request.id).status == RequestStatus.TIMEOUT
        assert await help_service.check_timeouts() == 0


class TestResolveRequest:
    @pytest.mark.asyncio
    async def test_resolution_writes_one_learned_entry(self, help_service, kb_service, clock):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        before = kb_service.count()
        clock.advance(minutes=10)

        result = await help_service.resolve_request(request.id, "Yes, free parking in the lot")

        assert kb_service.count() == before + 1
        entry = result.knowledge_entry
        assert entry.question == "Do you have parking?"
        assert entry.answer == "Yes, free parking in the lot"
        assert entry.source == KnowledgeSource.LEARNED

        stored = help_service.get_request(request.id)
        assert stored.status == RequestStatus.RESOLVED
        assert stored.supervisor_answer == "Yes, free parking in the lot"
        assert stored.resolved_at == clock.now

    @pytest.mark.asyncio
    async def test_learned_entries_are_tagged_by_default(self, help_service, kb_service):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        result = await help_service.resolve_request(request.id, "Yes")

        assert result.knowledge_entry.category == "supervisor-learned"
        assert kb_service.has_learned_entry("Do you have parking?")
        assert not kb_service.has_learned_entry("Do you sell gift cards?")

    @pytest.mark.asyncio
    async def test_category_is_passed_to_the_knowledge_base(self, help_service):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        result = await help_service.resolve_request(request.id, "Yes", category="amenities")
        assert result.knowledge_entry.category == "amenities"

    @pytest.mark.asyncio
    async def test_unknown_request(self, help_service):
        with pytest.raises(NotFoundError):
            await help_service.resolve_request("req_missing", "Yes")

    @pytest.mark.asyncio
    async def test_blank_answer_has_no_side_effects(self, help_service, kb_service):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        before = kb_service.count()

        with pytest.raises(ValidationError):
            await help_service.resolve_request(request.id, "  ")

        assert kb_service.count() == before
        assert help_service.get_request(request.id).status == RequestStatus.PENDING

    @pytest.mark.asyncio
    async def test_resolved_request_cannot_be_resolved_again(self, help_service, kb_service):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        await help_service.resolve_request(request.id, "Yes")
        before = kb_service.count()

        with pytest.raises(InvalidStateError):
            await help_service.resolve_request(request.id, "No")

        assert kb_service.count() == before
        assert help_service.get_request(request.id).supervisor_answer == "Yes"

    @pytest.mark.asyncio
    async def test_expired_request_cannot_be_resolved(self, help_service, clock):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        clock.advance(hours=3)

        with pytest.raises(InvalidStateError):
            await help_service.resolve_request(request.id, "Yes")
        assert help_service.get_request(request.id).status == RequestStatus.TIMEOUT

    @pytest.mark.asyncio
    async def test_permissive_mode_overwrites_terminal_state(
        self, seeded_store, kb_service, sink, notifier, clock
    ):
        service = HelpRequestService(
            seeded_store, kb_service, sink, notifier,
            timeout_hours=1, allow_resolve_non_pending=True, clock=clock,
        )
        request = await service.create_request(PHONE, "Do you have parking?")
        clock.advance(hours=2)
        await service.check_timeouts()

        result = await service.resolve_request(request.id, "Yes")

        assert result.request.status == RequestStatus.RESOLVED
        assert service.get_request(request.id).supervisor_answer == "Yes"

    @pytest.mark.asyncio
    async def test_live_customer_hears_the_answer(self, help_service, directory):
        session = FakeSession()
        directory.register(PHONE, session, "room-1")
        request = await help_service.create_request(PHONE, "Do you have parking?")

        result = await help_service.resolve_request(request.id, "Yes, free parking in the lot")

        assert result.delivered is True
        assert session.said == [follow_up_message("Yes, free parking in the lot")]
        assert result.request.delivery_status == DeliveryStatus.DELIVERED
        assert help_service.find_unsettled_resolutions() == []

    @pytest.mark.asyncio
    async def test_offline_customer_is_left_for_the_poller(self, help_service):
        request = await help_service.create_request(PHONE, "Do you have parking?")

        result = await help_service.resolve_request(request.id, "Yes")

        assert result.delivered is False
        assert result.request.delivery_status == DeliveryStatus.UNDELIVERED
        assert [r.id for r in help_service.find_unsettled_resolutions()] == [request.id]


class TestBookkeeping:
    @pytest.mark.asyncio
    async def test_mark_settled(self, help_service, clock):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        await help_service.resolve_request(request.id, "Yes")

        settled = help_service.mark_settled(request.id, delivered=False)

        assert settled.delivery_status == DeliveryStatus.DEFERRED
        assert settled.settled_at == clock.now
        assert help_service.find_unsettled_resolutions() == []

    @pytest.mark.asyncio
    async def test_finds_resolutions_missing_from_the_knowledge_base(self, help_service, seeded_store, clock):
        done = await help_service.create_request(PHONE, "Do you have parking?")
        await help_service.resolve_request(done.id, "Yes")

        # Simulate a crash between the request write and the knowledge write
        crashed = await help_service.create_request(PHONE, "Do you sell gift cards?")
        record = seeded_store.get(Collection.HELP_REQUESTS, crashed.id)
        record.update(status="resolved", supervisor_answer="Yes", resolved_at=clock.now.isoformat())
        seeded_store.update(Collection.HELP_REQUESTS, crashed.id, record)

        assert [r.id for r in help_service.find_unlearned_resolutions()] == [crashed.id]

    @pytest.mark.asyncio
    async def test_claimed_request_is_hidden_until_the_claim_goes_stale(self, help_service, clock):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        await help_service.resolve_request(request.id, "Yes")

        help_service.claim_delivery(help_service.get_request(request.id))
        assert help_service.find_unsettled_resolutions() == []

        clock.advance(seconds=61)
        assert [r.id for r in help_service.find_unsettled_resolutions()] == [request.id]

    @pytest.mark.asyncio
    async def test_claim_from_a_stale_read_conflicts(self, help_service):
        request = await help_service.create_request(PHONE, "Do you have parking?")
        await help_service.resolve_request(request.id, "Yes")
        stale = help_service.get_request(request.id)

        help_service.claim_delivery(help_service.get_request(request.id))

        with pytest.raises(ConcurrentUpdateError):
            help_service.claim_delivery(stale)

    @pytest.mark.asyncio
    async def test_stats(self, help_service, clock):
        resolved = await help_service.create_request(PHONE, "Do you have parking?")
        clock.advance(minutes=30)
        await help_service.resolve_request(resolved.id, "Yes")
        await help_service.create_request(PHONE, "Do you do perms?")

        stats = help_service.get_stats()

        assert stats["pending"] == 1
        assert stats["resolved"] == 1
        assert stats["timeout"] == 0
        assert stats["total"] == 2
        assert stats["delivery"]["undelivered"] == 1
        assert stats["avg_resolution_hours"] == 0.5

    def test_get_unknown_request(self, help_service):
        with pytest.raises(NotFoundError):
            help_service.get_request("req_missing")
