from dataclasses import dataclass
from typing import Callable, List, Optional
from datetime import datetime, timedelta
from src.core.exceptions import (
    ConcurrentUpdateError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from src.core.logging import get_plain_logger
from src.database.store import Collection, RecordStore
from src.models.records import (
    DeliveryStatus,
    EscalationRequest,
    KnowledgeEntry,
    KnowledgeSource,
    RequestStatus,
    new_record_id,
    utcnow,
)
from src.services.delivery import DeliveryNotifier
from src.services.knowledge_base import KnowledgeBaseService
from src.services.notification import NotificationSink

logger = get_plain_logger(__name__)

LEARNED_CATEGORY = "supervisor-learned"


def follow_up_message(answer: str) -> str:
    return f"Hi! I got an answer to your question: {answer}"


@dataclass
class ResolutionResult:
    request: EscalationRequest
    knowledge_entry: KnowledgeEntry
    delivered: bool


class HelpRequestService:
    """
    Manages help requests from AI to human supervisor

    pending -> resolved when a supervisor answers before the deadline,
    pending -> timeout once the deadline passes. Both are terminal.
    Timeouts are applied lazily whenever pending requests are read.
    """

    def __init__(
        self,
        store: RecordStore,
        knowledge_base: KnowledgeBaseService,
        sink: NotificationSink,
        notifier: DeliveryNotifier,
        timeout_hours: float = 1.0,
        allow_resolve_non_pending: bool = False,
        learned_category: Optional[str] = LEARNED_CATEGORY,
        claim_timeout_seconds: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.knowledge_base = knowledge_base
        self.sink = sink
        self.notifier = notifier
        self.timeout = timedelta(hours=timeout_hours)
        self.allow_resolve_non_pending = allow_resolve_non_pending
        self.learned_category = learned_category
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds)
        self.clock = clock

    def _all(self) -> List[EscalationRequest]:
        return [
            EscalationRequest.model_validate(r)
            for r in self.store.list(Collection.HELP_REQUESTS)
        ]

    def _save(self, request: EscalationRequest) -> EscalationRequest:
        request.revision = self.store.update(
            Collection.HELP_REQUESTS,
            request.id,
            request.model_dump(mode="json"),
            expected_revision=request.revision,
        )
        return request

    async def create_request(
        self,
        customer_phone: str,
        question: str,
        customer_name: Optional[str] = None,
        context: Optional[str] = None,
    ) -> EscalationRequest:
        """
        Create new help request and alert the supervisor

        Returns:
            The stored request; its id is the caller's reference number
        """
        if not customer_phone or not customer_phone.strip():
            raise ValidationError("Customer phone is required")
        if not question or not question.strip():
            raise ValidationError("Question is required")

        now = self.clock()
        request = EscalationRequest(
            id=new_record_id("req"),
            customer_phone=customer_phone,
            customer_name=customer_name,
            question=question,
            context=context,
            created_at=now,
            timeout_at=now + self.timeout,
        )
        self.store.insert(Collection.HELP_REQUESTS, request.id, request.model_dump(mode="json"))
        logger.info(f"📝 Created help request {request.id}: {question[:50]}...")

        try:
            await self.sink.notify_supervisor(request)
        except Exception:
            logger.exception(f"Supervisor notification failed for {request.id}")

        return request

    def get_request(self, request_id: str) -> EscalationRequest:
        record = self.store.get(Collection.HELP_REQUESTS, request_id)
        if record is None:
            raise NotFoundError("Help request", request_id)
        return EscalationRequest.model_validate(record)

    def get_all_requests(self, status: Optional[RequestStatus] = None) -> List[EscalationRequest]:
        """Get all help requests with optional status filter"""
        requests = self._all()
        if status is not None:
            requests = [r for r in requests if r.status == status]
        return requests

    async def check_timeouts(self) -> int:
        """
        Mark every pending request past its deadline as timed out

        Safe to call as often as needed; timed out requests never go back
        to pending.
        """
        now = self.clock()
        timed_out = 0
        for request in self._all():
            if not request.is_expired(now):
                continue
            request.status = RequestStatus.TIMEOUT
            try:
                self._save(request)
                timed_out += 1
            except ConcurrentUpdateError:
                # Someone else touched it; the next read sweeps it again
                logger.info(f"Skipped timeout of {request.id}: changed concurrently")

        if timed_out > 0:
            logger.warning(f"⏰ Marked {timed_out} requests as timed out")
        return timed_out

    async def get_pending_requests(self) -> List[EscalationRequest]:
        """Pending requests in creation order, after applying timeouts"""
        await self.check_timeouts()
        return self.get_all_requests(RequestStatus.PENDING)

    async def resolve_request(
        self,
        request_id: str,
        answer: str,
        category: Optional[str] = None,
    ) -> ResolutionResult:
        """
        Supervisor provides answer to help request

        This triggers:
        1. Update request status to resolved
        2. Add the answer to the knowledge base as a learned entry
        3. Try to tell the customer while they are still on the call

        The two writes are independent; a crash between them leaves a
        resolved request without a learned entry (see find_unlearned_resolutions).
        """
        if not answer or not answer.strip():
            raise ValidationError("Answer is required")

        request = self.get_request(request_id)
        now = self.clock()

        if request.is_expired(now):
            request.status = RequestStatus.TIMEOUT
            self._save(request)

        if request.status != RequestStatus.PENDING:
            if not self.allow_resolve_non_pending:
                raise InvalidStateError(request.id, request.status.value)
            logger.warning(f"Overwriting {request.status.value} request {request.id} with an answer")

        logger.info(f"📱 Resolving request {request.id}: {request.question[:50]}...")
        request.status = RequestStatus.RESOLVED
        request.resolved_at = now
        request.supervisor_answer = answer
        # Claimed in the same write so a concurrent poller tick leaves it alone
        request.delivery_status = DeliveryStatus.DELIVERING
        request.delivery_claimed_at = now
        request.settled_at = None
        self._save(request)
        logger.info(f"✅ Resolved request {request.id}")

        entry = await self.knowledge_base.add_answer(
            request.question,
            answer,
            source=KnowledgeSource.LEARNED,
            category=category or self.learned_category or None,
        )

        delivered = await self.notifier.notify(request.customer_phone, follow_up_message(answer))
        if delivered:
            request = self.mark_settled(request.id, delivered=True)
        else:
            request = self.release_delivery(request.id)

        return ResolutionResult(request=request, knowledge_entry=entry, delivered=delivered)

    def _is_unsettled(self, request: EscalationRequest, now: datetime) -> bool:
        if request.resolved_at is None:
            return False
        if request.delivery_status == DeliveryStatus.UNDELIVERED:
            return True
        # A claim that outlived its window belongs to a delivery that died
        return (
            request.delivery_status == DeliveryStatus.DELIVERING
            and request.delivery_claimed_at is not None
            and request.delivery_claimed_at + self.claim_timeout < now
        )

    def find_unsettled_resolutions(self) -> List[EscalationRequest]:
        """Resolved requests whose answer has not been handed off yet"""
        now = self.clock()
        return [r for r in self._all() if self._is_unsettled(r, now)]

    def claim_delivery(self, request: EscalationRequest) -> EscalationRequest:
        """
        Take ownership of delivering a resolved answer

        Raises ConcurrentUpdateError when another writer claimed or settled
        the request since it was read.
        """
        request.delivery_status = DeliveryStatus.DELIVERING
        request.delivery_claimed_at = self.clock()
        return self._save(request)

    def release_delivery(self, request_id: str) -> EscalationRequest:
        """Hand a claimed request back to the poller"""
        request = self.get_request(request_id)
        request.delivery_status = DeliveryStatus.UNDELIVERED
        request.delivery_claimed_at = None
        return self._save(request)

    def mark_settled(self, request_id: str, delivered: bool) -> EscalationRequest:
        """Record the delivery outcome so the answer is not sent again"""
        request = self.get_request(request_id)
        request.delivery_status = DeliveryStatus.DELIVERED if delivered else DeliveryStatus.DEFERRED
        request.settled_at = self.clock()
        return self._save(request)

    def find_unlearned_resolutions(self) -> List[EscalationRequest]:
        """Resolved requests with no matching learned knowledge entry"""
        return [
            r for r in self._all()
            if r.status == RequestStatus.RESOLVED
            and not self.knowledge_base.has_learned_entry(r.question)
        ]

    def get_stats(self) -> dict:
        """Get statistics for dashboard"""
        requests = self._all()
        by_status = {s.value: 0 for s in RequestStatus}
        by_delivery = {s.value: 0 for s in DeliveryStatus}
        resolution_hours = []

        for r in requests:
            by_status[r.status.value] += 1
            if r.resolved_at is not None:
                by_delivery[r.delivery_status.value] += 1
                resolution_hours.append((r.resolved_at - r.created_at).total_seconds() / 3600)

        return {
            **by_status,
            "total": len(requests),
            "delivery": by_delivery,
            "avg_resolution_hours": (
                round(sum(resolution_hours) / len(resolution_hours), 2) if resolution_hours else 0
            ),
        }
