from datetime import datetime
from typing import Callable, List, Optional

from src.core.exceptions import NotFoundError
from src.core.logging import get_plain_logger
from src.database.store import Collection, RecordStore
from src.models.records import PendingFollowUp, new_record_id, utcnow
from src.services.delivery import DeliveryNotifier

logger = get_plain_logger(__name__)


class FollowUpService:
    """
    Answers waiting for a customer who was not reachable

    Entries only know the customer's phone and the message text, so they
    can be replayed without touching help request state.
    """

    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def _all(self) -> List[PendingFollowUp]:
        return [PendingFollowUp.model_validate(r) for r in self.store.list(Collection.FOLLOW_UPS)]

    async def enqueue(self, customer_phone: str, message: str) -> PendingFollowUp:
        follow_up = PendingFollowUp(
            id=new_record_id("followup"),
            customer_phone=customer_phone,
            message=message,
            created_at=self.clock(),
        )
        self.store.insert(
            Collection.FOLLOW_UPS, follow_up.id, follow_up.model_dump(mode="json")
        )
        logger.info(f"📥 Queued follow-up {follow_up.id} for {customer_phone}")
        return follow_up

    def get_pending(self, customer_phone: Optional[str] = None) -> List[PendingFollowUp]:
        """Undelivered follow-ups, oldest first"""
        return [
            f for f in self._all()
            if f.delivered_at is None
            and (customer_phone is None or f.customer_phone == customer_phone)
        ]

    def mark_delivered(self, follow_up_id: str) -> PendingFollowUp:
        record = self.store.get(Collection.FOLLOW_UPS, follow_up_id)
        if record is None:
            raise NotFoundError("Follow-up", follow_up_id)

        follow_up = PendingFollowUp.model_validate(record)
        follow_up.delivered_at = self.clock()
        follow_up.revision = self.store.update(
            Collection.FOLLOW_UPS,
            follow_up.id,
            follow_up.model_dump(mode="json"),
            expected_revision=follow_up.revision,
        )
        return follow_up

    async def deliver_pending(self, customer_phone: str, notifier: DeliveryNotifier) -> int:
        """
        Replay queued answers to a customer who just called back

        Stops at the first failed push; the rest stay queued.
        """
        delivered = 0
        for follow_up in self.get_pending(customer_phone):
            if not await notifier.notify(customer_phone, follow_up.message):
                break
            self.mark_delivered(follow_up.id)
            delivered += 1

        if delivered:
            logger.info(f"📨 Delivered {delivered} queued follow-up(s) to {customer_phone}")
        return delivered
