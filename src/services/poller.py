"""Background loop that hands resolved answers to customers."""

import asyncio
from typing import Optional

from src.core.exceptions import ConcurrentUpdateError
from src.core.logging import get_plain_logger
from src.models.records import EscalationRequest
from src.services.delivery import DeliveryNotifier
from src.services.follow_up import FollowUpService
from src.services.help_request import HelpRequestService, follow_up_message
from src.services.notification import NotificationSink

logger = get_plain_logger(__name__)


class ResolutionPoller:
    """
    Every ``interval`` seconds: apply timeouts, then deliver each resolved
    answer that has not been settled yet.

    Each request is claimed before anything is pushed, so a resolve that is
    still speaking to the caller is left alone. Whatever the delivery
    outcome, the request is settled afterwards so the next tick does not
    send it again. Answers that could not be spoken live
    are queued as follow-ups for the customer's next call.
    """

    def __init__(
        self,
        help_requests: HelpRequestService,
        notifier: DeliveryNotifier,
        follow_ups: FollowUpService,
        sink: NotificationSink,
        interval: float = 5.0,
    ):
        self.help_requests = help_requests
        self.notifier = notifier
        self.follow_ups = follow_ups
        self.sink = sink
        self.interval = interval
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            logger.info("[poller] Already polling for supervisor responses")
            return
        logger.info(f"[poller] Starting supervisor response polling every {self.interval}s")
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[poller] Stopped supervisor response polling")

    async def _run(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)

    async def run_once(self) -> Optional[int]:
        """
        One polling tick

        Returns the number of requests settled, or None when the tick was
        skipped because the previous one is still running.
        """
        if self._lock.locked():
            logger.info("[poller] Previous tick still running, skipping")
            return None

        async with self._lock:
            try:
                return await self._tick()
            except Exception:
                logger.exception("[poller] Error checking for supervisor responses")
                return 0

    async def _tick(self) -> int:
        await self.help_requests.check_timeouts()

        settled = 0
        for request in self.help_requests.find_unsettled_resolutions():
            try:
                if await self._settle(request):
                    settled += 1
            except Exception:
                logger.exception(f"[poller] Failed to settle request {request.id}")
        return settled

    async def _settle(self, request: EscalationRequest) -> bool:
        try:
            request = self.help_requests.claim_delivery(request)
        except ConcurrentUpdateError:
            logger.info(f"[poller] Request {request.id} is being delivered elsewhere, skipping")
            return False

        logger.info(
            f"🔔 Supervisor answered {request.id}: '{request.question}' → "
            f"'{request.supervisor_answer}' (customer {request.customer_phone})"
        )
        message = follow_up_message(request.supervisor_answer)
        delivered = await self.notifier.notify(request.customer_phone, message)

        if not delivered:
            await self.follow_ups.enqueue(request.customer_phone, message)
            await self.sink.notify_customer(request.customer_phone, message)

        self.help_requests.mark_settled(request.id, delivered=delivered)
        logger.info(
            f"[poller] Request {request.id} settled "
            f"({'delivered live' if delivered else 'queued for next call'})"
        )
        return True
