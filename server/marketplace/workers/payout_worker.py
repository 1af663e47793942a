"""Background worker that releases payouts for finished bookings."""

import logging
from datetime import datetime
from typing import Callable, Optional

from ..core.config import settings
from ..core.database import async_session_factory, utcnow
from ..core.store import TransactionalStore
from ..gateways.base import PaymentGateway
from ..services.payout_service import PayoutRunResult, PayoutScheduler, PayoutService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class PayoutWorker(BaseWorker):
    """
    Periodic payout scheduler.

    Each iteration pays out every charged booking that ended more than
    ``payout_buffer_minutes`` ago.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        store: Optional[TransactionalStore] = None,
        interval_seconds: int = settings.payout_interval_seconds,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(name="payout", interval_seconds=interval_seconds)
        store = store or TransactionalStore(async_session_factory)
        self.clock = clock
        self.scheduler = PayoutScheduler(
            store,
            PayoutService(store, gateway, stale_claim_minutes=settings.payout_stale_claim_minutes),
            buffer_minutes=settings.payout_buffer_minutes,
            batch_size=settings.payout_batch_size,
        )
        self.last_result: Optional[PayoutRunResult] = None

    async def process(self) -> None:
        now = self.clock()
        self.last_result = await self.scheduler.run(now)
        if self.last_result.failed:
            logger.warning(
                "Some payouts failed and will be retried",
                extra={"worker": self.name, "failed": self.last_result.failed, "timestamp": now.isoformat()},
            )
