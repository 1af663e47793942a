"""Background worker that settles refunds left outstanding on canceled bookings."""

import logging
from typing import Optional

from ..core.config import settings
from ..core.database import async_session_factory
from ..core.store import TransactionalStore
from ..gateways.base import PaymentGateway
from ..services.cancellation_service import CancellationService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class RefundRetryWorker(BaseWorker):
    """
    Retries refunds the processor refused earlier: a failed refund after
    a cancellation, or a payment that arrived after its booking was
    canceled. The per-booking refund key keeps retries from paying twice.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        store: Optional[TransactionalStore] = None,
        interval_seconds: int = settings.refund_retry_interval_seconds,
    ):
        super().__init__(name="refund_retry", interval_seconds=interval_seconds)
        self.service = CancellationService(store or TransactionalStore(async_session_factory), gateway)
        self.last_settled = 0

    async def process(self) -> None:
        self.last_settled = await self.service.settle_outstanding_refunds(batch_size=settings.payout_batch_size)
