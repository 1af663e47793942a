"""Background workers."""

from .base import BaseWorker
from .manager import WorkerManager
from .payout_worker import PayoutWorker
from .refund_worker import RefundRetryWorker

__all__ = ["BaseWorker", "PayoutWorker", "RefundRetryWorker", "WorkerManager"]
