"""Unit tests for the background worker loop and the payout and refund workers."""

import asyncio
from datetime import timedelta

import pytest

from marketplace.core.exceptions import InternalServerError
from marketplace.models import Booking
from marketplace.services.cancellation_service import CancellationService
from marketplace.workers.base import BaseWorker
from marketplace.workers.manager import WorkerManager
from marketplace.workers.payout_worker import PayoutWorker
from marketplace.workers.refund_worker import RefundRetryWorker

from ..conftest import NOW
from ..factories import create_booking, create_slot, reload


class CountingWorker(BaseWorker):
    def __init__(self, fail: bool = False):
        super().__init__(name="counting", interval_seconds=0.01)
        self.fail = fail
        self.ran = asyncio.Event()

    async def process(self) -> None:
        self.ran.set()
        if self.fail:
            raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_run_once_records_failure():
    """Test that a failing iteration is counted instead of raised."""
    worker = CountingWorker(fail=True)

    assert await worker.run_once() is False

    assert worker.status() == {"running": False, "iterations": 1, "failures": 1, "last_error": "boom"}


@pytest.mark.asyncio
async def test_start_and_stop():
    """Test that a started worker iterates and stops promptly."""
    worker = CountingWorker()
    manager = WorkerManager([worker])

    await manager.start_all()
    await asyncio.wait_for(worker.ran.wait(), timeout=1)
    assert manager.get_worker_status()["counting"]["running"] is True

    await manager.stop_all()
    assert worker.is_running is False
    assert worker.iterations >= 1


@pytest.mark.asyncio
async def test_payout_worker_pays_finished_bookings(store, gateway, clock, world):
    """Test that one payout worker iteration releases a finished booking."""
    slot = await create_slot(store, world.listing, NOW - timedelta(hours=10))
    booking = await create_booking(store, slot, world.buyer.id)
    worker = PayoutWorker(gateway, store=store, clock=clock)

    assert await worker.run_once() is True

    assert worker.last_result.paid == 1
    assert len(gateway.calls_of("create_transfer")) == 1
    stored = await reload(store, Booking, booking.id)
    assert stored.payout_status == "paid"


@pytest.mark.asyncio
async def test_refund_worker_settles_payment_on_canceled_booking(store, gateway, world):
    """Test that a refund refused at cancel time is issued by the next worker iteration."""
    booking = await create_booking(store, world.slot, world.buyer.id)
    gateway.fail_refund = True
    with pytest.raises(InternalServerError):
        await CancellationService(store, gateway).cancel_booking(world.buyer_user, booking.id, NOW)

    gateway.fail_refund = False
    worker = RefundRetryWorker(gateway, store=store)

    assert await worker.run_once() is True

    assert worker.last_settled == 1
    stored = await reload(store, Booking, booking.id)
    assert stored.refunded is True
    assert stored.refund_id is not None
