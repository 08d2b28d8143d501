"""Tests for the reconciliation scheduler.

Tests:
- Shipped status -> exactly one Shopify fulfillment, entry marked fulfilled
- At-most-once across consecutive and overlapping sweeps
- Per-entry failure isolation and retry on the next sweep
- Scheduler task lifecycle (early sweep, stop)
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from fakes import FakePartner, FakeShopify, hp_response

from honeybridge.errors import TransportError
from honeybridge.ledger import OrderLedger
from honeybridge.models import Tracking
from honeybridge.reconciliation import EntryOutcome, ReconciliationScheduler

FULFILLMENT_ORDER = {"id": 77, "line_items": [{"id": 5, "quantity": 2}]}
SHIPPED = hp_response(status="Shipped", trackingnumber1="9999", shipagent="FedEx")


def _scheduler(ledger, partner, shopify, **kwargs) -> ReconciliationScheduler:
    return ReconciliationScheduler(ledger, partner, shopify, **kwargs)


@pytest.fixture()
def shipped_setup(ledger: OrderLedger, partner: FakePartner):
    ledger.record(1, "R1")
    partner.status_responses["R1"] = SHIPPED
    shopify = FakeShopify({1: [FULFILLMENT_ORDER]})
    return ledger, partner, shopify


class TestSweep:
    @pytest.mark.asyncio
    async def test_shipped_entry_is_fulfilled_once(self, shipped_setup):
        ledger, partner, shopify = shipped_setup
        report = await _scheduler(ledger, partner, shopify).sweep()

        assert partner.queried == ["R1"]
        assert shopify.created == [
            (77, [{"id": 5, "quantity": 2}], Tracking(number="9999", company="FedEx"))
        ]
        assert ledger.get(1).fulfilled is True
        assert report.checked == 1
        assert report.fulfilled == 1

    @pytest.mark.asyncio
    async def test_consecutive_sweeps_do_not_refulfill(self, shipped_setup):
        ledger, partner, shopify = shipped_setup
        scheduler = _scheduler(ledger, partner, shopify)
        await scheduler.sweep()
        await scheduler.sweep()
        await scheduler.sweep()

        assert len(shopify.created) == 1
        assert partner.queried == ["R1"]

    @pytest.mark.asyncio
    async def test_overlapping_sweeps_fulfill_once(self, shipped_setup):
        """Partner keeps reporting shipped while the first Shopify call is in flight."""
        ledger, partner, shopify = shipped_setup
        shopify.gate = asyncio.Event()
        scheduler = _scheduler(ledger, partner, shopify)

        first = asyncio.create_task(scheduler.sweep())
        await asyncio.wait_for(shopify.entered.wait(), timeout=1)

        second = await scheduler.sweep()
        assert second.checked == 1
        assert second.fulfilled == 0
        assert len(shopify.created) == 1
        assert ledger.get(1).fulfilled is False

        shopify.gate.set()
        await first
        assert len(shopify.created) == 1
        assert ledger.get(1).fulfilled is True

    @pytest.mark.asyncio
    async def test_status_is_normalized(self, ledger, partner, shopify):
        ledger.record(1, "R1")
        partner.status_responses["R1"] = hp_response(status="  SHIPPED ", trackingnumber1="1")
        shopify.fulfillment_orders[1] = [FULFILLMENT_ORDER]
        await _scheduler(ledger, partner, shopify).sweep()
        assert len(shopify.created) == 1

    @pytest.mark.asyncio
    async def test_pending_status_leaves_entry(self, ledger, partner, shopify):
        ledger.record(1, "R1")
        partner.status_responses["R1"] = hp_response(status="Processing")
        report = await _scheduler(ledger, partner, shopify).sweep()
        assert shopify.created == []
        assert ledger.get(1).fulfilled is False
        assert report.pending == 1

    @pytest.mark.asyncio
    async def test_empty_ledger_makes_no_calls(self, ledger, partner, shopify):
        report = await _scheduler(ledger, partner, shopify).sweep()
        assert partner.queried == []
        assert report.checked == 0

    @pytest.mark.asyncio
    async def test_blank_reference_not_polled(self, ledger, partner, shopify):
        ledger.record(1, "")
        await _scheduler(ledger, partner, shopify).sweep()
        assert partner.queried == []

    @pytest.mark.asyncio
    async def test_missing_fulfillment_order_is_settled(self, ledger, partner, shopify, caplog):
        ledger.record(1, "R1")
        partner.status_responses["R1"] = SHIPPED
        scheduler = _scheduler(ledger, partner, shopify)

        outcome = await scheduler.reconcile_entry(ledger.get(1))

        assert outcome is EntryOutcome.NO_FULFILLMENT_ORDER
        assert shopify.created == []
        assert ledger.get(1).fulfilled is True
        assert "No fulfillment order found for order 1" in caplog.text


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_sweep(self, ledger, partner):
        ledger.record(1, "R1")
        ledger.record(2, "R2")
        partner.status_responses["R1"] = TransportError("Honey's Place orderstatus timed out")
        partner.status_responses["R2"] = SHIPPED
        shopify = FakeShopify({2: [FULFILLMENT_ORDER]})

        report = await _scheduler(ledger, partner, shopify).sweep()

        assert report.failed == 1
        assert report.fulfilled == 1
        assert ledger.get(1).fulfilled is False
        assert ledger.get(2).fulfilled is True

    @pytest.mark.asyncio
    async def test_failed_entry_retried_next_sweep(self, ledger, partner):
        ledger.record(1, "R1")
        partner.status_responses["R1"] = TransportError("down")
        shopify = FakeShopify({1: [FULFILLMENT_ORDER]})
        scheduler = _scheduler(ledger, partner, shopify)

        await scheduler.sweep()
        partner.status_responses["R1"] = SHIPPED
        await scheduler.sweep()

        assert partner.queried == ["R1", "R1"]
        assert len(shopify.created) == 1
        assert ledger.get(1).fulfilled is True

    @pytest.mark.asyncio
    async def test_unparsable_status_is_soft_failure(self, ledger, partner, shopify):
        ledger.record(1, "R1")
        partner.status_responses["R1"] = "<html><body>Service Unavailable</body></html>"
        report = await _scheduler(ledger, partner, shopify).sweep()
        assert report.failed == 1
        assert ledger.get(1).fulfilled is False

    @pytest.mark.asyncio
    async def test_shopify_failure_releases_claim(self, shipped_setup):
        ledger, partner, shopify = shipped_setup
        shopify.create_error = TransportError("Shopify POST /fulfillments.json returned HTTP 500")
        scheduler = _scheduler(ledger, partner, shopify)

        report = await scheduler.sweep()
        assert report.failed == 1
        assert ledger.get(1).fulfilled is False

        shopify.create_error = None
        await scheduler.sweep()
        assert len(shopify.created) == 1
        assert ledger.get(1).fulfilled is True

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, shipped_setup):
        ledger, partner, shopify = shipped_setup
        shopify.create_error = KeyError("id")
        report = await _scheduler(ledger, partner, shopify).sweep()
        assert report.failed == 1
        assert ledger.claim(1) is True


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_early_sweep_then_stop(self, ledger, partner, shopify):
        scheduler = _scheduler(ledger, partner, shopify, initial_delay=0)
        scheduler.sweep = AsyncMock()

        scheduler.start()
        assert scheduler.running
        for _ in range(5):
            await asyncio.sleep(0)
        await scheduler.stop()

        scheduler.sweep.assert_awaited_once()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, ledger, partner, shopify):
        scheduler = _scheduler(ledger, partner, shopify, initial_delay=3600)
        first = scheduler.start()
        assert scheduler.start() is first
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, ledger, partner, shopify):
        await _scheduler(ledger, partner, shopify).stop()

    @pytest.mark.asyncio
    async def test_loop_survives_sweep_crash(self, ledger, partner, shopify):
        scheduler = _scheduler(ledger, partner, shopify, initial_delay=0)
        scheduler.sweep = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler.start()
        for _ in range(5):
            await asyncio.sleep(0)
        assert scheduler.running
        await scheduler.stop()

    def test_interval_has_one_minute_floor(self, ledger, partner, shopify):
        scheduler = _scheduler(ledger, partner, shopify, interval_minutes=0)
        assert scheduler._interval == 60.0
