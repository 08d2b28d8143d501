"""Reconciliation scheduler: polls Honey's Place and fulfills shipped orders.

One asyncio task runs a sweep shortly after startup and then on a fixed
period. A sweep walks the unfulfilled ledger entries one at a time:

    query status -> shipped? -> claim entry -> list fulfillment orders
                 -> create fulfillment -> mark fulfilled

Failures are isolated per entry and the entry stays unfulfilled, so it is
retried on the next sweep. The claim is taken synchronously right before the
first Shopify call, which keeps fulfillment at-most-once even if two sweeps
overlap.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from dataclasses import dataclass

from honeybridge.errors import BridgeError, ProtocolError
from honeybridge.ledger import OrderLedger
from honeybridge.models import LedgerEntry, Tracking
from honeybridge.partner.client import PartnerClient
from honeybridge.partner.codec import DecodeFailure, decode_envelope
from honeybridge.shopify.client import ShopifyClient

logger = logging.getLogger(__name__)


class EntryOutcome(str, enum.Enum):
    FULFILLED = "fulfilled"
    PENDING = "pending"
    NO_FULFILLMENT_ORDER = "no_fulfillment_order"
    ALREADY_CLAIMED = "already_claimed"


@dataclass
class SweepReport:
    checked: int = 0
    fulfilled: int = 0
    pending: int = 0
    failed: int = 0


class ReconciliationScheduler:
    """Timer-driven sweep of the order ledger."""

    def __init__(
        self,
        ledger: OrderLedger,
        partner: PartnerClient,
        shopify: ShopifyClient,
        *,
        interval_minutes: int = 15,
        initial_delay: float = 30.0,
    ):
        self._ledger = ledger
        self._partner = partner
        self._shopify = shopify
        self._interval = max(1, interval_minutes) * 60.0
        self._initial_delay = initial_delay
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Schedule the polling loop on the running event loop."""
        if self.running:
            return self._task
        self._task = asyncio.create_task(self._run(), name="honeybridge-reconciliation")
        logger.info(
            "Reconciliation scheduled: first sweep in %.0fs, then every %.0f min",
            self._initial_delay,
            self._interval / 60,
        )
        return self._task

    async def stop(self) -> None:
        """Cancel the polling loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Reconciliation stopped")

    async def _run(self) -> None:
        await asyncio.sleep(self._initial_delay)
        while True:
            try:
                await self.sweep()
            except Exception:
                logger.exception("Reconciliation sweep failed")
            await asyncio.sleep(self._interval)

    async def sweep(self) -> SweepReport:
        """Run one reconciliation pass over all unfulfilled entries."""
        report = SweepReport()
        entries = self._ledger.pending()
        if not entries:
            return report

        for entry in entries:
            report.checked += 1
            try:
                outcome = await self.reconcile_entry(entry)
            except BridgeError as e:
                report.failed += 1
                logger.warning("Polling error for order %s: %s", entry.order_id, e)
                continue
            except Exception:
                report.failed += 1
                logger.exception("Unexpected polling error for order %s", entry.order_id)
                continue

            if outcome is EntryOutcome.PENDING:
                report.pending += 1
            elif outcome in (EntryOutcome.FULFILLED, EntryOutcome.NO_FULFILLMENT_ORDER):
                report.fulfilled += 1

        logger.info(
            "Reconciliation sweep: checked=%d fulfilled=%d pending=%d failed=%d",
            report.checked,
            report.fulfilled,
            report.pending,
            report.failed,
        )
        return report

    async def reconcile_entry(self, entry: LedgerEntry) -> EntryOutcome:
        """Advance a single ledger entry. Raises BridgeError on failure."""
        raw = await self._partner.query_status(entry.reference)
        decoded = decode_envelope(raw)
        if isinstance(decoded, DecodeFailure):
            raise ProtocolError(f"status response for {entry.reference}: {decoded.reason}")

        status = decoded.shipment_status()
        if not status.is_shipped:
            logger.debug(
                "Order %s still %s", entry.order_id, status.status.strip().lower() or "pending"
            )
            return EntryOutcome.PENDING

        # Re-checks the fulfilled flag after the status query suspended us.
        if not self._ledger.claim(entry.order_id):
            return EntryOutcome.ALREADY_CLAIMED

        try:
            fulfillment_orders = await self._shopify.list_fulfillment_orders(entry.order_id)
            if not fulfillment_orders:
                logger.warning(
                    "No fulfillment order found for order %s; marking it settled",
                    entry.order_id,
                )
                self._ledger.mark_fulfilled(entry.order_id)
                return EntryOutcome.NO_FULFILLMENT_ORDER

            first = fulfillment_orders[0]
            tracking = Tracking(number=status.tracking_number, company=status.carrier)
            await self._shopify.create_fulfillment(
                first["id"], first.get("line_items") or [], tracking
            )
        except BaseException:
            self._ledger.release(entry.order_id)
            raise

        self._ledger.mark_fulfilled(entry.order_id)
        logger.info(
            "Order %s fulfilled. Tracking: %s (%s)",
            entry.order_id,
            tracking.number,
            tracking.company,
        )
        return EntryOutcome.FULFILLED
