"""Order ledger: Shopify order id -> Honey's Place reference + fulfillment state.

The ledger is the single source of truth for reconciliation. It lives in
process memory: a restart loses every entry, and orders submitted before the
restart are no longer polled. A durable store can replace it by implementing
the same methods (``hydrate`` is the load hook, ``close`` the flush hook).

All methods are synchronous. On a single event loop that makes each call
atomic with respect to other tasks, which is what the claim protocol relies on:

    claim(order_id)          # check fulfilled + in-flight, then mark in-flight
    ... await shopify calls ...
    mark_fulfilled(order_id) # or release(order_id) on failure
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from honeybridge.models import LedgerEntry

logger = logging.getLogger(__name__)


class OrderLedger:
    """In-memory ledger owned by the application lifespan."""

    def __init__(self) -> None:
        self._entries: dict[int, LedgerEntry] = {}
        self._in_flight: set[int] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._entries

    def get(self, order_id: int) -> LedgerEntry | None:
        return self._entries.get(order_id)

    def entries(self) -> list[LedgerEntry]:
        return list(self._entries.values())

    def record(self, order_id: int, reference: str) -> LedgerEntry:
        """Create the entry for a successful submission.

        An existing entry is never overwritten; it is returned unchanged.
        """
        existing = self._entries.get(order_id)
        if existing is not None:
            logger.warning(
                "Ledger already tracks order %s (reference=%s); ignoring reference %s",
                order_id,
                existing.reference,
                reference,
            )
            return existing
        entry = LedgerEntry(order_id=order_id, reference=reference)
        self._entries[order_id] = entry
        return entry

    def pending(self) -> list[LedgerEntry]:
        """Unfulfilled entries that have a reference to poll."""
        return [e for e in self._entries.values() if not e.fulfilled and e.reference]

    def claim(self, order_id: int) -> bool:
        """Reserve an entry for a fulfillment attempt.

        Returns False when the entry is unknown, already fulfilled, or already
        claimed by another in-flight attempt.
        """
        entry = self._entries.get(order_id)
        if entry is None or entry.fulfilled or order_id in self._in_flight:
            return False
        self._in_flight.add(order_id)
        return True

    def release(self, order_id: int) -> None:
        """Drop a claim without fulfilling; the entry is retried next sweep."""
        self._in_flight.discard(order_id)

    def mark_fulfilled(self, order_id: int) -> None:
        entry = self._entries[order_id]
        entry.fulfilled = True
        self._in_flight.discard(order_id)

    def hydrate(self, entries: Iterable[LedgerEntry]) -> int:
        """Load entries from an external source at startup. Returns count loaded."""
        count = 0
        for entry in entries:
            if entry.order_id in self._entries:
                continue
            self._entries[entry.order_id] = LedgerEntry(
                order_id=entry.order_id,
                reference=entry.reference,
                fulfilled=entry.fulfilled,
            )
            count += 1
        return count

    def close(self) -> None:
        unfulfilled = len(self.pending())
        if unfulfilled:
            logger.warning(
                "Ledger closing with %d unfulfilled order(s); they will not be polled after restart",
                unfulfilled,
            )
        self._in_flight.clear()
