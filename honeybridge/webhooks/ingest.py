"""Ingest orchestrator: the orders/paid submission path.

    verify signature -> parse order -> filter SKUs -> encode -> submit -> record

Only a bad signature (AuthenticationError) or an unparseable signed body
(MalformedPayloadError) escape to the HTTP layer. Every partner-side failure
is logged and the delivery is still acknowledged, otherwise Shopify would keep
redelivering and we would keep resubmitting. Such an order stays untracked
until someone resubmits it by hand.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from pydantic import ValidationError

from honeybridge.errors import (
    AuthenticationError,
    MalformedPayloadError,
    PartnerRejection,
    ProtocolError,
    TransportError,
    ValidationSkip,
)
from honeybridge.ledger import OrderLedger
from honeybridge.models import Credentials, Order
from honeybridge.partner.client import PartnerClient
from honeybridge.partner.codec import (
    ACCEPTED_CODE,
    DecodeFailure,
    decode_envelope,
    encode_submission,
    reference_for,
)
from honeybridge.webhooks.verification import verify_signature

logger = logging.getLogger(__name__)


class IngestOutcome(str, enum.Enum):
    SUBMITTED = "submitted"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass(frozen=True)
class IngestResult:
    order_id: int
    outcome: IngestOutcome


class IngestOrchestrator:
    """Turns a verified orders/paid delivery into a tracked partner order."""

    def __init__(
        self,
        secret: str,
        credentials: Credentials,
        partner: PartnerClient,
        ledger: OrderLedger,
        *,
        default_ship_code: str | None = None,
    ):
        self._secret = secret
        self._credentials = credentials
        self._partner = partner
        self._ledger = ledger
        self._default_ship_code = default_ship_code
        self._in_flight: set[int] = set()

    async def handle(self, body: bytes, signature: str | None) -> IngestResult:
        if not verify_signature(self._secret, body, signature):
            raise AuthenticationError("Invalid Shopify HMAC")

        order = parse_order(body)

        try:
            ensure_eligible(order)
        except ValidationSkip:
            logger.info("Skipping order with no SKUs: %s", order.id)
            return IngestResult(order.id, IngestOutcome.SKIPPED)

        # Check-and-reserve happens before the first await.
        if order.id in self._ledger or order.id in self._in_flight:
            logger.info("Order %s already submitted; ignoring redelivery", order.id)
            return IngestResult(order.id, IngestOutcome.DUPLICATE)
        self._in_flight.add(order.id)

        try:
            xml = encode_submission(order, self._credentials, self._default_ship_code)
            try:
                reference = await self._submit(xml)
            except (TransportError, ProtocolError, PartnerRejection) as e:
                logger.warning("HP submission failed for order %s: %s", order.id, e)
                if isinstance(e, PartnerRejection) and e.raw:
                    logger.debug("HP response for order %s: %s", order.id, e.raw)
                return IngestResult(order.id, IngestOutcome.FAILED)

            entry = self._ledger.record(order.id, reference or reference_for(order))
        finally:
            self._in_flight.discard(order.id)

        logger.info("Submitted order %s to HP with reference %s", order.id, entry.reference)
        return IngestResult(order.id, IngestOutcome.SUBMITTED)

    async def _submit(self, xml: str) -> str | None:
        raw = await self._partner.submit(xml)
        decoded = decode_envelope(raw)
        if isinstance(decoded, DecodeFailure):
            raise ProtocolError(decoded.reason)
        if decoded.code != ACCEPTED_CODE:
            raise PartnerRejection(decoded.code, raw=raw)
        return decoded.reference


def parse_order(body: bytes) -> Order:
    try:
        return Order.model_validate_json(body)
    except ValidationError as e:
        raise MalformedPayloadError(f"Webhook body is not a valid order: {e.error_count()} error(s)") from e


def ensure_eligible(order: Order) -> None:
    """Raise ValidationSkip when Honey's Place would reject the order outright."""
    if not order.is_eligible:
        raise ValidationSkip(f"order {order.id} has no line items with a SKU")
