"""Honey's Place XML envelope codec.

Every request and response is an ``HPEnvelope`` document:

    <HPEnvelope>
      <account>..</account><password>..</password>
      <order>..</order>            (submission)
      <orderstatus>..</orderstatus> (status query)
    </HPEnvelope>

Responses carry ``code``/``reference`` (submission) or ``status``,
``trackingnumber1``, ``shipagent`` (status). The partner sometimes answers
with an HTML error page, so decoding returns a DecodeFailure value instead of
raising.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from xml.etree import ElementTree as ET

from honeybridge.models import Credentials, Order, ShipmentStatus

logger = logging.getLogger(__name__)

ROOT_TAG = "HPEnvelope"
ACCEPTED_CODE = "100"
FALLBACK_SHIP_CODE = "RTSHOP"
MAX_INSTRUCTIONS_LENGTH = 250

# Shopify shipping line title (lower-cased, trimmed) -> Honey's Place ship code
SHIP_CODES: dict[str, str] = {
    "usps priority": "P002",
    "priority mail": "P002",
    "fedex ground": "F006",
    "ground": "F006",
    "pickup": "PICKUP",
    "local pickup": "PICKUP",
}

# Test override in the order note, e.g. "HPREF: TEST1002"
_REFERENCE_OVERRIDE = re.compile(r"\bHPREF:\s*([A-Z0-9#-]+)", re.IGNORECASE)

_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

# Characters XML 1.0 cannot carry; Shopify notes occasionally contain them
_INVALID_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff\ud800-\udfff]")


@dataclass(frozen=True)
class Envelope:
    """Well-formed HPEnvelope flattened to its leaf fields."""

    fields: dict[str, str] = field(default_factory=dict)

    def get(self, name: str, default: str = "") -> str:
        return self.fields.get(name, default)

    @property
    def code(self) -> str | None:
        return self.fields.get("code")

    @property
    def reference(self) -> str | None:
        return self.fields.get("reference") or None

    def shipment_status(self) -> ShipmentStatus:
        return ShipmentStatus(
            status=self.get("status"),
            tracking_number=self.get("trackingnumber1"),
            carrier=self.get("shipagent"),
        )


@dataclass(frozen=True)
class DecodeFailure:
    """Response body that is not a parseable HPEnvelope."""

    reason: str
    raw: str = ""


# ── Derivations ───────────────────────────────────────────────────────────


def ship_code_for(title: str | None, default: str | None = None) -> str:
    """Map a shipping line title to a ship code. Never returns an empty code."""
    key = (title or "").strip().lower()
    return SHIP_CODES.get(key) or default or FALLBACK_SHIP_CODE


def reference_for(order: Order) -> str:
    """Partner reference: note override, else display name, else order id."""
    match = _REFERENCE_OVERRIDE.search(order.note or "")
    if match:
        return match.group(1)
    base = order.name or str(order.id)
    return base.removeprefix("#").upper()


def submission_date(order: Order) -> str:
    created = order.created_at or datetime.now(timezone.utc)
    if created.tzinfo is not None:
        created = created.astimezone(timezone.utc)
    return created.strftime("%Y-%m-%d")


# ── Encoding ──────────────────────────────────────────────────────────────


def _leaf(parent: ET.Element, tag: str, text: object) -> ET.Element:
    child = ET.SubElement(parent, tag)
    child.text = "" if text is None else _INVALID_XML_CHARS.sub("", str(text))
    return child


def _envelope(credentials: Credentials) -> ET.Element:
    root = ET.Element(ROOT_TAG)
    _leaf(root, "account", credentials.account)
    _leaf(root, "password", credentials.password)
    return root


def _serialize(root: ET.Element) -> str:
    return _DECLARATION + ET.tostring(root, encoding="unicode", short_empty_elements=True)


def encode_submission(
    order: Order,
    credentials: Credentials,
    default_ship_code: str | None = None,
) -> str:
    """Build the order submission envelope for ``order``."""
    ship_to = order.ship_to
    root = _envelope(credentials)
    node = ET.SubElement(root, "order")

    _leaf(node, "reference", reference_for(order))
    _leaf(node, "shipby", ship_code_for(order.shipping_title, default_ship_code))
    _leaf(node, "date", submission_date(order))

    items = ET.SubElement(node, "items")
    for li in order.stocked_items:
        item = ET.SubElement(items, "item")
        _leaf(item, "sku", li.sku)
        _leaf(item, "qty", li.quantity)

    _leaf(node, "last", ship_to.last_name or "")
    _leaf(node, "first", ship_to.first_name or "")
    _leaf(node, "address1", ship_to.address1 or "")
    _leaf(node, "address2", ship_to.address2 or "")
    _leaf(node, "city", ship_to.city or "")
    _leaf(node, "state", ship_to.province_code or ship_to.province or "")
    _leaf(node, "zip", ship_to.zip or "")
    _leaf(node, "country", ship_to.country_code or ship_to.country or "US")
    _leaf(node, "phone", ship_to.phone or order.phone or "")
    _leaf(node, "emailaddress", order.email or "")
    _leaf(node, "instructions", (order.note or "")[:MAX_INSTRUCTIONS_LENGTH])

    return _serialize(root)


def encode_status_query(reference: str, credentials: Credentials) -> str:
    """Build the order status query envelope for ``reference``."""
    root = _envelope(credentials)
    _leaf(root, "orderstatus", reference)
    return _serialize(root)


# ── Decoding ──────────────────────────────────────────────────────────────


def decode_envelope(xml: str | bytes | None) -> Envelope | DecodeFailure:
    """Parse a partner response into a flat field map.

    Nested elements are flattened by tag name; the first occurrence of a tag
    wins. Anything that is not an HPEnvelope document is a DecodeFailure.
    """
    if not xml:
        return DecodeFailure(reason="empty response")
    raw = xml.decode("utf-8", errors="replace") if isinstance(xml, bytes) else xml
    try:
        root = ET.fromstring(xml)
    except (ET.ParseError, ValueError, LookupError) as e:
        return DecodeFailure(reason=f"unparsable XML: {e}", raw=raw)

    if root.tag != ROOT_TAG:
        return DecodeFailure(reason=f"unexpected root element <{root.tag}>", raw=raw)

    fields: dict[str, str] = {}
    for element in root.iter():
        if element is root or len(element):
            continue
        fields.setdefault(element.tag, (element.text or "").strip())
    return Envelope(fields=fields)
