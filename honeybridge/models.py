"""Domain models: inbound Shopify order, ledger entries, shipment status.

The Shopify order payload is much larger than what the bridge reads; unknown
fields are ignored so new Shopify API versions do not break ingestion.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Address(BaseModel):
    model_config = ConfigDict(extra="ignore")

    first_name: str | None = None
    last_name: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = None
    province_code: str | None = None
    zip: str | None = None
    country: str | None = None
    country_code: str | None = None
    phone: str | None = None


class LineItem(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: int | None = None
    sku: str | None = None
    quantity: int = 1
    title: str | None = None


class ShippingLine(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    code: str | None = None


class Order(BaseModel):
    """Shopify order as delivered by the orders/paid webhook."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str | None = None
    line_items: list[LineItem] = Field(default_factory=list)
    shipping_address: Address | None = None
    billing_address: Address | None = None
    shipping_lines: list[ShippingLine] = Field(default_factory=list)
    note: str | None = None
    email: str | None = None
    phone: str | None = None
    created_at: datetime | None = None

    @property
    def stocked_items(self) -> list[LineItem]:
        """Line items carrying a SKU; the only ones Honey's Place accepts."""
        return [li for li in self.line_items if li.sku]

    @property
    def is_eligible(self) -> bool:
        return bool(self.stocked_items)

    @property
    def ship_to(self) -> Address:
        """Shipping address, falling back to billing, then to an empty address."""
        return self.shipping_address or self.billing_address or Address()

    @property
    def shipping_title(self) -> str:
        if not self.shipping_lines:
            return ""
        return self.shipping_lines[0].title or ""


@dataclass(frozen=True)
class Credentials:
    """Honey's Place account credentials carried in every envelope."""

    account: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(account={self.account!r}, password='***')"


@dataclass
class LedgerEntry:
    """Mapping from a Shopify order to its Honey's Place reference."""

    order_id: int
    reference: str
    fulfilled: bool = False


@dataclass(frozen=True)
class ShipmentStatus:
    """One status answer from Honey's Place. Never stored."""

    status: str
    tracking_number: str
    carrier: str

    @property
    def is_shipped(self) -> bool:
        return self.status.strip().lower() == "shipped"


@dataclass(frozen=True)
class Tracking:
    """Tracking info written back to Shopify."""

    number: str
    company: str = ""
    url: str = ""
