"""Shopify Admin REST client for fulfillment write-back.

Only two calls are needed: list the fulfillment orders of an order, and
create a fulfillment carrying tracking info. Fulfillment creation is NOT
idempotent on Shopify's side (a second call notifies the customer again), so
callers must guard it themselves.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from honeybridge.errors import TransportError
from honeybridge.models import Tracking

logger = logging.getLogger(__name__)

FULFILLMENT_MESSAGE = "Fulfilled by Honey's Place"


class ShopifyClient:
    """Async Shopify Admin API client (X-Shopify-Access-Token auth)."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        *,
        api_version: str = "2024-10",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=f"https://{shop_domain}/admin/api/{api_version}",
            headers={
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def list_fulfillment_orders(self, order_id: int | str) -> list[dict[str, Any]]:
        """Return the fulfillment orders for ``order_id`` (possibly empty)."""
        data = await self._request("GET", f"/orders/{order_id}/fulfillment_orders.json")
        return data.get("fulfillment_orders") or []

    async def create_fulfillment(
        self,
        fulfillment_order_id: int | str,
        line_items: list[dict[str, Any]],
        tracking: Tracking,
    ) -> None:
        """Create one fulfillment covering ``line_items`` of a fulfillment order."""
        payload = {
            "fulfillment": {
                "message": FULFILLMENT_MESSAGE,
                "notify_customer": True,
                "tracking_info": {
                    "number": tracking.number,
                    "company": tracking.company,
                    "url": tracking.url,
                },
                "line_items_by_fulfillment_order": [
                    {
                        "fulfillment_order_id": fulfillment_order_id,
                        "fulfillment_order_line_items": [
                            {"id": li["id"], "quantity": li["quantity"]}
                            for li in line_items
                        ],
                    }
                ],
            }
        }
        await self._request("POST", "/fulfillments.json", json=payload)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TransportError(f"Shopify {method} {path} timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransportError(
                f"Shopify {method} {path} returned HTTP {status}", status_code=status
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Shopify {method} {path} failed: {type(e).__name__}") from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Shopify {method} {path} returned invalid JSON") from e
