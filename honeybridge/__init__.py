"""Shopify -> Honey's Place order bridge.

Paid Shopify orders are submitted to Honey's Place over its XML protocol and
shipment status is polled back until the tracking number can be written to
Shopify as a fulfillment.
"""

__version__ = "0.1.0"
