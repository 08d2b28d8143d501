"""Webhook inbound system.

Receives Shopify orders/paid webhooks. Each delivery is signature-verified,
parsed, and submitted to Honey's Place.
"""
