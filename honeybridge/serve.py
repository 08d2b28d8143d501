"""Application factory and lifespan.

The lifespan owns every long-lived object: the order ledger, both HTTP
clients, and the reconciliation scheduler. Tests inject fakes through
``create_app`` and usually pass ``start_scheduler=False`` to drive sweeps by
hand.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from honeybridge import __version__
from honeybridge.config import Settings, get_settings
from honeybridge.ledger import OrderLedger
from honeybridge.models import Credentials
from honeybridge.partner.client import PartnerClient, partner_tls_verify
from honeybridge.reconciliation import ReconciliationScheduler
from honeybridge.shopify.client import ShopifyClient
from honeybridge.webhooks.handlers import register_routes
from honeybridge.webhooks.ingest import IngestOrchestrator

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler with ISO-8601 timestamps."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    # httpx logs every request at INFO, including full URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_app(
    settings: Settings | None = None,
    *,
    ledger: OrderLedger | None = None,
    partner: PartnerClient | None = None,
    shopify: ShopifyClient | None = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """Build the FastAPI app. Injected collaborators are not closed on shutdown."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        credentials = Credentials(account=settings.hp_account, password=settings.hp_token)
        owned_ledger = ledger is None
        owned_partner = partner is None
        owned_shopify = shopify is None

        app_ledger = ledger if ledger is not None else OrderLedger()
        app_partner = partner or PartnerClient(
            settings.hp_endpoint,
            credentials,
            timeout=settings.http_timeout_seconds,
            verify=partner_tls_verify(settings.hp_ca_bundle, settings.hp_tls_insecure),
        )
        app_shopify = shopify or ShopifyClient(
            settings.shopify_store_domain,
            settings.shopify_admin_token,
            api_version=settings.shopify_api_version,
            timeout=settings.http_timeout_seconds,
        )

        app.state.ledger = app_ledger
        app.state.ingest = IngestOrchestrator(
            settings.shopify_webhook_secret,
            credentials,
            app_partner,
            app_ledger,
            default_ship_code=settings.hp_default_ship,
        )
        scheduler = ReconciliationScheduler(
            app_ledger,
            app_partner,
            app_shopify,
            interval_minutes=settings.poll_interval_minutes,
            initial_delay=settings.initial_poll_delay_seconds,
        )
        app.state.scheduler = scheduler
        if start_scheduler:
            scheduler.start()
        logger.info("HP Automation %s ready (port %d)", __version__, settings.port)

        try:
            yield
        finally:
            await scheduler.stop()
            if owned_ledger:
                app_ledger.close()
            if owned_partner:
                await app_partner.aclose()
            if owned_shopify:
                await app_shopify.aclose()

    app = FastAPI(title="Honey's Place Automation", version=__version__, lifespan=lifespan)
    app.state.webhook_counts = {}
    register_routes(app)
    return app
