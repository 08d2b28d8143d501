"""Honey's Place HTTP transport.

Both operations POST an HPEnvelope to the same endpoint as the single form
field ``xmldata`` and return the raw response text. Decoding is left to the
caller (see honeybridge.partner.codec).
"""

from __future__ import annotations

import logging
import ssl

import httpx

from honeybridge.errors import TransportError
from honeybridge.models import Credentials
from honeybridge.partner.codec import encode_status_query

logger = logging.getLogger(__name__)

FORM_FIELD = "xmldata"


def partner_tls_verify(
    ca_bundle: str | None = None,
    insecure: bool = False,
) -> ssl.SSLContext | bool:
    """Certificate verification setting for the partner client only.

    Honey's Place serves a legacy certificate chain that default trust stores
    can reject. Either trust an explicit CA bundle or, as a last resort, turn
    verification off for this one client.
    """
    if insecure:
        logger.warning("TLS verification disabled for Honey's Place client (HP_TLS_INSECURE)")
        return False
    if ca_bundle:
        return ssl.create_default_context(cafile=ca_bundle)
    return True


class PartnerClient:
    """Async client for the Honey's Place XML web service."""

    def __init__(
        self,
        endpoint: str,
        credentials: Credentials,
        *,
        timeout: float = 30.0,
        verify: ssl.SSLContext | bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._endpoint = endpoint
        self._credentials = credentials
        self._client = httpx.AsyncClient(
            timeout=timeout,
            verify=verify,
            transport=transport,
        )

    async def submit(self, xml: str) -> str:
        """Submit an order envelope. Returns the raw response body."""
        return await self._post(xml, operation="submit")

    async def query_status(self, reference: str) -> str:
        """Query shipment status for ``reference``. Returns the raw response body."""
        xml = encode_status_query(reference, self._credentials)
        return await self._post(xml, operation="orderstatus")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, xml: str, *, operation: str) -> str:
        try:
            response = await self._client.post(self._endpoint, data={FORM_FIELD: xml})
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TransportError(f"Honey's Place {operation} timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransportError(
                f"Honey's Place {operation} returned HTTP {status}", status_code=status
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Honey's Place {operation} failed: {type(e).__name__}"
            ) from e

        logger.debug("Honey's Place %s -> HTTP %d", operation, response.status_code)
        return response.text
