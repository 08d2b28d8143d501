"""Error taxonomy for the submission and reconciliation paths.

None of these are fatal to the process. The webhook path maps
AuthenticationError to 401 and MalformedPayloadError to 500; everything else
is logged and acknowledged.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class AuthenticationError(BridgeError):
    """Webhook signature missing or invalid."""


class MalformedPayloadError(BridgeError):
    """Signed webhook body is not a valid order document."""


class ValidationSkip(BridgeError):
    """Order has no line item with a SKU; not eligible for submission."""


class TransportError(BridgeError):
    """Timeout, connection failure or non-2xx response from a remote API."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(BridgeError):
    """Partner response could not be parsed as an HPEnvelope."""


class PartnerRejection(BridgeError):
    """Partner parsed the order but answered with a non-success code."""

    def __init__(self, code: str | None, raw: str = ""):
        super().__init__(f"Partner rejected submission with code {code!r}")
        self.code = code
        self.raw = raw
