"""Shared fixtures for the honeybridge test suite."""

from __future__ import annotations

import pytest
from fakes import FakePartner, FakeShopify

from honeybridge.errors import TransportError
from honeybridge.ledger import OrderLedger
from honeybridge.models import Credentials


@pytest.fixture()
def credentials() -> Credentials:
    return Credentials(account="hp-account", password="hp-token")


@pytest.fixture()
def ledger() -> OrderLedger:
    return OrderLedger()


@pytest.fixture()
def partner() -> FakePartner:
    return FakePartner()


@pytest.fixture()
def shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture()
def transport_error() -> TransportError:
    return TransportError("Honey's Place submit timed out")
