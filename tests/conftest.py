"""Shared pytest fixtures: mock shop backend over ASGI, fake payment provider."""
from __future__ import annotations

import asyncio

import httpx
import pytest
import pytest_asyncio

from checkout_client.clients import BackendClient
from checkout_client.models import (
    CartSnapshot,
    PaymentIntentInfo,
    ProviderErrorInfo,
    ProviderResult,
)
from checkout_client.workflow import CheckoutSession
from mock_services import mock_shop_backend

USER_TOKEN = "tok_user_1"

VALID_SHIPPING = {
    "name": "Asha Rao",
    "email": "asha@example.com",
    "phone": "+91 98765 43210",
    "address": "12 MG Road, Bengaluru",
}


class FakeProvider:
    """Payment provider double; records confirmations into the shared call log."""

    def __init__(self, calls: list, result: ProviderResult | None = None):
        self.calls = calls
        self.result = result or ProviderResult(paymentIntent=PaymentIntentInfo(id="pi_test", status="succeeded"))
        self.confirmations: list[tuple[str, dict]] = []

    async def confirm_card_payment(self, client_secret: str, payment_details: dict) -> ProviderResult:
        self.calls.append("confirm")
        self.confirmations.append((client_secret, payment_details))
        return self.result

    @classmethod
    def declining(cls, calls: list, message: str = "Your card was declined."):
        return cls(calls, ProviderResult(error=ProviderErrorInfo(message=message, code="card_declined")))

    @classmethod
    def with_status(cls, calls: list, status: str):
        return cls(calls, ProviderResult(paymentIntent=PaymentIntentInfo(id="pi_test", status=status)))


class BlockingProvider(FakeProvider):
    """Holds the confirmation open until `release` is set."""

    def __init__(self, calls: list):
        super().__init__(calls)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def confirm_card_payment(self, client_secret: str, payment_details: dict) -> ProviderResult:
        self.started.set()
        await self.release.wait()
        return await super().confirm_card_payment(client_secret, payment_details)


class RecordingNavigator:
    def __init__(self):
        self.destinations: list[str] = []

    def navigate(self, destination: str) -> None:
        self.destinations.append(destination)


def make_snapshot(token: str | None = USER_TOKEN, items: list | None = None) -> CartSnapshot:
    if items is None:
        items = [{"productId": "p1", "name": "Brass Lamp", "price": 10.0, "quantity": 2}]
    return CartSnapshot.from_state(items, {"user": {"name": "Asha", "token": token}})


def fill_shipping(session: CheckoutSession, **overrides) -> None:
    for field, value in {**VALID_SHIPPING, **overrides}.items():
        session.handle_change(field, value)


@pytest.fixture(autouse=True)
def _reset_backend():
    mock_shop_backend.reset()
    yield
    mock_shop_backend.reset()


@pytest.fixture()
def calls() -> list:
    """Ordered log of backend request paths and provider confirmations."""
    return []


@pytest_asyncio.fixture()
async def backend(calls):
    async def record(request: httpx.Request):
        calls.append(request.url.path)

    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=mock_shop_backend.app),
        base_url="http://testserver",
        event_hooks={"request": [record]},
    )
    async with BackendClient(client=client) as backend_client:
        yield backend_client


@pytest.fixture()
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture()
def provider(calls) -> FakeProvider:
    return FakeProvider(calls)
