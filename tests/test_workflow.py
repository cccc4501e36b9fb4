"""Tests for the checkout orchestration (card and cash-on-delivery paths)."""
from __future__ import annotations

import asyncio

import httpx
import pytest

from checkout_client.clients import BackendClient
from checkout_client.models import CardPayment, CashOnDelivery, CheckoutState
from checkout_client.workflow import CONFIRMATION_PATH, CheckoutSession
from mock_services import mock_shop_backend

from conftest import (
    USER_TOKEN,
    VALID_SHIPPING,
    BlockingProvider,
    FakeProvider,
    fill_shipping,
    make_snapshot,
)

INTENT_PATH = "/api/payment/create-payment-intent"
ORDERS_PATH = "/api/orders"


def _session(backend, provider, navigator, payment, token=USER_TOKEN, items=None):
    session = CheckoutSession(make_snapshot(token, items), backend, provider, navigator, payment=payment)
    fill_shipping(session)
    return session


@pytest.mark.asyncio
async def test_cod_checkout_records_pending_order_and_navigates(backend, provider, navigator, calls):
    session = _session(backend, provider, navigator, CashOnDelivery())

    attempt = await session.submit()

    assert attempt.state == CheckoutState.COMPLETED
    assert attempt.visited == [
        CheckoutState.IDLE, CheckoutState.VALIDATING, CheckoutState.COD_FLOW, CheckoutState.COMPLETED,
    ]
    assert calls == [ORDERS_PATH]
    assert provider.confirmations == []
    assert navigator.destinations == [CONFIRMATION_PATH]

    [order] = mock_shop_backend.ORDERS[USER_TOKEN]
    assert order["total"] == 20.0
    assert order["paymentMethod"] == "COD"
    assert order["paymentStatus"] == "Pending"
    assert order["items"] == [{"productId": "p1", "name": "Brass Lamp", "quantity": 2, "price": 10.0}]
    assert order["shippingInfo"] == VALID_SHIPPING
    assert session.error is None
    assert session.loading is False


@pytest.mark.asyncio
async def test_card_checkout_runs_intent_then_confirm_then_order(backend, provider, navigator, calls):
    session = _session(backend, provider, navigator, CardPayment(card="tok_visa"))

    attempt = await session.submit()

    assert attempt.state == CheckoutState.COMPLETED
    assert CheckoutState.CARD_FLOW in attempt.visited
    assert calls == [INTENT_PATH, "confirm", ORDERS_PATH]
    assert navigator.destinations == [CONFIRMATION_PATH]

    [intent] = mock_shop_backend.PAYMENT_INTENTS
    assert intent["amount"] == 2000

    client_secret, details = provider.confirmations[0]
    assert client_secret.startswith(intent["id"] + "_secret_")
    assert details == {
        "payment_method": {
            "card": "tok_visa",
            "billing_details": {
                "name": VALID_SHIPPING["name"],
                "email": VALID_SHIPPING["email"],
                "phone": VALID_SHIPPING["phone"],
            },
        },
    }

    [order] = mock_shop_backend.ORDERS[USER_TOKEN]
    assert order["paymentMethod"] == "Stripe"
    assert order["paymentStatus"] == "Paid"
    assert order["total"] == 20.0


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["name", "email", "phone", "address"])
@pytest.mark.parametrize("payment", [CashOnDelivery(), CardPayment(card="tok_visa")])
async def test_missing_shipping_field_blocks_all_network_calls(backend, provider, navigator, calls, field, payment):
    session = _session(backend, provider, navigator, payment)
    session.handle_change(field, "   ")

    attempt = await session.submit()

    assert attempt.state == CheckoutState.FAILED
    assert attempt.visited[-2:] == [CheckoutState.VALIDATING, CheckoutState.FAILED]
    assert session.error == "Please fill in all shipping details."
    assert calls == []
    assert navigator.destinations == []


@pytest.mark.asyncio
async def test_empty_cart_is_rejected_before_payment(backend, provider, navigator, calls):
    session = _session(backend, provider, navigator, CashOnDelivery(), items=[])

    attempt = await session.submit()

    assert attempt.state == CheckoutState.FAILED
    assert session.error == "Your cart is empty."
    assert calls == []


@pytest.mark.asyncio
async def test_missing_payment_selection_fails_validation(backend, provider, navigator, calls):
    session = _session(backend, provider, navigator, None)

    attempt = await session.submit()

    assert attempt.state == CheckoutState.FAILED
    assert session.error == "Please select a payment method."
    assert calls == []


@pytest.mark.asyncio
async def test_intent_failure_surfaces_body_and_sends_no_order(backend, provider, navigator, calls):
    session = _session(backend, provider, navigator, CardPayment(card="tok_visa"), token="tok_intent_fail_1")

    attempt = await session.submit()

    assert attempt.state == CheckoutState.FAILED
    assert session.error == "Stripe is unavailable"
    assert calls == [INTENT_PATH]
    assert provider.confirmations == []
    assert mock_shop_backend.ORDERS == {}
    assert navigator.destinations == []


@pytest.mark.asyncio
async def test_provider_error_fails_without_order(backend, navigator, calls):
    provider = FakeProvider.declining(calls, "Your card has insufficient funds.")
    session = _session(backend, provider, navigator, CardPayment(card="tok_chargeDeclined"))

    attempt = await session.submit()

    assert attempt.state == CheckoutState.FAILED
    assert session.error == "Your card has insufficient funds."
    assert calls == [INTENT_PATH, "confirm"]
    assert mock_shop_backend.ORDERS == {}


@pytest.mark.asyncio
async def test_unexpected_provider_status_fails_without_order(backend, navigator, calls):
    provider = FakeProvider.with_status(calls, "requires_action")
    session = _session(backend, provider, navigator, CardPayment(card="tok_threeDSecure2Required"))

    attempt = await session.submit()

    assert attempt.state == CheckoutState.FAILED
    assert session.error == "Unexpected payment status."
    assert calls == [INTENT_PATH, "confirm"]
    assert mock_shop_backend.ORDERS == {}


@pytest.mark.asyncio
async def test_order_failure_surfaces_backend_message(backend, provider, navigator, calls):
    session = _session(backend, provider, navigator, CashOnDelivery(), token="tok_order_fail_1")

    attempt = await session.submit()

    assert attempt.state == CheckoutState.FAILED
    assert attempt.paymentStatus.value == "Pending"
    assert session.error == "Order could not be saved"
    assert calls == [ORDERS_PATH]
    assert navigator.destinations == []


@pytest.mark.asyncio
async def test_paid_order_failure_is_reported(backend, provider, navigator, calls, caplog):
    session = _session(backend, provider, navigator, CardPayment(card="tok_visa"), token="tok_order_fail_2")

    attempt = await session.submit()

    assert attempt.state == CheckoutState.FAILED
    assert attempt.paymentStatus.value == "Paid"
    assert calls == [INTENT_PATH, "confirm", ORDERS_PATH]
    assert any(r.levelname == "CRITICAL" for r in caplog.records)


@pytest.mark.asyncio
async def test_network_error_on_order_uses_generic_message(provider, navigator, calls):
    def refuse(request: httpx.Request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://testserver")
    async with BackendClient(client=client) as backend:
        session = _session(backend, provider, navigator, CashOnDelivery())
        attempt = await session.submit()

    assert attempt.state == CheckoutState.FAILED
    assert session.error == "Failed to place order"


@pytest.mark.asyncio
async def test_failed_attempt_keeps_form_and_resubmission_is_independent(backend, navigator, calls):
    provider = FakeProvider.declining(calls)
    session = _session(backend, provider, navigator, CardPayment(card="tok_chargeDeclined"))

    failed = await session.submit()
    assert failed.state == CheckoutState.FAILED
    assert session.shipping_info.model_dump() == VALID_SHIPPING
    assert session.payment == CardPayment(card="tok_chargeDeclined")

    calls.clear()
    provider.result = FakeProvider(calls).result
    session.select_payment(CardPayment(card="tok_visa"))
    retried = await session.submit()

    assert retried.state == CheckoutState.COMPLETED
    assert retried.attemptId != failed.attemptId
    assert retried.error is None
    assert retried.visited[0] == CheckoutState.IDLE
    assert failed.state == CheckoutState.FAILED
    assert session.error is None
    assert calls == [INTENT_PATH, "confirm", ORDERS_PATH]
    assert len(mock_shop_backend.ORDERS[USER_TOKEN]) == 1
    assert navigator.destinations == [CONFIRMATION_PATH]


@pytest.mark.asyncio
async def test_duplicate_submission_is_ignored_while_loading(backend, navigator, calls):
    provider = BlockingProvider(calls)
    session = _session(backend, provider, navigator, CardPayment(card="tok_visa"))

    first = asyncio.create_task(session.submit())
    await provider.started.wait()
    assert session.loading is True

    assert await session.submit() is None

    provider.release.set()
    attempt = await first

    assert attempt.state == CheckoutState.COMPLETED
    assert session.loading is False
    assert calls == [INTENT_PATH, "confirm", ORDERS_PATH]
    assert len(mock_shop_backend.ORDERS[USER_TOKEN]) == 1


@pytest.mark.asyncio
async def test_total_matches_sum_over_lines(backend, provider, navigator, calls):
    items = [
        {"productId": "p1", "name": "Brass Lamp", "price": 149.99, "quantity": 1},
        {"_id": "64f0c2", "name": "Jute Rug", "price": 0.1, "quantity": 3},
    ]
    session = _session(backend, provider, navigator, CardPayment(card="tok_visa"), items=items)

    await session.submit()

    [order] = mock_shop_backend.ORDERS[USER_TOKEN]
    assert order["total"] == 150.29
    assert str(session.total) == "150.29"
    assert mock_shop_backend.PAYMENT_INTENTS[0]["amount"] == 15029
    assert order["items"][1]["productId"] == "64f0c2"


def test_handle_change_rejects_unknown_field(provider, navigator):
    session = CheckoutSession(make_snapshot(), backend=None, provider=provider, navigator=navigator)
    with pytest.raises(ValueError):
        session.handle_change("postalCode", "560001")
