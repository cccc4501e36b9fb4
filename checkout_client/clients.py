"""
This module provides communication clients for the external systems used during checkout:
- Shop backend (REST API): payment intents, order creation, order history
- Payment provider (Stripe): confirmation of card payments
Each class encapsulates its protocol logic, error handling, and connection management.
"""

import asyncio
import logging
import os
from typing import List, Optional, Protocol

import httpx
import stripe
from pydantic import TypeAdapter

from .errors import AuthorizationRequestError, OrderHistoryError, OrderSubmissionError
from .models import (
    OrderHistoryEntry,
    OrderRequest,
    PaymentIntentInfo,
    PaymentIntentResponse,
    ProviderErrorInfo,
    ProviderResult,
)

# Service-Adressen (normalerweise aus Env Vars)
SHOP_API_URL = os.environ.get("SHOP_API_URL", "http://localhost:5000")
STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")

log = logging.getLogger(__name__)

_order_history_adapter = TypeAdapter(List[OrderHistoryEntry])


def _error_message(response: httpx.Response) -> Optional[str]:
    """Extracts a readable error from a JSON `message` field or the raw body."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text.strip() or None


# --- Shop Backend Client (REST) ---
class BackendClient:
    """
    Client for the shop backend (REST API).
    Handles payment-intent creation, order creation, and the order history.
    """
    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        """
        Initializes the async HTTP client with proper timeout configuration.

        Args:
            base_url (str | None): Backend base URL, defaults to SHOP_API_URL.
            client (httpx.AsyncClient | None): Preconfigured client (e.g. with a test transport).
        """
        timeout_config = httpx.Timeout(5.0, read=8.0)
        self.client = client or httpx.AsyncClient(base_url=base_url or SHOP_API_URL, timeout=timeout_config)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    @staticmethod
    def _headers(token: Optional[str]) -> dict:
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def create_payment_intent(self, amount_minor: int, token: Optional[str], log_prefix: str = "") -> str:
        """
        Requests a payment intent for the given amount.
        Args:
            amount_minor (int): Amount in minor currency units (cents/paise).
            token (str | None): Bearer token of the user.
            log_prefix (str): Prefix for log lines of the current attempt.
        Returns:
            str: The client secret (authorization handle) of the payment intent.
        Raises:
            AuthorizationRequestError: On a non-2xx status, a transport error, or a malformed response.
        """
        try:
            response = await self.client.post(
                "/api/payment/create-payment-intent",
                json={"amount": amount_minor},
                headers=self._headers(token),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.warning(f"{log_prefix} Payment Intent abgelehnt (HTTP {e.response.status_code}): {e.response.text}")
            raise AuthorizationRequestError(e.response.text.strip() or None) from e
        except httpx.RequestError as e:
            log.error(f"{log_prefix} Backend nicht erreichbar beim Payment Intent: {e!r}")
            raise AuthorizationRequestError(str(e) or None) from e

        try:
            return PaymentIntentResponse.model_validate(response.json()).clientSecret
        except ValueError as e:
            log.error(f"{log_prefix} Ungültige Antwort für Payment Intent: {e}")
            raise AuthorizationRequestError() from e

    async def create_order(self, order: OrderRequest, token: Optional[str], log_prefix: str = "") -> dict:
        """
        Sends the order-creation request.
        Args:
            order (OrderRequest): The order payload.
            token (str | None): Bearer token of the user.
            log_prefix (str): Prefix for log lines of the current attempt.
        Returns:
            dict: The created order as returned by the backend (empty if the body is not JSON).
        Raises:
            OrderSubmissionError: On a non-2xx status or a transport error.
        """
        try:
            response = await self.client.post("/api/orders", json=order.to_payload(), headers=self._headers(token))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error(f"{log_prefix} Bestellung abgelehnt (HTTP {e.response.status_code}): {e.response.text}")
            raise OrderSubmissionError(_error_message(e.response)) from e
        except httpx.RequestError as e:
            log.error(f"{log_prefix} Backend nicht erreichbar bei Bestellung: {e!r}")
            raise OrderSubmissionError() from e

        try:
            return response.json()
        except ValueError:
            return {}

    async def fetch_my_orders(self, token: Optional[str]) -> List[OrderHistoryEntry]:
        """
        Loads the orders of the logged-in user.
        Raises:
            OrderHistoryError: On a non-2xx status, a transport error, or a malformed response.
        """
        try:
            response = await self.client.get("/api/orders/my-orders", headers=self._headers(token))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise OrderHistoryError(_error_message(e.response)) from e
        except httpx.RequestError as e:
            raise OrderHistoryError() from e

        try:
            return _order_history_adapter.validate_python(response.json())
        except ValueError as e:
            log.error(f"Ungültige Antwort für Bestellhistorie: {e}")
            raise OrderHistoryError() from e


# --- Payment Provider (Stripe) ---
class PaymentProvider(Protocol):
    """Confirms a card payment for a client secret issued by the backend."""

    async def confirm_card_payment(self, client_secret: str, payment_details: dict) -> ProviderResult:
        ...


class StripePaymentProvider:
    """
    Payment provider backed by the Stripe SDK.
    The SDK is blocking, so calls run in a worker thread.
    """
    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or STRIPE_SECRET_KEY
        if not self.api_key:
            raise ValueError("STRIPE_SECRET_KEY is required")

    async def confirm_card_payment(self, client_secret: str, payment_details: dict) -> ProviderResult:
        """
        Confirms the payment intent behind `client_secret`.
        Args:
            client_secret (str): Client secret of the payment intent ('pi_..._secret_...').
            payment_details (dict): {'payment_method': {'card': <card token>, 'billing_details': {...}}}
        Returns:
            ProviderResult: Error details, or the payment intent and its status.
        """
        intent_id = client_secret.split("_secret_")[0]
        method = payment_details["payment_method"]
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.confirm,
                intent_id,
                api_key=self.api_key,
                payment_method_data={
                    "type": "card",
                    "card": {"token": method["card"]},
                    "billing_details": method.get("billing_details", {}),
                },
            )
        except stripe.CardError as e:
            log.warning(f"Karte abgelehnt für {intent_id}: {e.code} - {e.user_message}")
            return ProviderResult(error=ProviderErrorInfo(message=e.user_message or str(e), code=e.code))
        except stripe.StripeError as e:
            log.error(f"Stripe-Fehler bei Bestätigung von {intent_id}: {e}")
            return ProviderResult(error=ProviderErrorInfo(message=e.user_message or "Payment failed.", code=e.code))

        return ProviderResult(paymentIntent=PaymentIntentInfo(id=intent.id, status=intent.status))
