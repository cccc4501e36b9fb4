"""
workflow.py — Core Orchestration Logic for Checkout

This module contains the checkout workflow of the shop client.
It coordinates the backend and the payment provider in the correct sequence
for one checkout attempt and reports the outcome back to the form.

Workflow Overview:
1. Validate cart and shipping info (no network calls on failure)
2. Card payment: create payment intent (backend), confirm it (Stripe)
   Cash on delivery: skip the payment provider entirely
3. Submit the order to the backend with the final payment status
4. Navigate to the confirmation page, or show the error inline
"""

import logging
import os
from decimal import Decimal
from typing import Optional, Protocol

from .clients import BackendClient, PaymentProvider
from .errors import (
    CheckoutError,
    OrderSubmissionError,
    ProviderError,
    ShippingValidationError,
    UnexpectedStatusError,
)
from .models import (
    CardPayment,
    CartSnapshot,
    CashOnDelivery,
    CheckoutAttempt,
    CheckoutState,
    OrderRequest,
    PaymentMethod,
    PaymentSelection,
    PaymentStatus,
    ShippingInfo,
)
from .pricing import to_minor_units
from .validators import validate_cart, validate_shipping_info

CONFIRMATION_PATH = os.environ.get("CHECKOUT_CONFIRMATION_PATH", "/thankyou")

log = logging.getLogger(__name__)


class Navigator(Protocol):
    def navigate(self, destination: str) -> None:
        ...


def payment_method_for(selection: Optional[PaymentSelection]) -> Optional[PaymentMethod]:
    if isinstance(selection, CardPayment):
        return PaymentMethod.STRIPE
    if isinstance(selection, CashOnDelivery):
        return PaymentMethod.COD
    return None


class CheckoutSession:
    """
    Checkout form state and the orchestration of checkout attempts.

    The session owns the shipping form, the payment selection, the loading
    flag and the inline error. Cart and auth state are read from the snapshot
    given at construction and never modified.

    Attributes:
        snapshot (CartSnapshot): Read-only cart and auth state.
        shipping_info (ShippingInfo): Current form values, kept across failed attempts.
        payment (PaymentSelection | None): Selected payment method.
        loading (bool): True while an attempt is running; blocks duplicate submission.
        error (str | None): Message of the last failed attempt.
        attempt (CheckoutAttempt | None): The most recent attempt.
    """

    def __init__(
            self,
            snapshot: CartSnapshot,
            backend: BackendClient,
            provider: PaymentProvider,
            navigator: Navigator,
            payment: Optional[PaymentSelection] = None,
    ):
        self.snapshot = snapshot
        self.backend = backend
        self.provider = provider
        self.navigator = navigator
        self.shipping_info = ShippingInfo()
        self.payment = payment
        self.loading = False
        self.error: Optional[str] = None
        self.attempt: Optional[CheckoutAttempt] = None

    @property
    def total(self) -> Decimal:
        """Order total shown on the form (major currency units)."""
        return self.snapshot.total

    def handle_change(self, field: str, value: str):
        """Updates a single shipping field, like an input change on the form."""
        if field not in ShippingInfo.model_fields:
            raise ValueError(f"Unknown shipping field: {field}")
        self.shipping_info = self.shipping_info.model_copy(update={field: value})

    def select_payment(self, selection: PaymentSelection):
        self.payment = selection

    async def submit(self) -> Optional[CheckoutAttempt]:
        """
        Runs one checkout attempt with the current form state.

        Returns:
            CheckoutAttempt | None: The finished attempt, or None if another
            attempt is still running and this submission was ignored.
        """
        if self.loading:
            log.warning("Checkout läuft bereits. Doppelte Übermittlung ignoriert.")
            return None

        selection = self.payment
        attempt = CheckoutAttempt(paymentMethod=payment_method_for(selection))
        self.attempt = attempt
        self.loading = True
        self.error = None

        try:
            await self._run_attempt(attempt, selection, self.shipping_info.model_copy())
            self._handle_outcome(attempt)
        finally:
            self.loading = False
        return attempt

    async def _run_attempt(self, attempt: CheckoutAttempt, selection: Optional[PaymentSelection],
                           shipping_info: ShippingInfo):
        log_prefix = f"[Checkout: {attempt.attemptId}]"
        log.info(f"{log_prefix} Starte Checkout ({attempt.paymentMethod.value if attempt.paymentMethod else '-'}).")

        try:
            # --- 1. Validation ---
            attempt.advance(CheckoutState.VALIDATING)
            validate_cart(self.snapshot)
            validate_shipping_info(shipping_info)
            if selection is None:
                raise ShippingValidationError("Please select a payment method.")

            # --- 2. Payment ---
            if isinstance(selection, CardPayment):
                attempt.advance(CheckoutState.CARD_FLOW)
                await self._card_flow(selection, shipping_info, log_prefix)
                attempt.paymentStatus = PaymentStatus.PAID
            else:
                attempt.advance(CheckoutState.COD_FLOW)
                attempt.paymentStatus = PaymentStatus.PENDING

            # --- 3. Order ---
            await self._submit_order(attempt, shipping_info, log_prefix)
            attempt.advance(CheckoutState.COMPLETED)
            log.info(f"{log_prefix} Bestellung erfolgreich angelegt ({attempt.paymentStatus.value}).")

        except ShippingValidationError as e:
            log.info(f"{log_prefix} Validierung fehlgeschlagen: {e.message}")
            attempt.error = e.message
            attempt.advance(CheckoutState.FAILED)

        except CheckoutError as e:
            log.warning(f"{log_prefix} Checkout fehlgeschlagen ({type(e).__name__}): {e.message}")
            attempt.error = e.message
            attempt.advance(CheckoutState.FAILED)

        except Exception as e:
            log.critical(f"{log_prefix} Unbekannter Fehler im Checkout: {e}", exc_info=True)
            attempt.error = str(e) or "Payment failed."
            attempt.advance(CheckoutState.FAILED)

    async def _card_flow(self, selection: CardPayment, shipping_info: ShippingInfo, log_prefix: str):
        """
        Creates a payment intent and confirms it with the payment provider.

        Raises:
            AuthorizationRequestError: The backend refused the payment intent.
            ProviderError: The provider rejected the card.
            UnexpectedStatusError: The provider returned a status other than 'succeeded'.
        """
        amount_minor = to_minor_units(self.snapshot.total)
        log.info(f"{log_prefix} Schritt 1: Erzeuge Payment Intent über {amount_minor} (Minor Units)...")
        client_secret = await self.backend.create_payment_intent(amount_minor, self.snapshot.token, log_prefix)

        log.info(f"{log_prefix} Schritt 2: Bestätige Kartenzahlung beim Provider...")
        result = await self.provider.confirm_card_payment(
            client_secret,
            {
                "payment_method": {
                    "card": selection.card,
                    "billing_details": shipping_info.billing_details(),
                },
            },
        )

        if result.error:
            raise ProviderError(result.error.message)
        status = result.paymentIntent.status if result.paymentIntent else None
        if status != "succeeded":
            log.error(f"{log_prefix} Unerwarteter Zahlungsstatus: {status}")
            raise UnexpectedStatusError()
        log.info(f"{log_prefix} Zahlung erfolgreich.")

    async def _submit_order(self, attempt: CheckoutAttempt, shipping_info: ShippingInfo, log_prefix: str):
        order = OrderRequest.build(self.snapshot, shipping_info, attempt.paymentMethod, attempt.paymentStatus)
        log.info(f"{log_prefix} Sende Bestellung an Backend (Summe: {order.total})...")
        try:
            await self.backend.create_order(order, self.snapshot.token, log_prefix)
        except OrderSubmissionError:
            if attempt.paymentStatus == PaymentStatus.PAID:
                # Zahlung ist erfolgt, aber die Bestellung fehlt im Backend.
                log.critical(f"{log_prefix} KRITISCH: Zahlung erfolgreich, Bestellung nicht gespeichert! "
                             f"BENÖTIGT MANUELLE AKTION!")
            raise

    def _handle_outcome(self, attempt: CheckoutAttempt):
        if attempt.state == CheckoutState.COMPLETED:
            self.navigator.navigate(CONFIRMATION_PATH)
        else:
            # Formularwerte bleiben erhalten
            self.error = attempt.error
