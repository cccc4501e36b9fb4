"""
errors.py — Error kinds raised during a checkout attempt

Every error carries the user-facing message that the checkout form shows
inline. None of them is fatal: the user can always resubmit.
"""


class CheckoutError(Exception):
    """Base class for all recoverable checkout failures."""

    default_message = "Payment failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ShippingValidationError(CheckoutError):
    """A required shipping field is missing (or the cart is empty)."""

    default_message = "Please fill in all shipping details."


class AuthorizationRequestError(CheckoutError):
    """The backend refused to create a payment intent."""

    default_message = "Failed to create payment intent"


class ProviderError(CheckoutError):
    """The payment provider rejected the card confirmation."""


class UnexpectedStatusError(CheckoutError):
    """The provider answered with a status other than 'succeeded'."""

    default_message = "Unexpected payment status."


class OrderSubmissionError(CheckoutError):
    """The backend did not accept the order."""

    default_message = "Failed to place order"


class OrderHistoryError(CheckoutError):
    default_message = "Failed to fetch orders"
