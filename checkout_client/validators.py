from .errors import ShippingValidationError
from .models import CartSnapshot, ShippingInfo

REQUIRED_SHIPPING_FIELDS = ("name", "email", "phone", "address")


def validate_shipping_info(info: ShippingInfo) -> None:
    """Raises ShippingValidationError if any required field is empty or blank."""
    missing = [f for f in REQUIRED_SHIPPING_FIELDS if not getattr(info, f, "").strip()]
    if missing:
        raise ShippingValidationError()


def validate_cart(snapshot: CartSnapshot) -> None:
    if not snapshot.lines:
        raise ShippingValidationError("Your cart is empty.")
