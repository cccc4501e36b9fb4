"""
history.py — Order history of the logged-in user ("My Orders")
"""

import logging
from typing import List, Optional

from .clients import BackendClient
from .errors import OrderHistoryError
from .models import OrderHistoryEntry

log = logging.getLogger(__name__)


async def load_my_orders(backend: BackendClient, token: Optional[str]) -> List[OrderHistoryEntry]:
    """
    Loads the user's orders for display.

    Without a token no request is made. Errors are logged and an empty list
    is returned, so the page shows "no orders" instead of failing.

    Args:
        backend (BackendClient): Shop backend client.
        token (str | None): Bearer token of the logged-in user.

    Returns:
        List[OrderHistoryEntry]: Orders as returned by the backend.
    """
    if not token:
        return []

    try:
        orders = await backend.fetch_my_orders(token)
    except OrderHistoryError as e:
        log.error(f"Fehler beim Laden der Bestellungen: {e.message}")
        return []

    log.info(f"{len(orders)} Bestellungen geladen.")
    return orders
