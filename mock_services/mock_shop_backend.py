"""
mock_shop_backend.py — Mock Implementation of the Shop Backend (REST API)

This module provides a simulated shop backend for testing the checkout workflow.
It exposes a simple FastAPI application that mimics the payment-intent and
order endpoints of the real backend and keeps orders in memory.

Simulation Scenarios (selected by the bearer token):
    • Any other token                → Successful payment intent and order
    • Starts with "tok_intent_fail_" → Payment intent fails (HTTP 500, text body)
    • Starts with "tok_order_fail_"  → Order creation fails (HTTP 500, JSON body)
    • Missing bearer token           → HTTP 401

Endpoints:
    POST /api/payment/create-payment-intent — Creates a payment intent.
    POST /api/orders                        — Stores a new order.
    GET  /api/orders/my-orders              — Lists orders of the caller.

Port:
    Default: 5000 (HTTP)
"""

import logging
import time
import uuid
from typing import Dict, List, Literal, Optional

from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

app = FastAPI(title="Mock Shop Backend")

# In-memory storage, keyed by bearer token
ORDERS: Dict[str, List[dict]] = {}
PAYMENT_INTENTS: List[dict] = []


class PaymentIntentRequest(BaseModel):
    """
    Attributes:
        amount (int): Payment amount in the smallest currency units (e.g., cents).
    """
    amount: int


class OrderItemIn(BaseModel):
    productId: str
    name: str
    quantity: int = Field(..., gt=0)
    price: float


class ShippingInfoIn(BaseModel):
    name: str
    email: str
    phone: str
    address: str


class OrderCreate(BaseModel):
    """
    Represents an order-creation payload sent by the checkout client.
    """
    cartItems: List[OrderItemIn]
    shippingInfo: ShippingInfoIn
    total: float
    paymentMethod: Literal["Stripe", "COD"]
    paymentStatus: Literal["Paid", "Pending"]


def reset():
    """Clears all stored orders and payment intents."""
    ORDERS.clear()
    PAYMENT_INTENTS.clear()


def _token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer ") or not authorization[7:].strip():
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    return authorization[7:].strip()


@app.exception_handler(HTTPException)
async def http_error_handler(request, exc: HTTPException):
    # Das echte Backend antwortet mit {"message": ...}
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


@app.post("/api/payment/create-payment-intent")
def create_payment_intent(request: PaymentIntentRequest, authorization: Optional[str] = Header(None)):
    """
    Creates a simulated payment intent.

    Returns:
        dict: {'clientSecret': 'pi_<id>_secret_<secret>'} on success.
        PlainTextResponse(400): If the amount is not positive.
        PlainTextResponse(500): If the token triggers the failure scenario.
    """
    token = _token(authorization)
    logging.info(f"[BE] Payment Intent über {request.amount} angefragt.")

    if request.amount <= 0:
        return PlainTextResponse("Invalid amount", status_code=400)

    if token.startswith("tok_intent_fail_"):
        logging.warning("[BE] Payment Intent fehlgeschlagen (simuliert).")
        return PlainTextResponse("Stripe is unavailable", status_code=500)

    intent_id = f"pi_{uuid.uuid4().hex[:24]}"
    PAYMENT_INTENTS.append({"id": intent_id, "amount": request.amount, "token": token})
    return {"clientSecret": f"{intent_id}_secret_{uuid.uuid4().hex[:16]}"}


@app.post("/api/orders", status_code=201)
def create_order(order: OrderCreate, authorization: Optional[str] = Header(None)):
    """
    Stores an order for the calling user.

    Raises:
        HTTPException(500): If the token triggers the failure scenario.
    """
    token = _token(authorization)

    if token.startswith("tok_order_fail_"):
        logging.warning("[BE] Bestellung konnte nicht gespeichert werden (simuliert).")
        raise HTTPException(status_code=500, detail="Order could not be saved")

    record = {
        "_id": uuid.uuid4().hex[:24],
        "items": [item.model_dump() for item in order.cartItems],
        "shippingInfo": order.shippingInfo.model_dump(),
        "total": order.total,
        "paymentMethod": order.paymentMethod,
        "paymentStatus": order.paymentStatus,
        "status": "Processing",
        "createdAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    }
    ORDERS.setdefault(token, []).append(record)
    logging.info(f"[BE] Bestellung {record['_id']} gespeichert ({order.paymentMethod}/{order.paymentStatus}).")
    return record


@app.get("/api/orders/my-orders")
def my_orders(authorization: Optional[str] = Header(None)):
    token = _token(authorization)
    return ORDERS.get(token, [])


if __name__ == "__main__":
    import uvicorn

    from checkout_client.logging_config import setup_logging

    setup_logging(log_file=None)
    uvicorn.run(app, host="0.0.0.0", port=5000)
