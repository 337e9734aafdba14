"""
mock_payment_service.py — Mock Implementation of the Payment Gateway Order API (REST)

This module provides a simulated payment gateway for local runs of the intake service.
It exposes a simple FastAPI application that mimics the gateway's order creation.

Simulation Scenarios (selected by amount in minor units):
    • 1313  → Gateway error (HTTP 500)
    • 4242  → Timeout simulation (responds after 15 seconds)
    • 9999  → Amount echoed with one paisa less, to exercise the authoritative-amount rule
    • other → Successful order creation

Orders are idempotent per receipt: a repeated receipt returns the original order.

Endpoints:
    POST /v1/orders — Creates an order.

Port:
    Default: 8001 (HTTP)
"""

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
import logging
import time
import uuid

app = FastAPI(title="Mock Payment Gateway")
logging.basicConfig(level=logging.INFO)

ORDERS_BY_RECEIPT = {}


class CreateOrderRequest(BaseModel):
    """
    Represents an order creation request payload.

    Attributes:
        amount (int): Order amount in the smallest currency unit (e.g., paise).
        currency (str): ISO 4217 currency code (e.g., 'INR').
        receipt (str): Merchant receipt token, unique per attempt.
    """
    amount: int = Field(..., gt=0)
    currency: str
    receipt: str


@app.post("/v1/orders")
def create_order(request: CreateOrderRequest):
    """
    Creates a gateway order.

    Args:
        request (CreateOrderRequest): Amount, currency and receipt.

    Returns:
        dict: The created order, including:
            - id (str): Gateway order id.
            - amount (int): Authoritative amount in minor units.
            - currency (str): Currency.
            - receipt (str): Echoed receipt.
            - status (str): Always "created".

    Raises:
        HTTPException(500): If the request amount triggers the error scenario.
    """
    logging.info(f"[GW] Order-Anfrage für Receipt {request.receipt} ({request.amount} {request.currency})")

    if request.receipt in ORDERS_BY_RECEIPT:
        logging.info(f"[GW] Receipt {request.receipt} bereits bekannt, liefere bestehende Order.")
        return ORDERS_BY_RECEIPT[request.receipt]

    # Scenario simulation
    if request.amount == 1313:
        logging.warning(f"[GW] Simuliere Serverfehler für {request.receipt}.")
        raise HTTPException(status_code=500, detail={"error": {"code": "SERVER_ERROR"}})

    if request.amount == 4242:
        logging.info(f"[GW] Simuliere Timeout für {request.receipt}...")
        time.sleep(15)
        logging.error(f"[GW] Timeout-Anfrage {request.receipt} abgeschlossen (zu spät).")

    amount = request.amount - 1 if request.amount == 9999 else request.amount
    order = {
        "id": f"order_{uuid.uuid4().hex[:14]}",
        "entity": "order",
        "amount": amount,
        "currency": request.currency,
        "receipt": request.receipt,
        "status": "created",
        "created_at": int(time.time()),
    }
    ORDERS_BY_RECEIPT[request.receipt] = order
    logging.info(f"[GW] Order {order['id']} erstellt.")
    return order


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
