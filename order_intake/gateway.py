"""
gateway.py — Remote Order Creator

Creates exactly one payment-gateway order per intake request (REST API via
httpx), or synthesizes a local surrogate order id for cash on delivery.

The gateway call is the only step allowed to block the request. It is bounded
twice: httpx per-phase timeouts, and an overall deadline enforced by running
the call on its own worker thread. If the deadline passes the call is
abandoned, not awaited; the gateway deduplicates retries by receipt token.
"""

import logging
import secrets
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from decimal import ROUND_HALF_UP, Decimal
from typing import List

import httpx

from .errors import GatewayUnavailable
from .models import LineItem, OrderRequest, PaymentMethod, RemoteOrder

log = logging.getLogger(__name__)

# Obergrenze für Beträge in Minor Units
MAX_AMOUNT_MINOR_UNITS = 10 ** 12


def to_minor_units(amount: Decimal) -> int:
    """Converts major units to minor units, i.e. round(amount * 100), half-up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def new_receipt_token() -> str:
    """Returns a receipt token that is unique per creation attempt."""
    return f"order_rcpt_{_epoch_millis()}_{secrets.randbelow(10 ** 9)}"


def synthesize_cod_order_id() -> str:
    """Returns a natural key for a cash-on-delivery order: cod_<millis>_<digits>."""
    return f"cod_{_epoch_millis()}_{secrets.randbelow(10 ** 9)}"


def line_items_total(items: List[LineItem]) -> Decimal:
    """Sum of unitPrice * quantity over the priced line items."""
    total = Decimal("0")
    for item in items:
        if item.unitPrice is not None:
            total += item.unitPrice * item.quantity
    return total


def order_total(request: OrderRequest) -> Decimal:
    """
    Amount of an order in major units. Uses the client amount if present,
    otherwise the sum of priced line items.
    """
    if request.amount is not None:
        return request.amount
    return line_items_total(request.lineItems)


class PaymentGatewayClient:
    """
    Client for the payment gateway order API (REST).
    Handles order creation, timeouts and error responses.

    The client is shared across requests and never mutated after construction.
    """
    def __init__(self, key_id: str, key_secret: str, base_url: str = "https://api.razorpay.com",
                 timeout_seconds: float = 10.0, transport: httpx.BaseTransport = None):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            key_id (str): Gateway API key id.
            key_secret (str): Gateway API key secret.
            base_url (str): Gateway base URL.
            timeout_seconds (float): Overall bound for a single create_order call.
            transport (httpx.BaseTransport, optional): Custom transport, used in tests.
        """
        self.timeout_seconds = timeout_seconds
        timeout_config = httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds))
        self.client = httpx.Client(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout_config,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, transport: httpx.BaseTransport = None):
        return cls(
            key_id=settings.gateway_key_id,
            key_secret=settings.gateway_key_secret,
            base_url=settings.gateway_base_url,
            timeout_seconds=settings.gateway_timeout_seconds,
            transport=transport,
        )

    def __del__(self):
        """Closes the HTTP client session."""
        client = getattr(self, "client", None)
        if client is not None:
            client.close()

    def close(self):
        self.client.close()

    def _post_order(self, amount_minor: int, currency: str, receipt: str) -> dict:
        payload = {"amount": amount_minor, "currency": currency, "receipt": receipt}
        try:
            response = self.client.post("/v1/orders", json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException:
            log.error(f"[Receipt: {receipt}] Gateway Timeout. Status der Order unbekannt.")
            raise GatewayUnavailable()
        except httpx.HTTPStatusError as e:
            # Antwortinhalt nur ins Log, nie an den Aufrufer
            log.error(f"[Receipt: {receipt}] HTTP-Fehler vom Gateway: {e.response.status_code} - {e.response.text}")
            raise GatewayUnavailable("Payment gateway rejected the order request.", status_code=502)
        except httpx.HTTPError as e:
            log.error(f"[Receipt: {receipt}] Gateway nicht erreichbar: {e}")
            raise GatewayUnavailable()
        except ValueError:
            log.error(f"[Receipt: {receipt}] Gateway-Antwort ist kein JSON.")
            raise GatewayUnavailable("Payment gateway returned an invalid response.", status_code=502)

    def create_order(self, amount_minor: int, currency: str, receipt: str) -> RemoteOrder:
        """
        Creates a new order at the payment gateway.

        Args:
            amount_minor (int): Amount in the smallest currency unit.
            currency (str): ISO currency code (e.g. 'INR').
            receipt (str): Receipt token, unique per attempt.

        Returns:
            RemoteOrder: The created order. Amount and currency are taken from
            the gateway response, not from the request.

        Raises:
            GatewayUnavailable: On timeout, transport error, error status or an
                unusable response body.
        """
        log.info(f"[Receipt: {receipt}] Erstelle Gateway-Order ({amount_minor} {currency}).")
        # Eigener Thread pro Aufruf: hängende Aufrufe blockieren keine späteren
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gateway-call")
        future = executor.submit(self._post_order, amount_minor, currency, receipt)
        try:
            data = future.result(timeout=self.timeout_seconds)
        except FuturesTimeout:
            future.cancel()
            log.error(f"[Receipt: {receipt}] Gateway-Deadline von {self.timeout_seconds}s überschritten. Aufruf wird verworfen.")
            raise GatewayUnavailable()
        finally:
            executor.shutdown(wait=False)

        try:
            remote = RemoteOrder(
                gatewayOrderId=str(data["id"]),
                amountMinorUnits=int(data["amount"]),
                currency=str(data.get("currency") or currency),
                receiptToken=data.get("receipt") or receipt,
            )
        except (KeyError, TypeError, ValueError):
            log.error(f"[Receipt: {receipt}] Unvollständige Gateway-Antwort: {data}")
            raise GatewayUnavailable("Payment gateway returned an invalid response.", status_code=502)

        log.info(f"[Order: {remote.gatewayOrderId}] Gateway-Order erstellt.")
        return remote


def create_remote_order(request: OrderRequest, gateway: PaymentGatewayClient) -> RemoteOrder:
    """
    Creates the remote order for a request, or a local surrogate for cash on delivery.

    Args:
        request (OrderRequest): The normalized request.
        gateway (PaymentGatewayClient): Gateway client, not called for cash on delivery.

    Returns:
        RemoteOrder: The order whose `gatewayOrderId` is the natural key of the record.

    Raises:
        GatewayUnavailable: If the gateway call fails.
    """
    amount_minor = to_minor_units(order_total(request))

    if request.paymentMethod == PaymentMethod.CASH_ON_DELIVERY:
        order_id = synthesize_cod_order_id()
        log.info(f"[Order: {order_id}] Nachnahme: lokale Order-ID erzeugt, kein Gateway-Aufruf.")
        return RemoteOrder(
            gatewayOrderId=order_id,
            amountMinorUnits=amount_minor,
            currency=request.currency,
            local=True,
        )

    return gateway.create_order(amount_minor, request.currency, new_receipt_token())
