"""
normalizer.py — Payload Normalizer

Turns an untrusted request body into a validated `OrderRequest`. This module
is a pure transform: it performs no I/O and makes no external calls, so
malformed or invalid requests are rejected before the gateway or the store
is touched.

Decoding contract:
    The body must be a JSON object. Two deviations are tolerated, each with
    exactly one extra parse:
        1. The body is a JSON string that itself encodes an object.
        2. The object only carries a wrapper field (body, bodyRaw, payload, data)
           holding an object or a JSON-encoded object.

Legacy client shim (v0):
    Older clients send snake_case / short field names. They are mapped onto
    the canonical names in one place (`apply_legacy_aliases`). A canonical key
    always wins over its alias.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from .errors import MalformedPayload, ValidationError
from .gateway import MAX_AMOUNT_MINOR_UNITS, line_items_total, to_minor_units
from .models import LineItem, OrderRequest, PaymentMethod

log = logging.getLogger(__name__)

WRAPPER_FIELDS = ("body", "bodyRaw", "payload", "data")

REQUEST_ALIASES = {
    "userId": "customerId",
    "items": "lineItems",
    "shipping": "shippingAddress",
    "payment_method": "paymentMethod",
    "shipping_primary_index": "shippingPrimaryIndex",
}

LINE_ITEM_ALIASES = {
    "productId": "productRef",
    "id": "productRef",
    "name": "displayName",
    "productName": "displayName",
    "price": "unitPrice",
    "qty": "quantity",
    "size": "variant",
}

PAYMENT_METHOD_ALIASES = {
    "cod": PaymentMethod.CASH_ON_DELIVERY.value,
    "razorpay": PaymentMethod.GATEWAY.value,
    "online": PaymentMethod.GATEWAY.value,
}

REQUEST_FIELDS = {
    "amount", "currency", "customerId", "lineItems", "paymentMethod",
    "shippingAddress", "shippingPrimaryIndex",
}

_KNOWN_FIELDS = REQUEST_FIELDS | set(REQUEST_ALIASES)


def _parse_json(text) -> Any:
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedPayload("Request body is not valid UTF-8.")
    if not isinstance(text, str) or not text.strip():
        raise MalformedPayload()
    try:
        # Decimal statt float, sonst gehen Paise beim Runden verloren
        return json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError:
        raise MalformedPayload()


def _unwrap(data: Dict[str, Any]) -> Dict[str, Any]:
    if _KNOWN_FIELDS & set(data):
        return data
    for field in WRAPPER_FIELDS:
        if field not in data:
            continue
        inner = data[field]
        if isinstance(inner, (str, bytes, bytearray)):
            inner = _parse_json(inner)
        if isinstance(inner, dict):
            log.info(f"Payload aus Wrapper-Feld '{field}' entpackt.")
            return inner
        raise MalformedPayload()
    return data


def decode_body(raw) -> Dict[str, Any]:
    """
    Extracts the JSON object from a raw request body.

    Args:
        raw (bytes | str | dict): The request body as received.

    Returns:
        dict: The decoded JSON object.

    Raises:
        MalformedPayload: If no JSON object can be extracted.
    """
    data = raw if isinstance(raw, dict) else _parse_json(raw)

    if isinstance(data, str):
        # doppelt kodiert
        data = _parse_json(data)
        if not isinstance(data, dict):
            raise MalformedPayload()
        return data

    if not isinstance(data, dict):
        raise MalformedPayload()
    return _unwrap(data)


def apply_legacy_aliases(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Maps v0 client field names onto the canonical request contract.

    Returns a new dict; the input is left untouched. Line items are only
    rewritten if they are objects.
    """
    result = dict(data)
    for alias, canonical in REQUEST_ALIASES.items():
        if alias in result and canonical not in result:
            result[canonical] = result[alias]

    method = result.get("paymentMethod")
    if isinstance(method, str) and method.strip().lower() in PAYMENT_METHOD_ALIASES:
        result["paymentMethod"] = PAYMENT_METHOD_ALIASES[method.strip().lower()]

    items = result.get("lineItems")
    if isinstance(items, dict):
        items = [items]
    if isinstance(items, list):
        mapped = []
        for item in items:
            if isinstance(item, dict):
                item = dict(item)
                for alias, canonical in LINE_ITEM_ALIASES.items():
                    if alias in item and canonical not in item:
                        item[canonical] = item[alias]
            mapped.append(item)
        result["lineItems"] = mapped
    return result


def _to_decimal(value) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def _minor_units(amount: Decimal) -> Optional[int]:
    """Amount in minor units, or None if it cannot be represented or exceeds the maximum."""
    try:
        minor = to_minor_units(amount)
    except InvalidOperation:
        return None
    return minor if minor <= MAX_AMOUNT_MINOR_UNITS else None


def _to_text(value) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _to_quantity(value) -> int:
    if value is None or isinstance(value, bool):
        return 1
    try:
        quantity = int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        return 1
    return quantity if quantity >= 1 else 1


def _to_line_item(entry) -> LineItem:
    if not isinstance(entry, dict):
        return LineItem(displayName=_to_text(entry))
    return LineItem(
        productRef=_to_text(entry.get("productRef")),
        displayName=_to_text(entry.get("displayName")),
        unitPrice=_to_decimal(entry.get("unitPrice")),
        quantity=_to_quantity(entry.get("quantity")),
        variant=_to_text(entry.get("variant")),
    )


def normalize_line_items(value) -> List[LineItem]:
    """Wraps a single item as a list; a missing value is an empty list."""
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    return [_to_line_item(entry) for entry in value]


def normalize_shipping(value) -> List[Dict[str, Any]]:
    """
    Returns shipping addresses as an ordered list of objects.

    Raises:
        ValueError: If the value is neither an object nor a list of objects.
    """
    if value is None:
        return []
    if isinstance(value, dict):
        return [value] if value else []
    if isinstance(value, list):
        if not all(isinstance(address, dict) for address in value):
            raise ValueError("shippingAddress list may only contain objects")
        return [address for address in value if address]
    raise ValueError("shippingAddress must be an object or a list of objects")


def clamp_index(index, length: int) -> int:
    """Clamps a requested index into [0, length - 1]; non-integers select 0."""
    if length <= 0:
        return 0
    try:
        index = int(index)
    except (TypeError, ValueError):
        return 0
    return max(0, min(index, length - 1))


def representative_variant(items: List[LineItem]) -> Optional[str]:
    """Returns the first non-empty variant, scanning items in order."""
    for item in items:
        if item.variant:
            return item.variant
    return None


def normalize_order_request(
        raw,
        primary_index: int = None,
        require_shipping: bool = False,
        require_variant: bool = False,
        accept_legacy_aliases: bool = True,
) -> OrderRequest:
    """
    Converts a raw client payload into a validated `OrderRequest`.

    Every optional field is handled independently: a missing shipping address
    does not affect line items and vice versa.

    Args:
        raw: Request body (bytes, str or already decoded dict).
        primary_index (int, optional): Primary shipping index supplied by the caller.
            Overrides `shippingPrimaryIndex` from the body. Clamped to bounds.
        require_shipping (bool): Reject requests without any shipping address.
        require_variant (bool): Reject requests where no line item carries a variant.
        accept_legacy_aliases (bool): Apply the v0 client field shim.

    Returns:
        OrderRequest: The normalized request.

    Raises:
        MalformedPayload: If no JSON object can be extracted.
        ValidationError: If one or more fields violate the contract. All
            problems are reported together.
    """
    data = decode_body(raw)
    if accept_legacy_aliases:
        data = apply_legacy_aliases(data)

    problems = []

    customer_id = _to_text(data.get("customerId"))
    if customer_id is None:
        problems.append(("customerId", "customerId is required"))

    method_value = data.get("paymentMethod")
    if method_value is None or (isinstance(method_value, str) and not method_value.strip()):
        payment_method = PaymentMethod.GATEWAY
    else:
        try:
            payment_method = PaymentMethod(str(method_value).strip().lower())
        except ValueError:
            payment_method = None
            problems.append(("paymentMethod", "paymentMethod must be 'gateway' or 'cash_on_delivery'"))

    currency = _to_text(data.get("currency")) or "INR"
    currency = currency.upper()
    if len(currency) != 3 or not currency.isalpha():
        problems.append(("currency", "currency must be an ISO 4217 code"))

    line_items = normalize_line_items(data.get("lineItems"))

    raw_amount = data.get("amount")
    amount = _to_decimal(raw_amount)
    if payment_method == PaymentMethod.GATEWAY:
        minor = _minor_units(amount) if amount is not None else None
        if minor is None or minor < 1:
            problems.append(("amount", "Valid amount required"))
    elif raw_amount is not None:
        if amount is None or amount < 0 or _minor_units(amount) is None:
            problems.append(("amount", "amount must be a non-negative number within range"))
    elif _minor_units(line_items_total(line_items)) is None:
        problems.append(("lineItems", "line item total is out of range"))

    try:
        addresses = normalize_shipping(data.get("shippingAddress"))
    except ValueError as e:
        addresses = []
        problems.append(("shippingAddress", str(e)))
    else:
        if require_shipping and not addresses:
            problems.append(("shippingAddress", "shippingAddress is required"))

    if primary_index is None:
        primary_index = data.get("shippingPrimaryIndex", 0)
    primary_index = clamp_index(primary_index, len(addresses))

    variant = representative_variant(line_items)
    if variant is None and require_variant:
        problems.append(("lineItems", "at least one line item must carry a variant"))

    if problems:
        raise ValidationError(
            "; ".join(message for _, message in problems),
            fields=[field for field, _ in problems],
        )

    return OrderRequest(
        customerId=customer_id,
        amount=amount,
        currency=currency,
        lineItems=line_items,
        paymentMethod=payment_method,
        shippingAddresses=addresses,
        shippingPrimaryIndex=primary_index,
        variant=variant,
    )
