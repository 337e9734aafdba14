"""
builder.py — Document Builder & Field Sanitizer

Maps an `OrderRequest` and its `RemoteOrder` onto a document that fits the
orders collection schema:
    • string attributes have maximum lengths
    • integer attributes (postal code) only accept integers
    • arrays must be homogeneous, so structured data is stored as JSON strings

Nothing here performs I/O. Every lossy step (truncation, omitted backups) is
logged as a data-loss event and reported in the `BuildResult`.
"""

import json
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .models import BuildResult, LineItem, OrderRequest, OrderStatus, RemoteOrder

log = logging.getLogger(__name__)

TRUNCATION_MARKER = "..."
MISSING_VARIANT = "N/A"

# Feld im Dokument -> akzeptierte Schlüssel in der Adresse
SHIPPING_FIELDS = {
    "shipping_full_name": ("full_name", "fullName", "name"),
    "shipping_phone": ("phone", "phoneNumber"),
    "shipping_line_1": ("line_1", "line1", "address_line1", "addressLine1"),
    "shipping_line_2": ("line_2", "line2", "address_line2", "addressLine2"),
    "shipping_city": ("city",),
    "shipping_state": ("state", "region"),
    "shipping_country": ("country",),
}
POSTAL_CODE_KEYS = ("postal_code", "postalCode", "zip", "pincode")

# Owned by payment verification; written as null on insert only.
VERIFICATION_FIELDS = ("gateway_payment_id", "gateway_signature", "verification_raw")


def truncate_text(text: str, limit: int, marker: str = TRUNCATION_MARKER) -> str:
    """
    Cuts `text` to exactly `limit` characters, the last of which are `marker`.
    Text within the limit is returned unchanged.
    """
    if len(text) <= limit:
        return text
    if limit <= len(marker):
        return marker[:limit]
    return text[:limit - len(marker)] + marker


def sanitize_postal_code(value) -> Optional[int]:
    """
    Strips every non-digit character and returns the rest as an integer.
    Returns None if no digit is left, so the field can be omitted.
    """
    if value is None or isinstance(value, bool):
        return None
    digits = re.sub(r"\D", "", str(value))
    if not digits:
        return None
    return int(digits)


def _format_price(price: Decimal) -> str:
    return f"{price:.2f}"


def line_item_label(item: LineItem, position: int) -> str:
    """Renders an item as 'name (variant) - price'. Items without a name get a placeholder."""
    name = item.displayName or item.productRef or f"Item {position}"
    label = name
    if item.variant:
        label += f" ({item.variant})"
    if item.quantity > 1:
        label += f" x{item.quantity}"
    if item.unitPrice is not None:
        label += f" - {_format_price(item.unitPrice)}"
    return label


def _json_default(value):
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _backup_json(value: Any, max_bytes: int, field: str, order_key: str) -> Optional[str]:
    text = json.dumps(value, default=_json_default, ensure_ascii=False, separators=(",", ":"))
    size = len(text.encode("utf-8"))
    if size > max_bytes:
        log.warning(f"[Order: {order_key}] DATENVERLUST: {field} ({size} Bytes) überschreitet "
                    f"{max_bytes} Bytes und wird nicht gespeichert.")
        return None
    return text


def build_summary(items: List[LineItem], limit: int, order_key: str = "-"):
    """
    Returns (summary, truncated). The summary never exceeds `limit` characters.
    """
    summary = "; ".join(line_item_label(item, i) for i, item in enumerate(items, start=1))
    if len(summary) <= limit:
        return summary, False
    log.warning(f"[Order: {order_key}] DATENVERLUST: Artikelübersicht ({len(summary)} Zeichen) "
                f"auf {limit} Zeichen gekürzt.")
    return truncate_text(summary, limit), True


def flatten_shipping(address: Optional[Dict[str, Any]], limit: int, order_key: str = "-") -> Dict[str, Any]:
    """Extracts the searchable top-level shipping fields from one address."""
    if not address:
        return {}
    fields = {}
    for field, keys in SHIPPING_FIELDS.items():
        for key in keys:
            value = address.get(key)
            if value is None or isinstance(value, (dict, list)):
                continue
            text = str(value).strip()
            if not text:
                continue
            if len(text) > limit:
                log.warning(f"[Order: {order_key}] DATENVERLUST: {field} auf {limit} Zeichen gekürzt.")
                text = truncate_text(text, limit)
            fields[field] = text
            break

    for key in POSTAL_CODE_KEYS:
        if key in address:
            postal_code = sanitize_postal_code(address[key])
            if postal_code is not None:
                fields["shipping_postal_code"] = postal_code
            else:
                log.info(f"[Order: {order_key}] Postleitzahl '{address[key]}' unbrauchbar, Feld entfällt.")
            break
    return fields


def build_document(
        request: OrderRequest,
        remote: RemoteOrder,
        summary_max_length: int = 999,
        short_string_max_length: int = 490,
        full_backup_max_bytes: int = 10 * 1024,
        now: datetime = None,
) -> BuildResult:
    """
    Builds the storage document for an order.

    Args:
        request (OrderRequest): The normalized request.
        remote (RemoteOrder): Gateway order or local surrogate. Its amount and
            currency are authoritative.
        summary_max_length (int): Limit of the line item summary attribute.
        short_string_max_length (int): Limit of flattened shipping attributes.
        full_backup_max_bytes (int): Backups larger than this are omitted entirely.
        now (datetime, optional): Creation timestamp, defaults to the current UTC time.

    Returns:
        BuildResult: The document plus flags for every lossy step.
    """
    order_key = remote.gatewayOrderId
    now = now or datetime.now(timezone.utc)

    summary, summary_truncated = build_summary(request.lineItems, summary_max_length, order_key)
    items_full = _backup_json(
        [item.model_dump(exclude_none=True) for item in request.lineItems],
        full_backup_max_bytes, "line_items_full", order_key,
    )

    shipping_full = None
    if request.shippingAddresses:
        shipping_full = _backup_json(request.shippingAddresses, full_backup_max_bytes,
                                     "shipping_addresses_full", order_key)

    status = OrderStatus.PENDING if remote.local else OrderStatus.CREATED

    document = {
        "order_key": order_key,
        "customer_id": request.customerId,
        "status": status.value,
        "amount_minor_units": remote.amountMinorUnits,
        "amount": float(Decimal(remote.amountMinorUnits) / 100),
        "currency": remote.currency,
        "line_items_summary": summary,
        "line_items_full": items_full,
        "variant": request.variant or MISSING_VARIANT,
        "gateway_order_id": None if remote.local else remote.gatewayOrderId,
        "payment_method": request.paymentMethod.value,
        "receipt_token": remote.receiptToken,
        "created_at": now.isoformat(),
        "shipping_addresses_full": shipping_full,
    }
    document.update(flatten_shipping(request.primary_shipping_address, short_string_max_length, order_key))

    # Schema lehnt null bei optionalen Feldern teilweise ab
    document = {key: value for key, value in document.items() if value is not None}
    for field in VERIFICATION_FIELDS:
        document[field] = None

    return BuildResult(
        document=document,
        summaryTruncated=summary_truncated,
        lineItemsFullOmitted=items_full is None,
        shippingFullOmitted=bool(request.shippingAddresses) and shipping_full is None,
    )
