"""
models.py — Data Models for Order Intake

This module defines the data structures passed between the intake stages.
It uses Pydantic models to ensure type safety and automatic validation.

Models:
    - LineItem: A single purchased item as described by the client.
    - OrderRequest: The validated, normalized order request.
    - RemoteOrder: The order as created by the payment gateway (or synthesized locally).
    - BuildResult: A storage-safe document plus data-loss flags.
    - UpsertResult: Outcome of the idempotent write.
    - IntakeResult: Status code and JSON body returned to the caller.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "cash_on_delivery"
    GATEWAY = "gateway"


class OrderStatus(str, Enum):
    """Lifecycle of an order record. Intake only ever writes CREATED or PENDING."""
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PENDING = "pending"


# Set by the payment verification workflow; intake must not move a record out of these.
TERMINAL_STATUSES = {OrderStatus.PAID.value, OrderStatus.FAILED.value, OrderStatus.CANCELLED.value}


class LineItem(BaseModel):
    """
    Represents a single product item in an order. No field is required.

    Attributes:
        productRef (str, optional): Opaque product reference.
        displayName (str, optional): Human-readable product name.
        unitPrice (Decimal, optional): Price per unit in major currency units.
        quantity (int): Number of units. Defaults to 1.
        variant (str, optional): Variant such as a size.
    """
    productRef: Optional[str] = None
    displayName: Optional[str] = None
    unitPrice: Optional[Decimal] = None
    quantity: int = Field(1, ge=1)
    variant: Optional[str] = None


class OrderRequest(BaseModel):
    """
    Represents a validated order request.

    Attributes:
        customerId (str): Opaque customer identifier.
        amount (Decimal, optional): Amount in major currency units. Required for gateway payments.
        currency (str): ISO 4217 currency code.
        lineItems (List[LineItem]): Items in client order, may be empty.
        paymentMethod (PaymentMethod): Gateway or cash on delivery.
        shippingAddresses (List[dict]): All shipping addresses, unflattened.
        shippingPrimaryIndex (int): Index of the address used for flattened fields, already clamped.
        variant (str, optional): First non-empty variant across lineItems.
    """
    customerId: str
    amount: Optional[Decimal] = None
    currency: str = "INR"
    lineItems: List[LineItem] = Field(default_factory=list)
    paymentMethod: PaymentMethod = PaymentMethod.GATEWAY
    shippingAddresses: List[Dict[str, Any]] = Field(default_factory=list)
    shippingPrimaryIndex: int = 0
    variant: Optional[str] = None

    @property
    def primary_shipping_address(self) -> Optional[Dict[str, Any]]:
        if not self.shippingAddresses:
            return None
        return self.shippingAddresses[self.shippingPrimaryIndex]


class RemoteOrder(BaseModel):
    """
    Represents an order created at the payment gateway, or a local
    surrogate for cash on delivery.

    Attributes:
        gatewayOrderId (str): Natural key of the order record.
        amountMinorUnits (int): Authoritative amount in the smallest currency unit.
        currency (str): Authoritative currency.
        receiptToken (str, optional): Receipt echoed by the gateway.
        local (bool): True if synthesized without a gateway call.
    """
    gatewayOrderId: str
    amountMinorUnits: int
    currency: str
    receiptToken: Optional[str] = None
    local: bool = False


class BuildResult(BaseModel):
    document: Dict[str, Any]
    summaryTruncated: bool = False
    lineItemsFullOmitted: bool = False
    shippingFullOmitted: bool = False


class UpsertResult(BaseModel):
    documentId: str
    created: bool


class IntakeResult(BaseModel):
    statusCode: int
    body: Dict[str, Any]
