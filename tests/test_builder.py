"""Unit tests for the document builder and field sanitizer. No gateway or store involved."""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from order_intake.builder import (
    build_document,
    build_summary,
    flatten_shipping,
    line_item_label,
    sanitize_postal_code,
    truncate_text,
)
from order_intake.models import LineItem, OrderRequest, PaymentMethod, RemoteOrder

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _request(**overrides):
    values = {
        "customerId": "u1",
        "amount": Decimal("499.50"),
        "lineItems": [LineItem(displayName="Shirt", unitPrice=Decimal("499.50"), variant="M")],
        "variant": "M",
    }
    values.update(overrides)
    return OrderRequest(**values)


def _remote(**overrides):
    values = {"gatewayOrderId": "order_abc", "amountMinorUnits": 49950, "currency": "INR", "receiptToken": "r1"}
    values.update(overrides)
    return RemoteOrder(**values)


class TestPostalCode:
    def test_spaces_are_stripped(self):
        assert sanitize_postal_code("560 0 34") == 560034

    @pytest.mark.parametrize("value", ["N/A", "", "  ", None, True])
    def test_no_digits_means_absent(self, value):
        assert sanitize_postal_code(value) is None

    def test_integer_input(self):
        assert sanitize_postal_code(560034) == 560034

    def test_field_is_omitted_not_zero(self):
        fields = flatten_shipping({"city": "Pune", "postal_code": "N/A"}, limit=490)
        assert "shipping_postal_code" not in fields
        assert fields["shipping_city"] == "Pune"


class TestTruncation:
    @pytest.mark.parametrize("limit", [10, 50, 999])
    def test_truncated_to_exactly_limit(self, limit):
        text = "x" * (limit * 2)
        result = truncate_text(text, limit)
        assert len(result) == limit
        assert result.endswith("...")

    def test_short_text_untouched(self):
        assert truncate_text("abc", 10) == "abc"

    def test_limit_smaller_than_marker(self):
        assert truncate_text("abcdef", 2) == ".."

    def test_summary_truncation_is_logged(self, caplog):
        items = [LineItem(displayName=f"Product number {i}", unitPrice=Decimal("10")) for i in range(20)]
        with caplog.at_level(logging.WARNING, logger="order_intake.builder"):
            summary, truncated = build_summary(items, limit=60, order_key="order_abc")
        assert truncated
        assert len(summary) == 60
        assert summary.endswith("...")
        assert any("DATENVERLUST" in record.getMessage() for record in caplog.records)

    def test_summary_within_limit_is_not_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="order_intake.builder"):
            summary, truncated = build_summary([LineItem(displayName="Mug")], limit=60)
        assert summary == "Mug"
        assert not truncated
        assert caplog.records == []


class TestLabels:
    def test_full_label(self):
        item = LineItem(displayName="Shirt", unitPrice=Decimal("499.5"), variant="M")
        assert line_item_label(item, 1) == "Shirt (M) - 499.50"

    def test_quantity_shown_above_one(self):
        assert line_item_label(LineItem(displayName="Mug", quantity=3), 1) == "Mug x3"

    def test_product_ref_used_when_no_name(self):
        assert line_item_label(LineItem(productRef="sku-9"), 1) == "sku-9"

    def test_placeholder_when_nothing_identifies_item(self):
        assert line_item_label(LineItem(), 2) == "Item 2"


class TestBuildDocument:
    def test_gateway_document(self):
        result = build_document(_request(), _remote(), now=NOW)
        document = result.document
        assert document["order_key"] == "order_abc"
        assert document["gateway_order_id"] == "order_abc"
        assert document["status"] == "created"
        assert document["amount_minor_units"] == 49950
        assert document["amount"] == 499.5
        assert document["currency"] == "INR"
        assert document["line_items_summary"] == "Shirt (M) - 499.50"
        assert json.loads(document["line_items_full"]) == [
            {"displayName": "Shirt", "unitPrice": 499.5, "quantity": 1, "variant": "M"}
        ]
        assert document["variant"] == "M"
        assert document["payment_method"] == "gateway"
        assert document["receipt_token"] == "r1"
        assert document["created_at"] == "2026-10-18T12:00:00+00:00"
        assert document["gateway_payment_id"] is None
        assert document["verification_raw"] is None
        assert not result.summaryTruncated
        assert not result.lineItemsFullOmitted

    def test_amount_comes_from_remote_order(self):
        document = build_document(_request(), _remote(amountMinorUnits=49900), now=NOW).document
        assert document["amount_minor_units"] == 49900

    def test_cash_on_delivery_document(self):
        request = _request(paymentMethod=PaymentMethod.CASH_ON_DELIVERY, amount=None)
        remote = _remote(gatewayOrderId="cod_1_2", receiptToken=None, local=True)
        document = build_document(request, remote, now=NOW).document
        assert document["status"] == "pending"
        assert "gateway_order_id" not in document
        assert "receipt_token" not in document
        assert document["order_key"] == "cod_1_2"

    def test_missing_variant_placeholder(self):
        document = build_document(_request(lineItems=[], variant=None), _remote(), now=NOW).document
        assert document["variant"] == "N/A"
        assert document["line_items_summary"] == ""

    def test_large_full_backup_is_omitted(self, caplog):
        items = [LineItem(displayName="x" * 200, unitPrice=Decimal("1")) for _ in range(100)]
        with caplog.at_level(logging.WARNING, logger="order_intake.builder"):
            result = build_document(_request(lineItems=items), _remote(), full_backup_max_bytes=1024, now=NOW)
        assert result.lineItemsFullOmitted
        assert "line_items_full" not in result.document
        assert result.summaryTruncated
        assert len(result.document["line_items_summary"]) == 999
        assert any("line_items_full" in record.getMessage() for record in caplog.records)

    def test_primary_shipping_address_is_flattened(self):
        addresses = [
            {"name": "Home", "city": "Pune", "zip": "411 001"},
            {"full_name": "Office", "phone": "+91 98", "line_1": "MG Road", "city": "Bengaluru",
             "postal_code": "560 0 34", "country": "IN"},
        ]
        request = _request(shippingAddresses=addresses, shippingPrimaryIndex=1)
        result = build_document(request, _remote(), now=NOW)
        document = result.document
        assert document["shipping_full_name"] == "Office"
        assert document["shipping_phone"] == "+91 98"
        assert document["shipping_line_1"] == "MG Road"
        assert document["shipping_city"] == "Bengaluru"
        assert document["shipping_postal_code"] == 560034
        assert document["shipping_country"] == "IN"
        assert json.loads(document["shipping_addresses_full"]) == addresses
        assert not result.shippingFullOmitted

    def test_long_shipping_field_is_truncated(self):
        request = _request(shippingAddresses=[{"line_1": "a" * 600}])
        document = build_document(request, _remote(), short_string_max_length=490, now=NOW).document
        assert len(document["shipping_line_1"]) == 490
        assert document["shipping_line_1"].endswith("...")
