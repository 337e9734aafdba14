import itertools
import threading

import pytest

from order_intake.config import Settings
from order_intake.errors import StoreWriteFailed
from order_intake.models import RemoteOrder


class FakeGateway:
    """Records create_order calls and returns a fixed order or raises a fixed error."""

    def __init__(self, order: RemoteOrder = None, error: Exception = None):
        self.order = order
        self.error = error
        self.calls = []

    def create_order(self, amount_minor, currency, receipt):
        self.calls.append({"amount_minor": amount_minor, "currency": currency, "receipt": receipt})
        if self.error is not None:
            raise self.error
        return self.order


class InMemoryStore:
    """Document store double keyed by order_key, with call counters."""

    def __init__(self):
        self.documents = {}
        self.find_calls = 0
        self.insert_calls = 0
        self.update_calls = 0
        self.api_keys = []
        self.fail_on = set()
        self.written = threading.Event()
        self._ids = itertools.count(1)

    @property
    def total_calls(self):
        return self.find_calls + self.insert_calls + self.update_calls

    def _maybe_fail(self, operation):
        if operation in self.fail_on:
            raise StoreWriteFailed()

    def find_one(self, key, api_key=None):
        self.find_calls += 1
        self.api_keys.append(api_key)
        self._maybe_fail("find")
        for document in self.documents.values():
            if document.get("order_key") == key:
                return dict(document)
        return None

    def insert(self, document, api_key=None):
        self.insert_calls += 1
        self.api_keys.append(api_key)
        self._maybe_fail("insert")
        document_id = f"doc{next(self._ids)}"
        stored = {**document, "$id": document_id}
        self.documents[document_id] = stored
        self.written.set()
        return dict(stored)

    def update(self, document_id, document, api_key=None):
        self.update_calls += 1
        self.api_keys.append(api_key)
        self._maybe_fail("update")
        self.documents[document_id].update(document)
        self.written.set()
        return dict(self.documents[document_id])


@pytest.fixture()
def settings():
    return Settings(
        gateway_key_id="rzp_test_key",
        gateway_key_secret="rzp_test_secret",
        store_endpoint="http://store.test/v1",
        store_project_id="project-1",
        orders_collection_id="orders",
        store_api_key="server-key",
    )


@pytest.fixture()
def remote_order():
    return RemoteOrder(gatewayOrderId="order_abc", amountMinorUnits=49950, currency="INR", receiptToken="r1")


@pytest.fixture()
def gateway(remote_order):
    return FakeGateway(order=remote_order)


@pytest.fixture()
def store():
    return InMemoryStore()


@pytest.fixture()
def shirt_payload():
    return {
        "amount": 499.50,
        "customerId": "u1",
        "paymentMethod": "gateway",
        "lineItems": [{"displayName": "Shirt", "unitPrice": 499.50, "quantity": 1, "variant": "M"}],
    }


@pytest.fixture()
def make_gateway():
    return FakeGateway
