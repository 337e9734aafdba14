"""Checks that the local simulators behave like the collaborators the service expects."""

import json

import httpx
from fastapi.testclient import TestClient

from mock_services import mock_document_store, mock_payment_service
from order_intake.store import AppwriteDocumentStore


def test_mock_gateway_is_idempotent_per_receipt():
    client = TestClient(mock_payment_service.app)
    payload = {"amount": 49950, "currency": "INR", "receipt": "order_rcpt_1_1"}

    first = client.post("/v1/orders", json=payload).json()
    second = client.post("/v1/orders", json=payload).json()

    assert first["id"] == second["id"]
    assert first["amount"] == 49950
    assert first["receipt"] == "order_rcpt_1_1"


def test_mock_gateway_scenarios():
    client = TestClient(mock_payment_service.app)
    assert client.post("/v1/orders", json={"amount": 1313, "currency": "INR", "receipt": "r-err"}).status_code == 500
    assert client.post("/v1/orders", json={"amount": 9999, "currency": "INR", "receipt": "r-odd"}).json()["amount"] == 9998


def test_mock_document_store_round_trip():
    client = TestClient(mock_document_store.app)
    path = "/databases/default/collections/orders-test/documents"
    headers = {"X-Appwrite-Key": "key"}

    created = client.post(path, json={"documentId": "unique()", "data": {"order_key": "k1"}}, headers=headers).json()
    client.patch(f"{path}/{created['$id']}", json={"data": {"status": "created"}}, headers=headers)
    query = json.dumps({"method": "equal", "attribute": "order_key", "values": ["k1"]})
    listed = client.get(path, params={"queries[]": [query]}, headers=headers).json()

    assert listed["total"] == 1
    assert listed["documents"][0]["status"] == "created"
    assert client.get(path, headers={}).status_code == 401


def test_store_client_against_mock_document_store():
    test_client = TestClient(mock_document_store.app, base_url="http://store.test")

    def handler(request):
        headers = {name: request.headers[name] for name in ("x-appwrite-key", "x-appwrite-project", "content-type")}
        response = test_client.request(request.method, str(request.url), content=request.content, headers=headers)
        return httpx.Response(response.status_code, json=response.json())

    store = AppwriteDocumentStore("http://store.test", "project-1", "default", "orders-client", api_key="key",
                                  transport=httpx.MockTransport(handler))
    assert store.find_one("k2") is None
    created = store.insert({"order_key": "k2", "status": "pending"})
    assert store.find_one("k2")["$id"] == created["$id"]
