"""Tests for the Appwrite document store client over httpx.MockTransport."""

import json

import httpx
import pytest

from order_intake.errors import ConfigurationError, StoreWriteFailed
from order_intake.store import AppwriteDocumentStore

DOCUMENTS_PATH = "/v1/databases/default/collections/orders/documents"


def _store(handler, api_key="server-key"):
    return AppwriteDocumentStore("http://store.test/v1/", "project-1", "default", "orders", api_key=api_key,
                                 transport=httpx.MockTransport(handler))


def test_find_one_queries_by_natural_key():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["queries"] = [json.loads(q) for q in request.url.params.get_list("queries[]")]
        seen["project"] = request.headers["x-appwrite-project"]
        seen["key"] = request.headers["x-appwrite-key"]
        return httpx.Response(200, json={"total": 1, "documents": [{"$id": "doc1", "order_key": "order_abc"}]})

    document = _store(handler).find_one("order_abc")

    assert document == {"$id": "doc1", "order_key": "order_abc"}
    assert seen["method"] == "GET"
    assert seen["path"] == DOCUMENTS_PATH
    assert seen["queries"] == [
        {"method": "equal", "attribute": "order_key", "values": ["order_abc"]},
        {"method": "limit", "values": [1]},
    ]
    assert seen["project"] == "project-1"
    assert seen["key"] == "server-key"


def test_find_one_returns_none_when_absent():
    store = _store(lambda request: httpx.Response(200, json={"total": 0, "documents": []}))
    assert store.find_one("order_abc") is None


def test_insert_requests_server_generated_id():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"$id": "doc1", **seen["body"]["data"]})

    created = _store(handler).insert({"order_key": "order_abc"})

    assert seen["method"] == "POST"
    assert seen["body"] == {"documentId": "unique()", "data": {"order_key": "order_abc"}}
    assert created["$id"] == "doc1"


def test_update_patches_document():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"$id": "doc1"})

    _store(handler).update("doc1", {"status": "created"})

    assert seen["method"] == "PATCH"
    assert seen["path"] == f"{DOCUMENTS_PATH}/doc1"
    assert seen["body"] == {"data": {"status": "created"}}


def test_per_call_key_overrides_server_key():
    seen = []

    def handler(request):
        seen.append(request.headers["x-appwrite-key"])
        return httpx.Response(200, json={"documents": []})

    store = _store(handler)
    store.find_one("order_abc", api_key="request-key")
    store.find_one("order_abc")
    assert seen == ["request-key", "server-key"]


def test_missing_key_is_configuration_error():
    store = _store(lambda request: httpx.Response(200, json={}), api_key=None)
    with pytest.raises(ConfigurationError):
        store.find_one("order_abc")


@pytest.mark.parametrize("handler", [
    lambda request: httpx.Response(400, json={"message": "Invalid document structure"}),
    lambda request: httpx.Response(200, text="not json"),
])
def test_store_errors_are_store_write_failed(handler):
    with pytest.raises(StoreWriteFailed):
        _store(handler).insert({"order_key": "order_abc"})


def test_transport_error_is_store_write_failed():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(StoreWriteFailed):
        _store(handler).find_one("order_abc")
