"""
store.py — Appwrite Document Store Client

Implements the `DocumentStore` contract over the Appwrite REST API (httpx):
    - find_one(): list documents with equal("order_key", key), limit 1
    - insert():   create a document with a server-generated id
    - update():   patch an existing document

The client is shared across requests. A per-request API key (e.g. the
function runtime's x-appwrite-key header) is passed into each call and never
stored on the client.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from .errors import ConfigurationError, StoreWriteFailed
from .upsert import NATURAL_KEY_FIELD

log = logging.getLogger(__name__)


def _query(method: str, attribute: str = None, values: list = None) -> str:
    query = {"method": method}
    if attribute is not None:
        query["attribute"] = attribute
    if values is not None:
        query["values"] = values
    return json.dumps(query)


class AppwriteDocumentStore:
    """
    Client for the orders collection of an Appwrite database.
    """
    def __init__(self, endpoint: str, project_id: str, database_id: str, collection_id: str,
                 api_key: str = None, timeout_seconds: float = 10.0,
                 transport: httpx.BaseTransport = None):
        """
        Initializes the HTTP client for the collection's document endpoints.

        Args:
            endpoint (str): Appwrite endpoint, e.g. https://cloud.appwrite.io/v1.
            project_id (str): Project id, sent as X-Appwrite-Project.
            database_id (str): Database id.
            collection_id (str): Orders collection id.
            api_key (str, optional): Default server key, used when a call passes none.
            timeout_seconds (float): Timeout per store call.
            transport (httpx.BaseTransport, optional): Custom transport, used in tests.
        """
        self._api_key = api_key
        self._path = f"/databases/{database_id}/collections/{collection_id}/documents"
        self.client = httpx.Client(
            base_url=endpoint.rstrip("/"),
            headers={"X-Appwrite-Project": project_id, "Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout_seconds, connect=5.0),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, transport: httpx.BaseTransport = None):
        return cls(
            endpoint=settings.store_endpoint,
            project_id=settings.store_project_id,
            database_id=settings.store_database_id,
            collection_id=settings.orders_collection_id,
            api_key=settings.store_api_key,
            transport=transport,
        )

    def __del__(self):
        """Closes the HTTP client session."""
        client = getattr(self, "client", None)
        if client is not None:
            client.close()

    def close(self):
        self.client.close()

    def _headers(self, api_key: Optional[str]) -> dict:
        key = api_key or self._api_key
        if not key:
            raise ConfigurationError("Missing required configuration: APPWRITE_API_KEY or x-appwrite-key")
        return {"X-Appwrite-Key": key}

    def _send(self, operation: str, method: str, url: str, api_key: Optional[str], **kwargs) -> dict:
        headers = self._headers(api_key)
        try:
            response = self.client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            log.error(f"Document Store {operation} fehlgeschlagen: HTTP {e.response.status_code} - {e.response.text}")
            raise StoreWriteFailed()
        except httpx.HTTPError as e:
            log.error(f"Document Store {operation} nicht erreichbar: {e}")
            raise StoreWriteFailed()
        except ValueError:
            log.error(f"Document Store {operation}: Antwort ist kein JSON.")
            raise StoreWriteFailed()

    def find_one(self, key: str, api_key: str = None) -> Optional[Dict[str, Any]]:
        """
        Looks up the order document with the given natural key.

        Returns:
            dict | None: The document, or None if there is none.

        Raises:
            StoreWriteFailed: If the lookup fails.
        """
        params = {"queries[]": [_query("equal", NATURAL_KEY_FIELD, [key]), _query("limit", values=[1])]}
        data = self._send("lookup", "GET", self._path, api_key, params=params)
        documents = data.get("documents") or []
        return documents[0] if documents else None

    def insert(self, document: Dict[str, Any], api_key: str = None) -> Dict[str, Any]:
        """Creates a document with a server-generated id."""
        body = {"documentId": "unique()", "data": document}
        return self._send("insert", "POST", self._path, api_key, json=body)

    def update(self, document_id: str, document: Dict[str, Any], api_key: str = None) -> Dict[str, Any]:
        """Patches the given fields of an existing document."""
        return self._send("update", "PATCH", f"{self._path}/{document_id}", api_key, json={"data": document})
