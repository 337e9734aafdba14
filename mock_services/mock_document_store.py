"""
mock_document_store.py — Mock Implementation of the Document Store (Appwrite REST subset)

This module simulates the document endpoints the intake service uses, keeping
all documents in memory.

Supported calls:
    - GET   /databases/{db}/collections/{coll}/documents        list, equal/limit queries only
    - POST  /databases/{db}/collections/{coll}/documents        create (documentId "unique()")
    - PATCH /databases/{db}/collections/{coll}/documents/{id}   update

Every request must carry an X-Appwrite-Key header. Strings longer than
MAX_STRING_LENGTH are rejected with 400, like a schema-constrained collection.

Port:
    Default: 8002 (HTTP)
"""

from fastapi import FastAPI, Header, HTTPException, Query
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
import json
import logging
import time
import uuid

app = FastAPI(title="Mock Document Store")
logging.basicConfig(level=logging.INFO)

MAX_STRING_LENGTH = 10 * 1024
COLLECTIONS: Dict[str, Dict[str, dict]] = {}


class CreateDocumentRequest(BaseModel):
    documentId: str = "unique()"
    data: Dict[str, Any]


class UpdateDocumentRequest(BaseModel):
    data: Dict[str, Any]


def _require_key(api_key: Optional[str]):
    if not api_key:
        raise HTTPException(status_code=401, detail={"message": "Missing API key", "code": 401})


def _check_schema(data: Dict[str, Any]):
    for key, value in data.items():
        if isinstance(value, str) and len(value) > MAX_STRING_LENGTH:
            raise HTTPException(status_code=400, detail={"message": f"Invalid document structure: {key} too long"})


def _matches(document: dict, queries: List[dict]) -> bool:
    for query in queries:
        if query.get("method") == "equal" and document.get(query["attribute"]) not in query.get("values", []):
            return False
    return True


@app.get("/databases/{database_id}/collections/{collection_id}/documents")
def list_documents(database_id: str, collection_id: str,
                   queries: List[str] = Query(default=[], alias="queries[]"),
                   api_key: Optional[str] = Header(None, alias="X-Appwrite-Key")):
    """Lists documents of a collection, filtered by equal() queries and capped by limit()."""
    _require_key(api_key)
    parsed = [json.loads(q) for q in queries]
    limit = next((q["values"][0] for q in parsed if q.get("method") == "limit"), 25)
    documents = [d for d in COLLECTIONS.get(collection_id, {}).values() if _matches(d, parsed)]
    return {"total": len(documents), "documents": documents[:limit]}


@app.post("/databases/{database_id}/collections/{collection_id}/documents", status_code=201)
def create_document(database_id: str, collection_id: str, request: CreateDocumentRequest,
                    api_key: Optional[str] = Header(None, alias="X-Appwrite-Key")):
    """Creates a document. The id is generated for "unique()"."""
    _require_key(api_key)
    _check_schema(request.data)
    document_id = uuid.uuid4().hex[:20] if request.documentId == "unique()" else request.documentId
    collection = COLLECTIONS.setdefault(collection_id, {})
    if document_id in collection:
        raise HTTPException(status_code=409, detail={"message": "Document already exists"})

    now = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    document = {**request.data, "$id": document_id, "$createdAt": now, "$updatedAt": now}
    collection[document_id] = document
    logging.info(f"[DS] Dokument {document_id} in {collection_id} angelegt.")
    return document


@app.patch("/databases/{database_id}/collections/{collection_id}/documents/{document_id}")
def update_document(database_id: str, collection_id: str, document_id: str, request: UpdateDocumentRequest,
                    api_key: Optional[str] = Header(None, alias="X-Appwrite-Key")):
    """Updates the given fields of a document."""
    _require_key(api_key)
    _check_schema(request.data)
    document = COLLECTIONS.get(collection_id, {}).get(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail={"message": "Document not found"})
    document.update(request.data)
    document["$updatedAt"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    logging.info(f"[DS] Dokument {document_id} in {collection_id} aktualisiert.")
    return document


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8002)
