"""
upsert.py — Idempotent Upsert of Order Records

Guarantees at most one order record per natural key (gateway order id or
cash-on-delivery token) under duplicate deliveries:

    ABSENT  --find_one() is None-->  insert()        --> PRESENT
    PRESENT --find_one() finds doc-> merge + update() --> PRESENT

Lookup and write are two calls; the store offers no transaction. Two truly
concurrent intakes for the same key can both miss the lookup and insert twice;
such a duplicate is left for later reconciliation and is not prevented here.
"""

import logging
from typing import Any, Dict, Optional, Protocol

from .builder import VERIFICATION_FIELDS
from .errors import ConfigurationError, StoreWriteFailed
from .models import TERMINAL_STATUSES, UpsertResult

log = logging.getLogger(__name__)

NATURAL_KEY_FIELD = "order_key"

# Never overwritten by a repeated intake
PROTECTED_FIELDS = frozenset(VERIFICATION_FIELDS) | {"paid_at", "created_at", NATURAL_KEY_FIELD}


class DocumentStore(Protocol):
    """Contract of the document store collaborator."""

    def find_one(self, key: str, api_key: Optional[str] = None) -> Optional[Dict[str, Any]]:
        ...

    def insert(self, document: Dict[str, Any], api_key: Optional[str] = None) -> Dict[str, Any]:
        ...

    def update(self, document_id: str, document: Dict[str, Any], api_key: Optional[str] = None) -> Dict[str, Any]:
        ...


def merge_for_update(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """
    Returns the fields a repeated intake may write onto an existing record.

    New values overwrite old ones, except verification-owned fields and the
    creation timestamp. A status set by verification (paid, failed, cancelled)
    is kept.
    """
    changes = {key: value for key, value in incoming.items() if key not in PROTECTED_FIELDS}
    if existing.get("status") in TERMINAL_STATUSES:
        changes.pop("status", None)
    return changes


def document_id_of(document: Dict[str, Any]) -> str:
    """Returns the store-assigned id; a reply without one counts as a failed write."""
    document_id = document.get("$id") or document.get("id")
    if not document_id:
        log.error(f"Store-Antwort ohne Dokument-ID: {sorted(document)}")
        raise StoreWriteFailed()
    return str(document_id)


def upsert_order(store: DocumentStore, key: str, document: Dict[str, Any],
                 api_key: Optional[str] = None) -> UpsertResult:
    """
    Inserts the order record or merges it into the existing one for `key`.

    Args:
        store (DocumentStore): The document store.
        key (str): Natural key of the order.
        document (dict): Document produced by the builder.
        api_key (str, optional): Per-request store credential.

    Returns:
        UpsertResult: Id of the stored document and whether it was inserted.

    Raises:
        StoreWriteFailed: If any store call fails.
    """
    log_prefix = f"[Order: {key}]"
    try:
        existing = store.find_one(key, api_key=api_key)
        if existing is None:
            created = store.insert(document, api_key=api_key)
            document_id = document_id_of(created)
            log.info(f"{log_prefix} Neuer Datensatz angelegt ({document_id}).")
            return UpsertResult(documentId=document_id, created=True)

        document_id = document_id_of(existing)
        changes = merge_for_update(existing, document)
        store.update(document_id, changes, api_key=api_key)
        log.info(f"{log_prefix} Datensatz existiert bereits ({document_id}), aktualisiert statt neu angelegt.")
        return UpsertResult(documentId=document_id, created=False)
    except (StoreWriteFailed, ConfigurationError):
        raise
    except Exception as e:
        log.error(f"{log_prefix} Unerwarteter Fehler beim Speichern: {e}", exc_info=True)
        raise StoreWriteFailed()
