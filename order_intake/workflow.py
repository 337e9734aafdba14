"""
workflow.py — Order Intake Workflow

This module contains the intake pipeline for a single request. Each request is
handled independently and strictly in sequence:

1. Check configuration (fail closed)
2. Normalize and validate the payload (no side effects)
3. Create the gateway order, or synthesize a cash-on-delivery key
4. Build the storage document
5. Upsert the order record by natural key
6. Shape the response

Error propagation:
    - Malformed or invalid payloads are rejected before any external call.
    - Gateway errors abort before any store write; the caller may retry.
    - Store errors after a successful gateway order do NOT fail the request.
      The caller gets the gateway order with `persisted: false`, so it is not
      tempted to resubmit and cause a second charge.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Optional

from .builder import build_document
from .config import Settings
from .errors import ConfigurationError, IntakeError, StoreWriteFailed, ValidationError
from .gateway import create_remote_order
from .models import BuildResult, IntakeResult, OrderRequest, RemoteOrder, UpsertResult
from .normalizer import normalize_order_request
from .upsert import DocumentStore, upsert_order

log = logging.getLogger(__name__)

# Nur für Nachnahme-Schreibvorgänge ohne Warten (AWAIT_COD_WRITE=false)
_write_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="cod-write")

INTERNAL_ERROR_MESSAGE = "Internal server error while processing order."


def error_result(error: IntakeError) -> IntakeResult:
    """Shapes an intake error into a failure response. Only the safe message is exposed."""
    body = {"success": False, "message": error.message, "errorKind": error.error_kind}
    if isinstance(error, ValidationError) and error.fields:
        body["fields"] = error.fields
    if error.retryable:
        body["retryable"] = True
    return IntakeResult(statusCode=error.status_code, body=body)


def _success_body(request: OrderRequest, remote: RemoteOrder, build: Optional[BuildResult]) -> dict:
    body = {
        "success": True,
        "paymentMethod": request.paymentMethod.value,
        "orderId": remote.gatewayOrderId,
        "amount": remote.amountMinorUnits,
        "currency": remote.currency,
        "persisted": False,
    }
    if not remote.local:
        body["gatewayOrder"] = {
            "orderId": remote.gatewayOrderId,
            "amount": remote.amountMinorUnits,
            "currency": remote.currency,
            "receipt": remote.receiptToken,
        }
    if build is not None:
        warnings = []
        if build.summaryTruncated:
            warnings.append("line_items_summary_truncated")
        if build.lineItemsFullOmitted:
            warnings.append("line_items_full_omitted")
        if build.shippingFullOmitted:
            warnings.append("shipping_addresses_full_omitted")
        if warnings:
            body["warnings"] = warnings
    return body


def _deferred_write(store: DocumentStore, key: str, document: dict, api_key: Optional[str]) -> Optional[UpsertResult]:
    try:
        return upsert_order(store, key, document, api_key=api_key)
    except IntakeError as e:
        log.critical(f"[Order: {key}] Verzögertes Speichern der Nachnahme-Order fehlgeschlagen: {e.error_kind}. "
                     f"BENÖTIGT MANUELLE AKTION!")
        return None


def process_order_intake(
        raw_body,
        gateway,
        store: DocumentStore,
        settings: Settings,
        api_key: str = None,
        primary_index: int = None,
        now: datetime = None,
) -> IntakeResult:
    """
    Executes the complete intake workflow for one request.

    Args:
        raw_body: Request body as received (bytes, str or dict).
        gateway (PaymentGatewayClient): Shared gateway client.
        store (DocumentStore): Shared document store client.
        settings (Settings): Service configuration.
        api_key (str, optional): Per-request store credential.
        primary_index (int, optional): Primary shipping index from the caller.
        now (datetime, optional): Creation timestamp for the record.

    Returns:
        IntakeResult: HTTP status and structured JSON body. This function does
        not raise for expected failures; every outcome is a response.
    """
    if not (api_key or settings.store_api_key):
        log.error("Kein API-Key für den Document Store konfiguriert. Anfrage abgelehnt.")
        return error_result(ConfigurationError("Missing required configuration: APPWRITE_API_KEY or x-appwrite-key"))

    # --- 1. Normalisierung & Validierung ---
    try:
        request = normalize_order_request(
            raw_body,
            primary_index=primary_index,
            require_shipping=settings.require_shipping,
            require_variant=settings.require_variant,
            accept_legacy_aliases=settings.accept_legacy_aliases,
        )
    except IntakeError as e:
        log.warning(f"Bestellung abgelehnt ({e.error_kind}): {e.message}")
        return error_result(e)

    log.info(f"[Customer: {request.customerId}] Bestellung validiert ({request.paymentMethod.value}, "
             f"{len(request.lineItems)} Artikel).")

    # --- 2. Gateway-Order bzw. Nachnahme-Schlüssel ---
    try:
        remote = create_remote_order(request, gateway)
    except IntakeError as e:
        log.error(f"[Customer: {request.customerId}] Gateway-Order fehlgeschlagen ({e.error_kind}). Nichts gespeichert.")
        return error_result(e)
    except Exception as e:
        log.critical(f"[Customer: {request.customerId}] Unbekannter Fehler bei der Order-Erstellung: {e}", exc_info=True)
        return error_result(IntakeError(INTERNAL_ERROR_MESSAGE))

    log_prefix = f"[Order: {remote.gatewayOrderId}]"
    build = None

    # --- 3. + 4. Dokument bauen und speichern ---
    try:
        build = build_document(
            request,
            remote,
            summary_max_length=settings.summary_max_length,
            short_string_max_length=settings.short_string_max_length,
            full_backup_max_bytes=settings.full_backup_max_bytes,
            now=now,
        )

        if remote.local and not settings.await_cod_write:
            _write_executor.submit(_deferred_write, store, remote.gatewayOrderId, build.document, api_key)
            log.info(f"{log_prefix} Nachnahme-Order wird im Hintergrund gespeichert.")
            body = _success_body(request, remote, build)
            body["writePending"] = True
            return IntakeResult(statusCode=202, body=body)

        upsert = upsert_order(store, remote.gatewayOrderId, build.document, api_key=api_key)

    except Exception as e:
        if isinstance(e, IntakeError):
            error = e
        else:
            log.critical(f"{log_prefix} Unbekannter Fehler nach der Order-Erstellung: {e}", exc_info=True)
            error = StoreWriteFailed()

        if remote.local:
            # Kein Geld bewegt: der Aufrufer darf einfach erneut senden
            log.error(f"{log_prefix} Nachnahme-Order nicht gespeichert ({error.error_kind}).")
            return error_result(error)

        log.critical(f"{log_prefix} KRITISCH: Gateway-Order existiert, Datensatz aber nicht gespeichert "
                     f"({error.error_kind}). Abgleich erforderlich!")
        body = _success_body(request, remote, build)
        body["storeError"] = {"errorKind": error.error_kind, "message": error.message}
        return IntakeResult(statusCode=202, body=body)

    body = _success_body(request, remote, build)
    body["persisted"] = True
    body["documentId"] = upsert.documentId
    body["duplicate"] = not upsert.created
    log.info(f"{log_prefix} Verarbeitung erfolgreich abgeschlossen.")
    return IntakeResult(statusCode=201, body=body)
