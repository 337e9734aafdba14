"""
main.py — FastAPI Entry Point for the Order Intake Service

This module provides the HTTP interface of the order intake function.

Responsibilities:
    • Accept purchase requests via POST and run the intake workflow
    • Answer GET with a liveness string, reject other verbs with 405
    • Hold the process-wide, lazily-initialized gateway and store clients
    • Provide system health information
"""

from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import Settings, load_settings
from .errors import IntakeError, MethodNotAllowed
from .gateway import PaymentGatewayClient
from .logging_config import get_logger, setup_logging
from .store import AppwriteDocumentStore
from .workflow import INTERNAL_ERROR_MESSAGE, error_result, process_order_intake

# Initialization
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Order Intake Service")

LIVENESS_MESSAGE = "Order intake function is live"
INTAKE_PATHS = ("/", "/orders")


# Shared collaborators: built on first use, then reused by warm instances
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_gateway() -> PaymentGatewayClient:
    return PaymentGatewayClient.from_settings(get_settings())


@lru_cache(maxsize=1)
def get_store() -> AppwriteDocumentStore:
    return AppwriteDocumentStore.from_settings(get_settings())


@app.exception_handler(IntakeError)
async def intake_error_handler(request: Request, exc: IntakeError):
    """Turns errors raised outside the workflow (e.g. missing configuration) into structured responses."""
    if exc.status_code >= 500:
        log.error(f"{exc.error_kind} bei {request.method} {request.url.path}: {exc.message}")
    result = error_result(exc)
    return JSONResponse(status_code=result.statusCode, content=result.body)


async def submit_order(
        request: Request,
        settings: Settings = Depends(get_settings),
        gateway: PaymentGatewayClient = Depends(get_gateway),
        store: AppwriteDocumentStore = Depends(get_store),
):
    """
    Receives a purchase request and runs the intake workflow.

    The body is read raw, since some clients double-encode it; decoding is
    the normalizer's job. The workflow runs on a worker thread that is awaited
    without cancellation, so a client disconnect does not abort an order whose
    gateway side may already exist.

    Request:
        Headers:
            x-appwrite-key (optional): Per-request store credential.
        Query:
            shippingPrimaryIndex (optional): Overrides the value in the body.

    Returns:
        JSONResponse: 201 on success, 202 if the record is not (yet) persisted,
        4xx/5xx with `success: false` otherwise.
    """
    try:
        raw_body = await request.body()
        result = await run_in_threadpool(
            process_order_intake,
            raw_body,
            gateway,
            store,
            settings,
            api_key=request.headers.get("x-appwrite-key"),
            primary_index=request.query_params.get("shippingPrimaryIndex"),
        )
    except Exception as e:
        log.critical(f"Kritischer Fehler bei der Annahme einer Bestellung: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "message": INTERNAL_ERROR_MESSAGE})

    return JSONResponse(status_code=result.statusCode, content=result.body)


def liveness():
    return PlainTextResponse(LIVENESS_MESSAGE)


def method_not_allowed(request: Request):
    raise MethodNotAllowed(request.method)


for path in INTAKE_PATHS:
    app.add_api_route(path, submit_order, methods=["POST"], status_code=201)
    app.add_api_route(path, liveness, methods=["GET"])
    app.add_api_route(path, method_not_allowed, methods=["PUT", "PATCH", "DELETE", "OPTIONS"], include_in_schema=False)


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}
