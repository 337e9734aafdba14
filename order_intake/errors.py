"""
errors.py — Error Taxonomy for Order Intake

Every failure the intake workflow can report is one of the classes below.
Each carries the HTTP-equivalent status code, a stable `error_kind` that is
returned to the caller, and a caller-safe message. Upstream exception details
(credentials, raw responses) are logged, never placed in `message`.
"""


class IntakeError(Exception):
    """Base class for all errors that are turned into a structured response."""
    error_kind = "InternalError"
    status_code = 500
    retryable = False
    default_message = "Internal server error while processing order."

    def __init__(self, message: str = None, status_code: int = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class MalformedPayload(IntakeError):
    """No JSON object could be extracted from the request body."""
    error_kind = "MalformedPayload"
    status_code = 400
    default_message = "Request body must be a JSON object."


class ValidationError(IntakeError):
    """The payload was parsed but violates the intake contract."""
    error_kind = "ValidationError"
    status_code = 400
    default_message = "Invalid order request."

    def __init__(self, message: str = None, fields: list = None):
        super().__init__(message)
        self.fields = fields or []


class GatewayUnavailable(IntakeError):
    """
    The payment gateway timed out or failed. No order record was written.

    Timeouts and transport errors report 503, error responses from the
    gateway report 502.
    """
    error_kind = "GatewayUnavailable"
    status_code = 503
    retryable = True
    default_message = "Payment gateway unavailable, please retry."


class StoreWriteFailed(IntakeError):
    """The document store rejected or failed a lookup/insert/update."""
    error_kind = "StoreWriteFailed"
    status_code = 500
    default_message = "Order could not be saved."


class ConfigurationError(IntakeError):
    """Credentials or endpoints are missing. Nothing is attempted."""
    error_kind = "ConfigurationError"
    status_code = 500
    default_message = "Server misconfiguration."


class MethodNotAllowed(IntakeError):
    error_kind = "MethodNotAllowed"
    status_code = 405

    def __init__(self, method: str):
        super().__init__(f"Method {method} not allowed")
