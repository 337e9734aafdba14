"""
config.py — Runtime Configuration for the Order Intake Service

Settings are read once from environment variables into an immutable
`Settings` object. Missing credentials or endpoints are reported together in a
single `ConfigurationError` so the function fails closed before any gateway or
store call is made.

Environment variables (first name wins, later names are fallbacks):
    RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET         Gateway credentials
    RAZORPAY_BASE_URL                            Gateway base URL
    APPWRITE_FUNCTION_ENDPOINT / APPWRITE_ENDPOINT
    APPWRITE_FUNCTION_PROJECT_ID / APPWRITE_PROJECT_ID
    APPWRITE_DATABASE_ID                         Defaults to "default"
    APPWRITE_ORDERS_COLLECTION_ID / ORDERS_COLLECTION_ID
    APPWRITE_API_KEY                             Optional, else per-request header
    GATEWAY_TIMEOUT_SECONDS, PLATFORM_DEADLINE_SECONDS
    ITEMS_SUMMARY_MAX_LENGTH, SHORT_STRING_MAX_LENGTH, FULL_BACKUP_MAX_BYTES
    REQUIRE_SHIPPING, REQUIRE_VARIANT, ACCEPT_LEGACY_ALIASES, AWAIT_COD_WRITE
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

from .errors import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """
    Immutable service configuration shared by all requests.

    Attributes:
        gateway_key_id (str): Payment gateway API key id.
        gateway_key_secret (str): Payment gateway API key secret.
        gateway_base_url (str): Base URL of the gateway REST API.
        store_endpoint (str): Document store endpoint, e.g. https://cloud.appwrite.io/v1.
        store_project_id (str): Document store project.
        store_database_id (str): Database holding the orders collection.
        orders_collection_id (str): Orders collection.
        store_api_key (str, optional): Server key; if absent a per-request key is required.
        gateway_timeout_seconds (float): Hard bound for the remote order call.
        platform_deadline_seconds (float): Request deadline of the hosting platform.
        summary_max_length (int): Per-field limit of the line item summary attribute.
        short_string_max_length (int): Limit for flattened short string attributes.
        full_backup_max_bytes (int): Size above which full JSON backups are omitted.
    """
    model_config = ConfigDict(frozen=True)

    gateway_key_id: str
    gateway_key_secret: str
    gateway_base_url: str = "https://api.razorpay.com"
    store_endpoint: str
    store_project_id: str
    store_database_id: str = "default"
    orders_collection_id: str
    store_api_key: Optional[str] = None

    gateway_timeout_seconds: float = 10.0
    platform_deadline_seconds: float = 15.0

    summary_max_length: int = 999
    short_string_max_length: int = 490
    full_backup_max_bytes: int = 10 * 1024

    require_shipping: bool = False
    require_variant: bool = False
    accept_legacy_aliases: bool = True
    await_cod_write: bool = True


def _first(environ: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return None


def _flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _number(environ: Mapping[str, str], name: str, default, cast):
    value = environ.get(name)
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except ValueError:
        raise ConfigurationError(f"Invalid value for {name}")


def load_settings(environ: Mapping[str, str] = None) -> Settings:
    """
    Builds the `Settings` object from environment variables.

    Args:
        environ (Mapping[str, str], optional): Source mapping, defaults to `os.environ`.

    Returns:
        Settings: The validated, frozen configuration.

    Raises:
        ConfigurationError: If required variables are missing or the gateway
            timeout does not fit inside the platform deadline. Only variable
            names are reported, never their values.
    """
    if environ is None:
        environ = os.environ

    required = {
        "gateway_key_id": ("RAZORPAY_KEY_ID",),
        "gateway_key_secret": ("RAZORPAY_KEY_SECRET",),
        "store_endpoint": ("APPWRITE_FUNCTION_ENDPOINT", "APPWRITE_ENDPOINT"),
        "store_project_id": ("APPWRITE_FUNCTION_PROJECT_ID", "APPWRITE_PROJECT_ID"),
        "orders_collection_id": ("APPWRITE_ORDERS_COLLECTION_ID", "ORDERS_COLLECTION_ID"),
    }
    values = {}
    missing = []
    for field, names in required.items():
        value = _first(environ, *names)
        if value is None:
            missing.append("/".join(names))
        else:
            values[field] = value

    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    settings = Settings(
        **values,
        gateway_base_url=_first(environ, "RAZORPAY_BASE_URL") or "https://api.razorpay.com",
        store_database_id=_first(environ, "APPWRITE_DATABASE_ID") or "default",
        store_api_key=_first(environ, "APPWRITE_API_KEY"),
        gateway_timeout_seconds=_number(environ, "GATEWAY_TIMEOUT_SECONDS", 10.0, float),
        platform_deadline_seconds=_number(environ, "PLATFORM_DEADLINE_SECONDS", 15.0, float),
        summary_max_length=_number(environ, "ITEMS_SUMMARY_MAX_LENGTH", 999, int),
        short_string_max_length=_number(environ, "SHORT_STRING_MAX_LENGTH", 490, int),
        full_backup_max_bytes=_number(environ, "FULL_BACKUP_MAX_BYTES", 10 * 1024, int),
        require_shipping=_flag(environ, "REQUIRE_SHIPPING", False),
        require_variant=_flag(environ, "REQUIRE_VARIANT", False),
        accept_legacy_aliases=_flag(environ, "ACCEPT_LEGACY_ALIASES", True),
        await_cod_write=_flag(environ, "AWAIT_COD_WRITE", True),
    )

    if settings.gateway_timeout_seconds >= settings.platform_deadline_seconds:
        raise ConfigurationError(
            "GATEWAY_TIMEOUT_SECONDS must be shorter than PLATFORM_DEADLINE_SECONDS"
        )
    return settings
