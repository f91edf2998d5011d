"""Resolution of the service key and endpoint.

Credentials live in an explicit :class:`CredentialStore` handed to every
component instead of process-wide environment variables. The store is
seeded from :class:`~docanalysis.utils.config.Settings` (and therefore from
the environment / ``.env``) only at the process boundary.
"""
import logging
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, field_validator

from docanalysis.utils.config import Settings
from docanalysis.utils.errors import InvalidEndpoint, MissingCredential

logger = logging.getLogger(__name__)


def normalize_endpoint(endpoint: str) -> str:
    """Validate an endpoint and return it with exactly one trailing slash."""
    value = (endpoint or "").strip()
    try:
        parts = urlsplit(value)
    except ValueError:
        raise InvalidEndpoint(endpoint)
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise InvalidEndpoint(endpoint)
    if parts.query or parts.fragment:
        raise InvalidEndpoint(endpoint)
    return value.rstrip("/") + "/"


class Credentials(BaseModel):
    key: str
    endpoint: str

    model_config = ConfigDict(frozen=True)

    @field_validator("key")
    def validate_key(cls, v):
        if not v or not v.strip():
            raise ValueError("key must not be empty")
        return v.strip()

    @field_validator("endpoint")
    def validate_endpoint(cls, v):
        return normalize_endpoint(v)

    def __repr__(self) -> str:
        return f"Credentials(endpoint={self.endpoint!r}, key='***')"

    __str__ = __repr__


class CredentialStore:
    """Mutable holder for the key/endpoint pair shared within one run."""

    def __init__(self, key: Optional[str] = None, endpoint: Optional[str] = None):
        self.key = key or None
        self.endpoint = endpoint or None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialStore":
        return cls(
            key=settings.document_intelligence_key,
            endpoint=settings.document_intelligence_endpoint,
        )

    def update(self, credentials: Credentials) -> None:
        self.key = credentials.key
        self.endpoint = credentials.endpoint

    def __repr__(self) -> str:
        return f"CredentialStore(endpoint={self.endpoint!r}, key={'***' if self.key else None})"


def resolve_credentials(
    key: Optional[str] = None,
    endpoint: Optional[str] = None,
    store: Optional[CredentialStore] = None,
) -> Credentials:
    """Explicit values win over the store; both sources empty is an error."""
    resolved_key = key or (store.key if store else None)
    resolved_endpoint = endpoint or (store.endpoint if store else None)

    if not resolved_key or not resolved_key.strip():
        raise MissingCredential("key")
    if not resolved_endpoint or not resolved_endpoint.strip():
        raise MissingCredential("endpoint")

    return Credentials(key=resolved_key, endpoint=normalize_endpoint(resolved_endpoint))


def init_credentials(
    store: CredentialStore,
    key: Optional[str] = None,
    endpoint: Optional[str] = None,
) -> Credentials:
    """Resolve credentials and write them back into ``store`` (last write wins)."""
    credentials = resolve_credentials(key, endpoint, store)
    store.update(credentials)
    logger.info(f"Credentials initialized for endpoint {credentials.endpoint}")
    return credentials
