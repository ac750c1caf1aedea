"""
Error taxonomy surfaced to the bridge host.

Every failure reaches the host as a :class:`BridgeError`; the subclasses
let callers (and tests) tell the cause apart without parsing messages.
"""

from __future__ import annotations

from enum import Enum


class BridgeError(Exception):
    """Base class for all adapter errors."""


class ConfigurationError(BridgeError):
    """Malformed URL, missing property, or unusable query template."""


class AuthError(BridgeError):
    """Login failed, or the server still answered 401 after a refresh."""


class StructureError(BridgeError):
    """The server does not know the ``find<Structure>`` command."""


class QueryError(BridgeError):
    """The server rejected the filter fragment."""


class UpstreamError(BridgeError):
    """Unexpected status, transport failure, or unreadable response body."""


class IntegrityError(UpstreamError):
    """A single-record retrieve matched more than one record."""


class ErrorKind(Enum):
    CONFIGURATION = "configuration"
    AUTH = "auth"
    STRUCTURE = "structure"
    QUERY = "query"
    UPSTREAM = "upstream"
    INTEGRITY = "integrity"


ERROR_TYPES: dict[ErrorKind, type[BridgeError]] = {
    ErrorKind.CONFIGURATION: ConfigurationError,
    ErrorKind.AUTH: AuthError,
    ErrorKind.STRUCTURE: StructureError,
    ErrorKind.QUERY: QueryError,
    ErrorKind.UPSTREAM: UpstreamError,
    ErrorKind.INTEGRITY: IntegrityError,
}
