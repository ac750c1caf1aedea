"""
Base adapter interface consumed by the bridge host.

The host hands every adapter a :class:`BridgeRequest` and expects one of
the canonical return shapes (:class:`Count`, :class:`Record`,
:class:`RecordList`) back.  Adapters translate the request into the
vendor-specific protocol.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any

from aveksa_bridge.core.errors import ERROR_TYPES, ErrorKind
from aveksa_bridge.core.properties import ConfigurablePropertyMap


@dataclass
class BridgeRequest:
    """
    A single host query.

    Example (as JSON, the shape the CLI and MCP tools accept):
    {
        "structure": "User",
        "query": "name=<%= parameter[\\"Name\\"] %>",
        "parameters": {"Name": "Ada"},
        "fields": ["id", "name"]
    }
    """

    structure: str
    query: str = "*"
    parameters: dict[str, Any] = field(default_factory=dict)
    fields: list[str] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def field_string(self) -> str:
        return ",".join(self.fields) if self.fields else ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "BridgeRequest":
        return cls(
            structure=d["structure"],
            query=d.get("query") or "*",
            parameters=d.get("parameters") or {},
            fields=d.get("fields") or None,
            metadata=d.get("metadata") or {},
        )


@dataclass
class Count:
    value: int

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.value}


@dataclass
class Record:
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"record": self.data}


@dataclass
class RecordList:
    fields: list[str]
    records: list[Record]
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fields": self.fields,
            "records": [r.data for r in self.records],
            "metadata": self.metadata,
        }


@dataclass
class CommandResult:
    """Tagged result returned by every HTTP helper: a payload or an error kind."""

    success: bool
    data: Any = None
    error: ErrorKind | None = None
    message: str = ""

    @classmethod
    def ok(cls, data: Any) -> "CommandResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: ErrorKind, message: str) -> "CommandResult":
        return cls(success=False, error=error, message=message)

    def raise_for_error(self) -> None:
        if self.success:
            return
        raise ERROR_TYPES[self.error or ErrorKind.UPSTREAM](self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error.value if self.error else None,
            "message": self.message,
        }


class BaseAdapter(abc.ABC):
    """Abstract base class for all bridge adapters."""

    system_name: str = "generic"

    def __init__(self, properties: ConfigurablePropertyMap) -> None:
        self._properties = properties

    # -- setup ------------------------------------------------------------

    @abc.abstractmethod
    def initialize(self) -> None:
        """Validate the configured properties and prepare for requests."""

    @abc.abstractmethod
    def get_name(self) -> str:
        """Display name reported to the host."""

    @abc.abstractmethod
    def get_version(self) -> str:
        """Adapter version reported to the host."""

    def set_properties(self, values: dict[str, str]) -> None:
        self._properties.set_values(values)

    def get_properties(self) -> ConfigurablePropertyMap:
        return self._properties

    # -- lifecycle --------------------------------------------------------

    @abc.abstractmethod
    async def health_check(self) -> CommandResult:
        """Lightweight connectivity & auth validity check."""

    @abc.abstractmethod
    async def disconnect(self) -> None:
        """Release the HTTP transport."""

    # -- reads ------------------------------------------------------------

    @abc.abstractmethod
    async def count(self, request: BridgeRequest) -> Count:
        """Number of records of *request.structure* matching the query."""

    @abc.abstractmethod
    async def retrieve(self, request: BridgeRequest) -> Record:
        """The single record matching the query, or an empty record."""

    @abc.abstractmethod
    async def search(self, request: BridgeRequest) -> RecordList:
        """All records matching the query."""
