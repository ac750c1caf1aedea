"""Configurable properties registered by an adapter with the bridge host."""

from __future__ import annotations

from dataclasses import dataclass

from aveksa_bridge.core.errors import ConfigurationError

MASK = "********"


@dataclass
class ConfigurableProperty:
    name: str
    required: bool = False
    sensitive: bool = False
    description: str = ""
    value: str | None = None


class ConfigurablePropertyMap:
    """Ordered collection of the properties an adapter understands."""

    def __init__(self, *properties: ConfigurableProperty) -> None:
        self._properties: dict[str, ConfigurableProperty] = {
            p.name: p for p in properties
        }

    def __contains__(self, name: object) -> bool:
        return name in self._properties

    def __iter__(self):
        return iter(self._properties.values())

    def names(self) -> list[str]:
        return list(self._properties)

    def set_values(self, values: dict[str, str]) -> None:
        unknown = [k for k in values if k not in self]
        if unknown:
            raise ConfigurationError(
                f"Unknown properties {unknown!r}. Recognised: {self.names()}"
            )
        for name, value in values.items():
            self._properties[name].value = value

    def get_value(self, name: str) -> str | None:
        return self._properties[name].value

    def validate(self) -> None:
        """Raise ConfigurationError if a required property has no value."""
        missing = [p.name for p in self if p.required and not p.value]
        if missing:
            raise ConfigurationError(f"Missing required properties: {missing!r}")

    def to_dict(self, mask_sensitive: bool = True) -> dict[str, str | None]:
        return {
            p.name: MASK if (mask_sensitive and p.sensitive and p.value) else p.value
            for p in self
        }
