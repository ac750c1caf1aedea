"""Bridge adapters for identity-governance systems."""

from aveksa_bridge.adapters.aveksa import AveksaAdapter

ADAPTER_REGISTRY: dict[str, type] = {
    "aveksa": AveksaAdapter,
}

__all__ = [
    "AveksaAdapter",
    "ADAPTER_REGISTRY",
]
