"""
Configuration management for Aveksa Bridge.

Loads connection profiles from a YAML (or JSON) config file, with
credential overrides from environment variables.  Each profile carries the
adapter's host properties (``Username``, ``Password``, ``Aveksa Url``) and
transport options.

Default config location: ~/.aveksa-bridge/config.yaml
Override with AVEKSA_BRIDGE_CONFIG env var.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml


DEFAULT_CONFIG_DIR = Path.home() / ".aveksa-bridge"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_CONFIG_PATH = "AVEKSA_BRIDGE_CONFIG"
ENV_PREFIX = "AB_"

# env suffix -> host property name
ENV_PROPERTY_MAP = {
    "USERNAME": "Username",
    "PASSWORD": "Password",
    "URL": "Aveksa Url",
}


def _load_yaml(path: Path) -> dict[str, Any]:
    """JSON is a subset of YAML, so both file types go through safe_load."""
    return yaml.safe_load(path.read_text()) or {}


def _env_overrides() -> dict[str, str]:
    """Collect AB_* environment variables."""
    return {
        k[len(ENV_PREFIX) :]: v
        for k, v in os.environ.items()
        if k.startswith(ENV_PREFIX)
    }


class ConnectionProfile:
    """A single Aveksa server connection definition."""

    def __init__(self, name: str, raw: dict[str, Any]) -> None:
        self.name = name
        self.system: str = raw.get("system", "aveksa")
        self.properties: dict[str, str] = {
            k: str(v) for k, v in (raw.get("properties") or {}).items()
        }
        self.options: dict[str, Any] = raw.get("options") or {}

    @property
    def base_url(self) -> str:
        return self.properties.get("Aveksa Url", "")


class Config:
    """Top-level configuration container."""

    def __init__(self, raw: dict[str, Any] | None = None) -> None:
        self._raw = raw or {}
        self.profiles: dict[str, ConnectionProfile] = {}
        self._parse()

    def _parse(self) -> None:
        for name, defn in (self._raw.get("connections") or {}).items():
            self.profiles[name] = ConnectionProfile(name, defn)

    def get_profile(self, name: str) -> ConnectionProfile:
        if name not in self.profiles:
            raise KeyError(
                f"Connection profile {name!r} not found. "
                f"Available: {list(self.profiles.keys())}"
            )
        return self.profiles[name]

    def list_profiles(self) -> list[dict[str, str]]:
        return [
            {"name": p.name, "system": p.system, "url": p.base_url}
            for p in self.profiles.values()
        ]

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Config":
        """
        Load configuration from file, with env-var overrides applied.

        Resolution order:
        1. Explicit *path* argument
        2. AVEKSA_BRIDGE_CONFIG env var
        3. ~/.aveksa-bridge/config.yaml
        """
        if path is None:
            path = os.environ.get(ENV_CONFIG_PATH, str(DEFAULT_CONFIG_FILE))
        path = Path(path).expanduser()

        if path.exists():
            raw = _load_yaml(path)
        else:
            raw = {}

        # Apply AB_<PROFILE>_* env-var overrides for credentials
        env = _env_overrides()
        for profile_name, profile in (raw.get("connections") or {}).items():
            prefix = profile_name.upper()
            properties = profile.setdefault("properties", {})
            for suffix, property_name in ENV_PROPERTY_MAP.items():
                env_key = f"{prefix}_{suffix}"
                if env_key in env:
                    properties[property_name] = env[env_key]

        return cls(raw)

    @staticmethod
    def generate_template() -> str:
        """Return a YAML template users can fill in."""
        return """\
# Aveksa Bridge configuration
# Place this file at ~/.aveksa-bridge/config.yaml
# or set AVEKSA_BRIDGE_CONFIG=/path/to/config.yaml
#
# Credentials can also be supplied via environment variables:
#   AB_<PROFILE_NAME>_USERNAME, AB_<PROFILE_NAME>_PASSWORD, AB_<PROFILE_NAME>_URL

connections:
  my_aveksa:
    system: aveksa
    properties:
      Username: YOUR_USERNAME
      Password: YOUR_PASSWORD
      Aveksa Url: https://aveksa.example.com
    options:
      timeout: 60
      # Development only: disables certificate verification.
      verify_tls: true
"""
