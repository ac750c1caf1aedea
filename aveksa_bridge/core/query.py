"""
Qualification parser: turns a host query template into the filter
fragment appended to a vendor command URL.

A template is a ``&``-separated list of ``key=value`` pairs.  Values (and,
rarely, keys) may reference host parameters by name:

    name=<%= parameter["Name"] %>&department=<%= parameter["Dept"] %>

The literal ``*`` (or an empty template) means "no filter".  The parser
does substitution and escaping only; the vendor API has no richer filter
grammar to evaluate.
"""

from __future__ import annotations

import re
from typing import Any, Mapping
from urllib.parse import quote, urlencode

from aveksa_bridge.core.errors import ConfigurationError

NO_FILTER = "*"

PLACEHOLDER = re.compile(r"<%=\s*parameter\[\s*\"([^\"]*)\"\s*\]\s*%>")
_DELIMITERS = ("<%", "%>")


class QualificationParser:
    """Pure template substitution: equal inputs give byte-identical output."""

    def parse(self, query: str | None, parameters: Mapping[str, Any] | None) -> str:
        if query is None or query.strip() in ("", NO_FILTER):
            return NO_FILTER
        parameters = parameters or {}

        pairs: list[tuple[str, str]] = []
        for segment in query.strip().split("&"):
            if not segment:
                continue
            key, sep, value = segment.partition("=")
            key = self._substitute(key, parameters).strip()
            if not sep or not key:
                raise ConfigurationError(
                    f"Malformed query segment {segment!r}: expected key=value."
                )
            pairs.append((key, self._substitute(value, parameters)))

        if not pairs:
            raise ConfigurationError(f"Malformed query {query!r}: no key=value pairs.")
        return urlencode(pairs, quote_via=quote, safe="")

    @staticmethod
    def _substitute(text: str, parameters: Mapping[str, Any]) -> str:
        def replace(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in parameters:
                raise ConfigurationError(
                    f"Unresolved parameter {name!r} in query; "
                    f"supplied parameters: {sorted(parameters)}"
                )
            value = parameters[name]
            return "" if value is None else str(value)

        if any(d in PLACEHOLDER.sub("", text) for d in _DELIMITERS):
            raise ConfigurationError(f"Malformed placeholder in {text!r}.")
        return PLACEHOLDER.sub(replace, text)
