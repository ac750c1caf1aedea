"""
Aveksa adapter: talks to the Aveksa (RSA Identity Governance) command API.

Every read maps onto one ``find<Structure>`` command issued as

    GET <base>/aveksa/command.submit?cmd=find<Structure>&format=json
        [&returnColumns=a,b][&<filter>]&token=<opaque>

The server answers with a JSON envelope holding the payload under the
command name next to the reserved ``Date``/``Status``/``ErrorCode``/``Total``
keys.  Failures are signalled through the status code and, for structure
and query problems, the reason phrase.
"""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Any
from urllib.parse import quote, urlencode, urlparse

import httpx

from aveksa_bridge.core.adapter import (
    BaseAdapter,
    BridgeRequest,
    CommandResult,
    Count,
    Record,
    RecordList,
)
from aveksa_bridge.core.auth import COMMAND_PATH, SessionManager
from aveksa_bridge.core.config import ConnectionProfile
from aveksa_bridge.core.errors import ConfigurationError, ErrorKind
from aveksa_bridge.core.properties import ConfigurableProperty, ConfigurablePropertyMap
from aveksa_bridge.core.query import NO_FILTER, QualificationParser

logger = logging.getLogger(__name__)

NAME = "Aveksa Bridge"
DISTRIBUTION = "aveksa-bridge"

RESERVED_KEYS = frozenset({"Date", "Status", "ErrorCode", "Total"})
JDBC_FAILURE = "Executing JDBC query failed"


def _load_version() -> str:
    try:
        return version(DISTRIBUTION)
    except PackageNotFoundError:
        logger.warning("Unable to load %s version metadata.", DISTRIBUTION)
        return "Unknown"


VERSION = _load_version()


class Properties:
    USERNAME = "Username"
    PASSWORD = "Password"
    URL = "Aveksa Url"


def build_properties() -> ConfigurablePropertyMap:
    return ConfigurablePropertyMap(
        ConfigurableProperty(Properties.USERNAME, required=True),
        ConfigurableProperty(Properties.PASSWORD, required=True, sensitive=True),
        ConfigurableProperty(
            Properties.URL,
            required=True,
            description="Absolute base URL of the Aveksa server.",
        ),
    )


def build_command_url(
    base_url: str,
    command: str,
    filter_fragment: str = NO_FILTER,
    return_columns: list[str] | None = None,
) -> str:
    """Command URL without the session token."""
    params = [("cmd", command), ("format", "json")]
    if return_columns:
        params.append(("returnColumns", ",".join(return_columns)))
    url = f"{base_url}{COMMAND_PATH}?{urlencode(params, quote_via=quote, safe=',')}"
    if filter_fragment != NO_FILTER:
        url = f"{url}&{filter_fragment}"
    return url


def with_token(url: str, token: str) -> str:
    """Append the token as the final raw segment; it is already ``token=...``."""
    return f"{url}&{token}" if token else url


def project(item: dict[str, Any], fields: list[str] | None) -> dict[str, Any]:
    if not fields:
        return dict(item)
    return {f: item.get(f) for f in fields}


class AveksaAdapter(BaseAdapter):
    """Adapter for the Aveksa command API."""

    system_name = "aveksa"

    def __init__(
        self,
        properties: ConfigurablePropertyMap | None = None,
        *,
        timeout: float = 60.0,
        verify_tls: bool = True,
    ) -> None:
        super().__init__(properties or build_properties())
        self._timeout = timeout
        self._verify_tls = verify_tls
        self._parser = QualificationParser()
        self._base_url: str | None = None
        self._session: SessionManager | None = None
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_profile(cls, profile: ConnectionProfile) -> "AveksaAdapter":
        adapter = cls(
            timeout=float(profile.options.get("timeout", 60.0)),
            verify_tls=bool(profile.options.get("verify_tls", True)),
        )
        adapter.set_properties(profile.properties)
        adapter.initialize()
        return adapter

    # -- setup ------------------------------------------------------------

    def initialize(self) -> None:
        self._properties.validate()
        url = self._properties.get_value(Properties.URL) or ""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.error("Rejected Aveksa Url %r", url)
            raise ConfigurationError(f"Invalid URL: '{url}' is a malformed URL.")

        self._base_url = url.rstrip("/")
        self._session = SessionManager(
            self._base_url,
            self._properties.get_value(Properties.USERNAME) or "",
            self._properties.get_value(Properties.PASSWORD) or "",
        )
        if not self._verify_tls:
            logger.warning(
                "TLS certificate verification is disabled for %s. "
                "Do not use this setting in production.",
                self._base_url,
            )

    def get_name(self) -> str:
        return NAME

    def get_version(self) -> str:
        return VERSION

    @property
    def session(self) -> SessionManager:
        if self._session is None:
            raise ConfigurationError("Adapter is not initialized; call initialize() first.")
        return self._session

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"Accept": "application/json"},
                timeout=self._timeout,
                verify=self._verify_tls,
            )
        return self._client

    # -- lifecycle --------------------------------------------------------

    async def health_check(self) -> CommandResult:
        client = await self._get_client()
        result = await self.session.refresh(client)
        if not result.success:
            return result
        return CommandResult(
            success=True,
            data={"url": self._base_url, "session": self.session.state.value},
            message="Logged in to Aveksa",
        )

    async def disconnect(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    # -- reads ------------------------------------------------------------

    async def count(self, request: BridgeRequest) -> Count:
        command, fragment = self._prepare(request)
        url = build_command_url(self._base_url, command, fragment)

        result = await self._execute(url, command, request.structure, fragment)
        if result.success:
            result = self._payload_list(result.data, command)
        result.raise_for_error()
        return Count(len(result.data))

    async def retrieve(self, request: BridgeRequest) -> Record:
        command, fragment = self._prepare(request)
        url = build_command_url(self._base_url, command, fragment, request.fields)

        result = await self._execute(url, command, request.structure, fragment)
        if result.success:
            result = self._single_record(result.data, request.fields)
        result.raise_for_error()
        return Record(result.data)

    async def search(self, request: BridgeRequest) -> RecordList:
        command, fragment = self._prepare(request)
        url = build_command_url(self._base_url, command, fragment, request.fields)

        result = await self._execute(url, command, request.structure, fragment)
        if result.success:
            result = self._payload_list(result.data, command, objects=True)
        result.raise_for_error()

        records: list[Record] = []
        fields = list(request.fields or [])
        for item in result.data:
            records.append(Record(project(item, request.fields)))
            if not request.fields:
                fields.extend(k for k in item if k not in fields)

        # Pagination is not supported; fixed values say so.
        metadata = {str(k): str(v) for k, v in request.metadata.items()}
        metadata.update({
            "pageSize": "0",
            "pageNumber": "1",
            "offset": "0",
            "size": str(len(records)),
            "count": str(len(records)),
        })
        return RecordList(fields=fields, records=records, metadata=metadata)

    # -- request helpers --------------------------------------------------

    def _prepare(self, request: BridgeRequest) -> tuple[str, str]:
        if self._base_url is None:
            raise ConfigurationError("Adapter is not initialized; call initialize() first.")
        fragment = self._parser.parse(request.query, request.parameters)
        return f"find{request.structure}", fragment

    async def _execute(
        self, url: str, command: str, structure: str, fragment: str
    ) -> CommandResult:
        """GET *url*, re-authenticating once on 401, and decode the envelope."""
        session = self.session
        client = await self._get_client()
        token = session.current_token()
        logger.debug("GET %s", url)

        try:
            resp = await client.get(with_token(url, token))
            if resp.status_code == 401:
                # The body has already been read by the client; nothing to drain.
                logger.info("Aveksa session rejected for %s; logging in", command)
                login = await session.refresh(client, stale_token=token)
                if not login.success:
                    return login
                resp = await client.get(with_token(url, login.data))
        except httpx.HTTPError as exc:
            logger.error("Request for %s failed: %s", command, exc)
            return CommandResult.fail(
                ErrorKind.UPSTREAM, f"Request to Aveksa failed: {exc}"
            )

        failure = self._classify(resp, command, structure, fragment)
        if failure is not None:
            if failure.error is ErrorKind.AUTH:
                session.invalidate()
            return failure

        try:
            envelope = resp.json()
        except ValueError:
            logger.error("Unparseable response body for %s", command)
            return CommandResult.fail(
                ErrorKind.UPSTREAM, f"Aveksa returned invalid JSON for {command}."
            )
        if not isinstance(envelope, dict):
            return CommandResult.fail(
                ErrorKind.UPSTREAM, f"Aveksa returned a non-object envelope for {command}."
            )
        return CommandResult.ok(envelope)

    @staticmethod
    def _classify(
        resp: httpx.Response, command: str, structure: str, fragment: str
    ) -> CommandResult | None:
        status = resp.status_code
        reason = resp.reason_phrase
        if resp.is_success:
            return None

        if status == 401:
            return CommandResult.fail(
                ErrorKind.AUTH, "Authentication failed after refreshing the Aveksa session."
            )
        if status == 404:
            if reason == command:
                return CommandResult.fail(
                    ErrorKind.STRUCTURE,
                    f"Invalid Structure: '{structure}' is not a valid structure "
                    f"because '{command}' is not a valid Aveksa information command.",
                )
            logger.error("Error Reason: %s %s", status, reason)
            return CommandResult.fail(
                ErrorKind.UPSTREAM, f"Aveksa returned 404 for {command}: {reason}"
            )
        if status == 412:
            return CommandResult.fail(ErrorKind.QUERY, reason)
        if JDBC_FAILURE in reason:
            logger.error("Error Reason: %s", reason)
            return CommandResult.fail(
                ErrorKind.QUERY,
                f"Invalid Query: The query string '{fragment}' "
                "appears to include invalid elements.",
            )

        logger.error("Error Reason: %s %s", status, reason)
        return CommandResult.fail(
            ErrorKind.UPSTREAM, f"An unexpected error was encountered ({status} {reason})."
        )

    @staticmethod
    def _payload_list(
        envelope: dict[str, Any], command: str, objects: bool = False
    ) -> CommandResult:
        items = envelope.get(command)
        if not isinstance(items, list):
            return CommandResult.fail(
                ErrorKind.UPSTREAM, f"Response envelope has no '{command}' list."
            )
        if objects and not all(isinstance(item, dict) for item in items):
            return CommandResult.fail(
                ErrorKind.UPSTREAM, f"Non-object entry in the '{command}' list."
            )
        return CommandResult.ok(items)

    @staticmethod
    def _single_record(
        envelope: dict[str, Any], fields: list[str] | None
    ) -> CommandResult:
        payload_keys = [k for k in envelope if k not in RESERVED_KEYS]
        if not payload_keys:
            return CommandResult.ok(None)
        if len(payload_keys) > 1:
            return CommandResult.fail(
                ErrorKind.INTEGRITY,
                "Multiple results matched an expected single match query",
            )

        item = envelope[payload_keys[0]]
        if not isinstance(item, dict):
            return CommandResult.fail(
                ErrorKind.UPSTREAM,
                f"Expected an object under '{payload_keys[0]}', got {type(item).__name__}.",
            )
        return CommandResult.ok(project(item, fields))
