"""Request/reply protocol for the external database bridge.

The bridge is a host-provided channel that forwards queries to live database
servers using credentials it stores itself. Every request is a JSON envelope
with a ``type`` and a ``requestId``; every reply is a JSON object carrying an
``ok`` flag. This module owns both sides of that contract:

- ``BridgeTransport``: anything that can send one serialized envelope and
  return the decoded reply (``HttpBridgeTransport`` for an HTTP endpoint)
- ``RemoteBridge``: builds envelopes, normalizes replies into ``QueryResult``
  and never lets a transport failure escape as an exception

Example:
    bridge = RemoteBridge(HttpBridgeTransport("http://127.0.0.1:8765/bridge"))
    credentials = await bridge.fetch_saved_credentials()
    result = await bridge.execute_query(credentials[0], "SELECT 1")
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidatorFunctionWrapHandler, field_validator

from .dialects import Dialect
from .exceptions import BridgeReplyError, BridgeUnavailableError
from .models import QueryResult

logger = logging.getLogger(__name__)

EXECUTE_REMOTE_QUERY = "EXECUTE_REMOTE_QUERY"
GET_SAVED_CREDENTIALS = "GET_SAVED_CREDENTIALS"
DETECT_ORIGIN = "MUULORIGIN"

BRIDGE_NOT_DETECTED = "Remote bridge not detected."
UNKNOWN_REMOTE_ERROR = "Unknown remote error"
BRIDGE_COMMUNICATION_FAILED = "Bridge communication failed"


def new_request_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


# ============================================================================
# Wire models
# ============================================================================


class CredentialEntry(BaseModel):
    """A saved credential as listed by the bridge.

    Only ``id`` is required. Fields the bridge adds beyond the ones below are
    preserved untouched.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(min_length=1)
    connection_name: str = Field(default="", alias="connectionName")
    db_type: str | None = Field(default=None, alias="dbType")
    host: str | None = None
    user: str | None = None

    @property
    def dialect(self) -> Dialect:
        return Dialect.resolve(self.db_type)

    @property
    def display_name(self) -> str:
        return self.connection_name or self.id


class BridgeReply(BaseModel):
    """Reply to an ``EXECUTE_REMOTE_QUERY`` request."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    ok: bool = False
    columns: list[Any] | None = None
    rows: list[Any] | None = None
    row_count: int | None = Field(default=None, alias="rowCount")
    execution_time_ms: float | None = Field(default=None, alias="executionTimeMs")
    error: str | None = None
    raw_json: Any = Field(default=None, alias="rawJson")

    @field_validator("row_count", "execution_time_ms", mode="wrap")
    @classmethod
    def _unreadable_count_is_absent(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
        # Counters are advisory; a bad value falls back to the row-derived default
        try:
            return handler(value)
        except ValidationError:
            logger.debug(f"Ignoring unreadable bridge counter: {value!r}")
            return None


def normalize_reply(reply: BridgeReply) -> QueryResult:
    """Convert a successful reply into a tabular result.

    Bridges answer either with ``columns`` plus positional ``rows`` or with a
    bare list of row objects. In the second case the column list is taken
    from the first object's keys and every row is re-read by key.
    """
    columns = [str(column) for column in reply.columns or []]
    rows: list[Any] = list(reply.rows or [])

    if rows and isinstance(rows[0], dict):
        if not columns:
            columns = list(rows[0].keys())
        rows = [[row.get(column) if isinstance(row, dict) else None for column in columns] for row in rows]
    else:
        rows = [list(row) if isinstance(row, (list, tuple)) else [row] for row in rows]

    return QueryResult(
        columns=columns,
        rows=rows,
        row_count=reply.row_count if reply.row_count is not None else len(rows),
        execution_time_ms=reply.execution_time_ms or 0,
        raw_json=reply.raw_json,
    )


# ============================================================================
# Transports
# ============================================================================


@runtime_checkable
class BridgeTransport(Protocol):
    """One-shot message channel to the bridge."""

    async def send(self, payload: str) -> Any:
        """Send a serialized envelope and return the decoded reply."""
        ...


class HttpBridgeTransport:
    """Bridge transport that POSTs envelopes to an HTTP endpoint.

    Attributes:
        url: Endpoint receiving the JSON envelope
        timeout: Seconds to wait for a reply; None waits indefinitely
        headers: Extra request headers
    """

    def __init__(
        self,
        url: str,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}

    async def send(self, payload: str) -> Any:
        """POST the envelope and decode the JSON body.

        Raises:
            httpx.HTTPError: Network failure, timeout or non-2xx status
            BridgeReplyError: If the body is not valid JSON
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, content=payload, headers=self.headers)
            response.raise_for_status()
            try:
                return response.json()
            except json.JSONDecodeError as e:
                raise BridgeReplyError(f"Bridge returned invalid JSON from {self.url}: {e}") from e


# ============================================================================
# Bridge client
# ============================================================================


class RemoteBridge:
    """Client side of the bridge protocol.

    A bridge constructed without a transport is "absent": queries return an
    error result and credential discovery returns an empty list.
    """

    def __init__(self, transport: BridgeTransport | None = None) -> None:
        self.transport = transport

    @property
    def available(self) -> bool:
        return self.transport is not None

    async def send(self, message: dict[str, Any]) -> Any:
        """Serialize one envelope and await its reply.

        Raises:
            BridgeUnavailableError: If no transport is configured
        """
        if self.transport is None:
            raise BridgeUnavailableError(BRIDGE_NOT_DETECTED)
        payload = json.dumps(message, default=str)
        logger.debug(f"Bridge request {message.get('type')} ({message.get('requestId', '-')})")
        return await self.transport.send(payload)

    async def execute_query(
        self,
        credential: CredentialEntry,
        sql: str,
        request_id: str | None = None,
    ) -> QueryResult:
        """Run SQL through the bridge using a saved credential.

        Never raises for transport or reply problems; those come back as a
        result with ``error`` set and no rows.
        """
        if not self.available:
            logger.warning(f"Bridge not detected, cannot query credential {credential.id}")
            return QueryResult.failure(BRIDGE_NOT_DETECTED)

        message = {
            "type": EXECUTE_REMOTE_QUERY,
            "credentialId": credential.id,
            "sql": sql,
            "requestId": request_id or new_request_id("query"),
        }
        try:
            raw = await self.send(message)
        except Exception as e:
            logger.error(f"Bridge communication failed for credential {credential.id}: {e}")
            return QueryResult.failure(str(e) or BRIDGE_COMMUNICATION_FAILED)

        if not isinstance(raw, dict):
            logger.error(f"Unexpected bridge reply type: {type(raw).__name__}")
            return QueryResult.failure(UNKNOWN_REMOTE_ERROR)

        try:
            reply = BridgeReply.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Malformed bridge reply for {message['requestId']}: {e}")
            return QueryResult.failure(f"Malformed bridge reply: {e.error_count()} invalid field(s)")

        if not reply.ok:
            logger.warning(f"Remote query failed for credential {credential.id}: {reply.error}")
            return QueryResult.failure(reply.error or UNKNOWN_REMOTE_ERROR)

        result = normalize_reply(reply)
        logger.debug(
            f"Remote query {message['requestId']}: {result.row_count} rows "
            f"in {result.execution_time_ms}ms"
        )
        return result

    async def fetch_saved_credentials(self) -> list[CredentialEntry]:
        """List the credentials stored by the bridge.

        Entries are read from ``entries`` at the reply root or under
        ``data.entries``. Any failure yields an empty list; individual entries
        that fail validation are skipped.
        """
        if not self.available:
            logger.warning("Bridge not detected, cannot fetch credentials")
            return []

        try:
            raw = await self.send({"type": GET_SAVED_CREDENTIALS, "requestId": new_request_id("list")})
        except Exception as e:
            logger.error(f"Error fetching saved credentials: {e}")
            return []

        if not isinstance(raw, dict) or raw.get("ok") is not True:
            logger.error(f"Failed to fetch credentials, reply: {raw!r}")
            return []

        entries = raw.get("entries")
        if entries is None and isinstance(raw.get("data"), dict):
            entries = raw["data"].get("entries")
        if not isinstance(entries, list):
            logger.warning("Credential reply has no 'entries' list")
            return []

        credentials = []
        for entry in entries:
            try:
                credentials.append(CredentialEntry.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping invalid credential entry: {e.error_count()} error(s)")
        logger.debug(f"Fetched {len(credentials)} saved credentials")
        return credentials

    async def detect(self, href: str) -> bool:
        """Handshake with the bridge; True only for an affirmative reply."""
        if not self.available:
            return False
        message = {"type": DETECT_ORIGIN, "href": href, "ts": int(time.time() * 1000)}
        try:
            raw = await self.send(message)
        except Exception as e:
            logger.error(f"Bridge detection failed: {e}")
            return False
        detected = isinstance(raw, dict) and raw.get("ok") is True and raw.get("isMuulorigin") is True
        logger.info(f"Bridge detection {'succeeded' if detected else 'failed'}")
        return detected


async def fetch_saved_credentials(bridge: RemoteBridge) -> list[CredentialEntry]:
    return await bridge.fetch_saved_credentials()


async def detect_bridge(bridge: RemoteBridge, href: str) -> bool:
    return await bridge.detect(href)


__all__ = [
    "BridgeReply",
    "BridgeTransport",
    "CredentialEntry",
    "HttpBridgeTransport",
    "RemoteBridge",
    "detect_bridge",
    "fetch_saved_credentials",
    "new_request_id",
    "normalize_reply",
]
