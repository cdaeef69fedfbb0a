"""Tests for the bridge protocol client.

Uses stub transports for reply-shape edge cases and the pytest-httpserver
bridge from conftest for end-to-end HTTP behavior.
"""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from pytest_httpserver import HTTPServer

from dbnexus.core.bridge import (
    BRIDGE_NOT_DETECTED,
    UNKNOWN_REMOTE_ERROR,
    BridgeReply,
    BridgeTransport,
    CredentialEntry,
    HttpBridgeTransport,
    RemoteBridge,
    detect_bridge,
    fetch_saved_credentials,
    normalize_reply,
)
from dbnexus.core.dialects import Dialect
from dbnexus.core.exceptions import BridgeReplyError, BridgeUnavailableError

from conftest import BRIDGE_PATH


def _stub_bridge(reply: Any = None, error: Exception | None = None) -> tuple[RemoteBridge, AsyncMock]:
    transport = AsyncMock(spec=HttpBridgeTransport)
    if error is not None:
        transport.send.side_effect = error
    else:
        transport.send.return_value = reply
    return RemoteBridge(transport), transport


CREDENTIAL = CredentialEntry(id="cred-1", connectionName="Prod", dbType="sqlserver")


# ============================================================================
# Wire models
# ============================================================================


class TestCredentialEntry:
    def test_aliases_and_extra_fields(self) -> None:
        entry = CredentialEntry.model_validate(
            {"id": "c1", "connectionName": "Warehouse", "dbType": "MySQL", "port": 3306}
        )

        assert entry.connection_name == "Warehouse"
        assert entry.dialect is Dialect.MYSQL
        assert entry.model_extra == {"port": 3306}

    def test_unknown_db_type_resolves_to_postgres(self) -> None:
        assert CredentialEntry(id="c1", dbType="cockroach").dialect is Dialect.POSTGRES
        assert CredentialEntry(id="c1").dialect is Dialect.POSTGRES

    def test_display_name_falls_back_to_id(self) -> None:
        assert CredentialEntry(id="c1").display_name == "c1"

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValueError):
            CredentialEntry.model_validate({"id": ""})


class TestNormalizeReply:
    def test_positional_rows(self) -> None:
        reply = BridgeReply.model_validate(
            {"ok": True, "columns": ["a", "b"], "rows": [[1, 2], [3, 4]], "executionTimeMs": 7}
        )

        result = normalize_reply(reply)

        assert result.columns == ["a", "b"]
        assert result.rows == [[1, 2], [3, 4]]
        assert result.row_count == 2
        assert result.execution_time_ms == 7

    def test_object_rows_infer_columns(self) -> None:
        reply = BridgeReply.model_validate({"ok": True, "rows": [{"id": 1, "name": "x"}, {"name": "y"}]})

        result = normalize_reply(reply)

        assert result.columns == ["id", "name"]
        assert result.rows == [[1, "x"], [None, "y"]]

    def test_reported_row_count_kept(self) -> None:
        reply = BridgeReply.model_validate({"ok": True, "columns": ["a"], "rows": [], "rowCount": 0})

        assert normalize_reply(reply).row_count == 0

    def test_raw_json_passed_through(self) -> None:
        reply = BridgeReply.model_validate({"ok": True, "rows": [], "rawJson": [{"_id": 1}]})

        assert normalize_reply(reply).raw_json == [{"_id": 1}]


# ============================================================================
# RemoteBridge with stub transports
# ============================================================================


class TestExecuteQuery:
    async def test_envelope(self) -> None:
        bridge, transport = _stub_bridge({"ok": True, "columns": ["x"], "rows": [[1]]})

        await bridge.execute_query(CREDENTIAL, "SELECT 1 AS x", request_id="req-9")

        envelope = json.loads(transport.send.await_args.args[0])
        assert envelope == {
            "type": "EXECUTE_REMOTE_QUERY",
            "credentialId": "cred-1",
            "sql": "SELECT 1 AS x",
            "requestId": "req-9",
        }

    async def test_request_ids_are_unique(self) -> None:
        bridge, transport = _stub_bridge({"ok": True})

        await bridge.execute_query(CREDENTIAL, "SELECT 1")
        await bridge.execute_query(CREDENTIAL, "SELECT 1")

        ids = [json.loads(call.args[0])["requestId"] for call in transport.send.await_args_list]
        assert ids[0] != ids[1]
        assert all(request_id.startswith("query-") for request_id in ids)

    async def test_no_transport(self) -> None:
        result = await RemoteBridge().execute_query(CREDENTIAL, "SELECT 1")

        assert result.error == BRIDGE_NOT_DETECTED
        assert result.rows == []

    async def test_send_without_transport_raises(self) -> None:
        with pytest.raises(BridgeUnavailableError):
            await RemoteBridge().send({"type": "PING"})

    async def test_reported_failure(self) -> None:
        bridge, _ = _stub_bridge({"ok": False, "error": "permission denied"})

        result = await bridge.execute_query(CREDENTIAL, "SELECT 1")

        assert result.error == "permission denied"
        assert result.columns == []

    async def test_failure_without_message(self) -> None:
        bridge, _ = _stub_bridge({"ok": False})

        result = await bridge.execute_query(CREDENTIAL, "SELECT 1")

        assert result.error == UNKNOWN_REMOTE_ERROR

    @pytest.mark.parametrize("reply", [None, "ok", [1, 2]])
    async def test_non_object_reply(self, reply: Any) -> None:
        bridge, _ = _stub_bridge(reply)

        result = await bridge.execute_query(CREDENTIAL, "SELECT 1")

        assert result.error == UNKNOWN_REMOTE_ERROR

    async def test_malformed_reply(self) -> None:
        bridge, _ = _stub_bridge({"ok": True, "columns": "a,b"})

        result = await bridge.execute_query(CREDENTIAL, "SELECT 1")

        assert result.error == "Malformed bridge reply: 1 invalid field(s)"

    async def test_unreadable_counters_fall_back(self) -> None:
        bridge, _ = _stub_bridge(
            {"ok": True, "columns": ["x"], "rows": [[1], [2]], "rowCount": "many", "executionTimeMs": "n/a"}
        )

        result = await bridge.execute_query(CREDENTIAL, "SELECT x FROM t")

        assert result.error is None
        assert result.rows == [[1], [2]]
        assert result.row_count == 2
        assert result.execution_time_ms == 0

    async def test_transport_exception_becomes_result(self) -> None:
        bridge, _ = _stub_bridge(error=httpx.ConnectError("connection refused"))

        result = await bridge.execute_query(CREDENTIAL, "SELECT 1")

        assert result.error == "connection refused"
        assert not result.ok


class TestFetchSavedCredentials:
    async def test_entries_at_root(self) -> None:
        bridge, _ = _stub_bridge({"ok": True, "entries": [{"id": "a"}, {"id": "b", "dbType": "mssql"}]})

        credentials = await fetch_saved_credentials(bridge)

        assert [c.id for c in credentials] == ["a", "b"]
        assert credentials[1].dialect is Dialect.MSSQL

    async def test_invalid_entries_skipped(self) -> None:
        bridge, _ = _stub_bridge({"ok": True, "entries": [{"id": "a"}, {"name": "no id"}, "junk"]})

        credentials = await bridge.fetch_saved_credentials()

        assert [c.id for c in credentials] == ["a"]

    @pytest.mark.parametrize(
        "reply",
        [{"ok": False, "entries": [{"id": "a"}]}, {"ok": True}, {"ok": True, "entries": "a"}, None],
    )
    async def test_unusable_replies_give_empty_list(self, reply: Any) -> None:
        bridge, _ = _stub_bridge(reply)

        assert await bridge.fetch_saved_credentials() == []

    async def test_transport_failure_gives_empty_list(self) -> None:
        bridge, _ = _stub_bridge(error=httpx.ReadTimeout("timed out"))

        assert await bridge.fetch_saved_credentials() == []

    async def test_no_transport(self) -> None:
        assert await RemoteBridge().fetch_saved_credentials() == []


class TestDetect:
    async def test_affirmative(self) -> None:
        bridge, transport = _stub_bridge({"ok": True, "isMuulorigin": True})

        assert await detect_bridge(bridge, "https://app.example.com/")

        envelope = json.loads(transport.send.await_args.args[0])
        assert envelope["type"] == "MUULORIGIN"
        assert envelope["href"] == "https://app.example.com/"
        assert isinstance(envelope["ts"], int)

    @pytest.mark.parametrize("reply", [{"ok": True}, {"ok": True, "isMuulorigin": "yes"}, {"ok": False}, []])
    async def test_anything_else_is_negative(self, reply: Any) -> None:
        bridge, _ = _stub_bridge(reply)

        assert not await bridge.detect("https://app.example.com/")

    async def test_no_transport(self) -> None:
        assert not await RemoteBridge().detect("https://app.example.com/")


def test_http_transport_satisfies_protocol() -> None:
    assert isinstance(HttpBridgeTransport("http://localhost/bridge"), BridgeTransport)


# ============================================================================
# HTTP transport against a local bridge
# ============================================================================


class TestHttpBridge:
    async def test_query_round_trip(self, http_bridge: RemoteBridge, sqlite_credential: CredentialEntry) -> None:
        result = await http_bridge.execute_query(sqlite_credential, "SELECT id, name FROM customers ORDER BY id")

        assert result.ok
        assert result.columns == ["id", "name"]
        assert result.rows == [[1, "Ann"], [2, "Bob"]]
        assert result.execution_time_ms == 3

    async def test_remote_sql_error(self, http_bridge: RemoteBridge, sqlite_credential: CredentialEntry) -> None:
        result = await http_bridge.execute_query(sqlite_credential, "SELECT * FROM nowhere")

        assert "no such table" in result.error

    async def test_credentials(self, http_bridge: RemoteBridge) -> None:
        credentials = await http_bridge.fetch_saved_credentials()

        assert [c.id for c in credentials] == ["cred-sqlite", "cred-objects", "cred-broken"]
        assert credentials[2].dialect is Dialect.POSTGRES

    async def test_detect(self, http_bridge: RemoteBridge, bridge_server: HTTPServer) -> None:
        assert await http_bridge.detect("http://localhost/")
        assert bridge_server.envelopes[-1]["type"] == "MUULORIGIN"

    async def test_http_error_status(self, httpserver: HTTPServer) -> None:
        httpserver.expect_request("/down", method="POST").respond_with_data("boom", status=503)
        bridge = RemoteBridge(HttpBridgeTransport(httpserver.url_for("/down")))

        result = await bridge.execute_query(CREDENTIAL, "SELECT 1")

        assert not result.ok
        assert "503" in result.error

    async def test_invalid_json_body(self, httpserver: HTTPServer) -> None:
        httpserver.expect_request("/garbled", method="POST").respond_with_data("<html>", status=200)
        transport = HttpBridgeTransport(httpserver.url_for("/garbled"))

        with pytest.raises(BridgeReplyError):
            await transport.send("{}")

    async def test_custom_headers_sent(self, httpserver: HTTPServer) -> None:
        httpserver.expect_request(
            BRIDGE_PATH, method="POST", headers={"X-Bridge-Token": "secret"}
        ).respond_with_json({"ok": True, "isMuulorigin": True})
        bridge = RemoteBridge(
            HttpBridgeTransport(httpserver.url_for(BRIDGE_PATH), timeout=5, headers={"X-Bridge-Token": "secret"})
        )

        assert await bridge.detect("http://localhost/")
