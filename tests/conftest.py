"""Shared test configuration for dbnexus tests.

Provides:
- A local HTTP bridge (pytest-httpserver) that answers the bridge protocol
  from a real in-memory SQLite database
- Routers with zero simulated latency
- A small hand-built schema for join inference tests
"""

import json
import sqlite3
from collections.abc import Iterator
from typing import Any

import pytest
from pytest_httpserver import HTTPServer
from werkzeug.wrappers import Request, Response

from dbnexus.core.bridge import CredentialEntry, HttpBridgeTransport, RemoteBridge
from dbnexus.core.engines import SimulatedDocumentEngine, SimulatedSqlEngine
from dbnexus.core.models import ColumnDefinition, ColumnReference, DbSchema, TableDefinition
from dbnexus.core.router import DatabaseRouter

BRIDGE_PATH = "/bridge"

# Saved credentials exposed by the fake bridge
BRIDGE_CREDENTIALS: list[dict[str, Any]] = [
    {"id": "cred-sqlite", "connectionName": "Bridge SQLite", "dbType": "sqlite", "host": "localhost"},
    {"id": "cred-objects", "connectionName": "Bridge SQLite (objects)", "dbType": "sqlite"},
    {"id": "cred-broken", "connectionName": "Unreachable Postgres", "dbType": "PostgreSQL"},
]

BRIDGE_DDL = """
CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT NOT NULL, email TEXT);
CREATE TABLE orders (
    order_id INTEGER PRIMARY KEY,
    customer_id INTEGER REFERENCES customers(id),
    total REAL
);
INSERT INTO customers VALUES (1, 'Ann', 'ann@example.com'), (2, 'Bob', NULL);
INSERT INTO orders VALUES (10, 1, 99.5), (11, 1, 5.0), (12, 2, 42.0);
"""


@pytest.fixture
def bridge_db() -> Iterator[sqlite3.Connection]:
    """SQLite database served by the fake bridge."""
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.executescript(BRIDGE_DDL)
    yield conn
    conn.close()


@pytest.fixture
def bridge_server(httpserver: HTTPServer, bridge_db: sqlite3.Connection) -> HTTPServer:
    """
    Local HTTP bridge that speaks the envelope protocol.

    - GET_SAVED_CREDENTIALS: returns BRIDGE_CREDENTIALS under data.entries
    - MUULORIGIN: affirmative handshake
    - EXECUTE_REMOTE_QUERY:
        cred-sqlite  -> columns + positional rows from bridge_db
        cred-objects -> bare list of row objects from bridge_db
        cred-broken  -> ok=false with an error message

    Every received envelope is appended to ``httpserver.envelopes``.
    """
    envelopes: list[dict[str, Any]] = []

    def handler(request: Request) -> Response:
        message = json.loads(request.get_data(as_text=True))
        envelopes.append(message)
        kind = message.get("type")

        if kind == "GET_SAVED_CREDENTIALS":
            body: dict[str, Any] = {"ok": True, "data": {"entries": BRIDGE_CREDENTIALS}}
        elif kind == "MUULORIGIN":
            body = {"ok": True, "isMuulorigin": True}
        elif kind == "EXECUTE_REMOTE_QUERY":
            body = _execute(bridge_db, message["credentialId"], message["sql"])
        else:
            body = {"ok": False, "error": f"Unsupported message type: {kind}"}
        return Response(json.dumps(body), content_type="application/json")

    httpserver.expect_request(BRIDGE_PATH, method="POST").respond_with_handler(handler)
    httpserver.envelopes = envelopes  # type: ignore[attr-defined]
    return httpserver


def _execute(conn: sqlite3.Connection, credential_id: str, sql: str) -> dict[str, Any]:
    if credential_id == "cred-broken":
        return {"ok": False, "error": "connection refused"}
    try:
        cursor = conn.execute(sql)
    except sqlite3.Error as e:
        return {"ok": False, "error": str(e)}
    columns = [desc[0] for desc in cursor.description or ()]
    rows = [list(row) for row in cursor.fetchall()]
    if credential_id == "cred-objects":
        return {"ok": True, "rows": [dict(zip(columns, row)) for row in rows]}
    return {"ok": True, "columns": columns, "rows": rows, "executionTimeMs": 3}


@pytest.fixture
def http_bridge(bridge_server: HTTPServer) -> RemoteBridge:
    return RemoteBridge(HttpBridgeTransport(bridge_server.url_for(BRIDGE_PATH)))


@pytest.fixture
def sqlite_credential() -> CredentialEntry:
    return CredentialEntry.model_validate(BRIDGE_CREDENTIALS[0])


@pytest.fixture
def router() -> DatabaseRouter:
    """Router without a bridge and with instant simulated engines."""
    return DatabaseRouter(
        simulated=SimulatedSqlEngine(latency_ms=0),
        documents=SimulatedDocumentEngine(latency_ms=0),
    )


@pytest.fixture
def bridged_router(http_bridge: RemoteBridge) -> DatabaseRouter:
    return DatabaseRouter(
        bridge=http_bridge,
        simulated=SimulatedSqlEngine(latency_ms=0),
        documents=SimulatedDocumentEngine(latency_ms=0),
    )


@pytest.fixture
def shop_schema() -> DbSchema:
    """customers <- orders <- order_items, plus products linked only by name."""
    return DbSchema(
        tables=[
            TableDefinition(
                name="customers",
                columns=[
                    ColumnDefinition("id", "INTEGER", is_primary_key=True),
                    ColumnDefinition("name", "TEXT"),
                ],
            ),
            TableDefinition(
                name="orders",
                columns=[
                    ColumnDefinition("order_id", "INTEGER", is_primary_key=True),
                    ColumnDefinition(
                        "customer_id", "INTEGER", references=ColumnReference("customers", "id")
                    ),
                    ColumnDefinition("Product_Key", "TEXT"),
                ],
            ),
            TableDefinition(
                name="order_items",
                columns=[
                    ColumnDefinition("item_id", "INTEGER", is_primary_key=True),
                    ColumnDefinition("order_id", "INTEGER", references=ColumnReference("orders", "order_id")),
                ],
            ),
            TableDefinition(
                name="products",
                columns=[
                    ColumnDefinition("product_key", "TEXT"),
                    ColumnDefinition("label", "TEXT"),
                ],
            ),
            TableDefinition(
                name="audit",
                columns=[ColumnDefinition("message", "TEXT")],
            ),
        ]
    )
