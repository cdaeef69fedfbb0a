"""Tests for the canned SQL and document-store engines."""

from __future__ import annotations

import time

import pytest

from dbnexus.core.engines import SimulatedDocumentEngine, SimulatedSqlEngine
from dbnexus.core.engines.documents import (
    collection_from_query,
    flatten_columns,
    referenced_collection,
)
from dbnexus.core.engines.simulated import canned_result

# ============================================================================
# Canned SQL dispatch
# ============================================================================


class TestCannedResult:
    """Dispatch is a pure function of the SQL text."""

    def test_mssql_configuration(self) -> None:
        result = canned_result("SELECT name, value, value_in_use FROM sys.configurations ORDER BY name;")

        assert result.columns == ["name", "value", "value_in_use", "description"]
        settings = {row[0]: row[2] for row in result.rows}
        assert settings["cost threshold for parallelism"] == 5
        assert settings["max degree of parallelism"] == 0
        assert settings["optimize for ad hoc workloads"] == 0

    def test_mssql_blocking_tree(self) -> None:
        result = canned_result("WITH BlockingTree AS (SELECT 1) SELECT * FROM BlockingTree")

        assert result.columns[0] == "SPID"
        assert result.row_count == 3
        assert all(row[-1] == "ACTION_INVESTIGATE" for row in result.rows)

    def test_mssql_connectivity_ring_buffer_is_empty(self) -> None:
        result = canned_result(
            "SELECT * FROM sys.dm_os_ring_buffers WHERE ring_buffer_type = 'RING_BUFFER_CONNECTIVITY'"
        )

        assert result.ok
        assert result.columns == ["Time", "Type", "Spid", "Error"]
        assert result.rows == []

    def test_postgres_settings(self) -> None:
        result = canned_result("SELECT name, setting FROM pg_settings WHERE name IN ('max_connections')")

        settings = {row[0]: row[1] for row in result.rows}
        assert settings["max_connections"] == "40"
        assert settings["autovacuum"] == "off"

    def test_postgres_xid(self) -> None:
        result = canned_result("SELECT datname, age(datfrozenxid) FROM pg_database")

        assert result.columns == ["datname", "XID Age", "% to Critical Limit"]

    def test_family_falls_through_to_generic_rows(self) -> None:
        # Matches the SQL Server marker "[" but no SQL Server result
        result = canned_result("SELECT [name] FROM customers")

        assert result.columns == ["id", "name", "status", "created_at"]
        assert result.row_count == 20
        assert result.rows[0] == [0, "Item 0", "active", "2023-01-01"]
        assert result.rows[1][2] == "inactive"
        assert result.execution_time_ms == 120

    def test_non_select_is_empty(self) -> None:
        result = canned_result("UPDATE users SET email = NULL")

        assert result.ok
        assert result.columns == []
        assert result.rows == []
        assert result.execution_time_ms == 50

    def test_case_insensitive(self) -> None:
        assert canned_result("select * FROM PG_EXTENSION").columns == ["extname", "extversion"]


class TestSimulatedSqlEngine:
    async def test_execute_query(self) -> None:
        engine = SimulatedSqlEngine(latency_ms=0)

        result = await engine.execute_query("db-1", "SELECT extname FROM pg_extension")

        assert result.row_count == 3

    async def test_latency_is_applied(self) -> None:
        engine = SimulatedSqlEngine(latency_ms=50)

        start = time.perf_counter()
        await engine.execute_query("db-1", "SELECT 1")

        assert time.perf_counter() - start >= 0.04

    async def test_mssql_schema(self) -> None:
        schema = await SimulatedSqlEngine(latency_ms=0).get_schema("db-mssql")

        header = schema.table("SalesOrderHeader")
        assert header is not None
        customer_id = header.column("CustomerID")
        assert customer_id.is_foreign_key
        assert customer_id.references.table == "Customer"

    async def test_default_schema_has_heap_table(self) -> None:
        schema = await SimulatedSqlEngine(latency_ms=0).get_schema("db-1")

        assert schema.table_names == ["users", "audit_log_heap"]
        assert schema.table("audit_log_heap").primary_keys == []

    async def test_stats_from_schema(self) -> None:
        stats = await SimulatedSqlEngine(latency_ms=0).get_stats("db-1")

        assert stats.table_count == 2
        assert stats.column_count == 4
        assert stats.pk_count == 1
        assert stats.index_count == 1


# ============================================================================
# Document store
# ============================================================================


class TestDocumentHelpers:
    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("db.orders.find({})", "orders"),
            ("db.logs.aggregate([])", "logs"),
            ("db.stats()", "users"),
            ("show collections", "users"),
        ],
    )
    def test_collection_from_query(self, query: str, expected: str) -> None:
        assert collection_from_query(query) == expected

    def test_flatten_one_level(self) -> None:
        documents = [
            {"_id": 1, "profile": {"age": 3, "geo": {"lat": 1}}, "tags": ["a"]},
            {"_id": 2, "extra": True},
        ]

        assert flatten_columns(documents) == ["_id", "profile.age", "profile.geo", "tags", "extra"]

    @pytest.mark.parametrize(
        ("column", "expected"),
        [("user_id", "users"), ("orders_id", "orders"), ("_id", None), ("status", None)],
    )
    def test_referenced_collection(self, column: str, expected: str | None) -> None:
        assert referenced_collection(column) == expected


class TestSimulatedDocumentEngine:
    async def test_find_users(self) -> None:
        engine = SimulatedDocumentEngine(latency_ms=0)

        result = await engine.execute_query("db-mongo", "db.users.find({})")

        assert result.columns == ["_id", "username", "profile.age", "profile.city", "tags"]
        assert result.rows[0] == ["64a1b2c3", "jdoe", 30, "NY", ["dev", "admin"]]
        assert result.row_count == 3
        assert result.raw_json[0]["profile"] == {"age": 30, "city": "NY"}

    async def test_raw_json_in_wire_form(self) -> None:
        result = await SimulatedDocumentEngine(latency_ms=0).execute_query("db-mongo", "db.orders.find()")

        data = result.to_dict()
        assert data["rawJson"][1]["shipping"]["city"] == "London"
        assert "error" not in data

    async def test_unknown_collection_gets_generic_documents(self) -> None:
        result = await SimulatedDocumentEngine(latency_ms=0).execute_query("db-mongo", "db.events.find()")

        assert result.records()[0]["collection"] == "events"
        assert "metadata.source" in result.columns

    async def test_schema_lists_collections(self) -> None:
        schema = await SimulatedDocumentEngine(latency_ms=0).get_schema("db-mongo")

        assert schema.table_names == ["users", "orders", "logs", "settings"]
        orders = schema.table("orders")
        assert orders.column("_id").is_primary_key
        assert orders.column("user_id").references.table == "users"
        assert orders.column("user_id").references.column == "_id"
        assert all(column.type == "bson" for column in orders.columns)
