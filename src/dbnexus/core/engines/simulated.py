"""Canned-response SQL engine.

Lets the rest of the system run without a live server. Results are a pure
function of the SQL text: the dispatcher looks for system-catalog
identifiers (``sys.``, ``pg_``...) and for names that only occur in the
built-in diagnostic queries, then returns a fixed, realistic result set.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ..dialects import Dialect
from ..models import ColumnDefinition, ColumnReference, DbSchema, DbStats, QueryResult, TableDefinition

logger = logging.getLogger(__name__)

DEFAULT_LATENCY_MS = 400


@dataclass(frozen=True)
class CannedResult:
    """A fixed result set returned when any of ``triggers`` occurs in the SQL."""

    triggers: tuple[str, ...]
    columns: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...]
    execution_time_ms: int

    def matches(self, lowered_sql: str) -> bool:
        return any(trigger in lowered_sql for trigger in self.triggers)

    def to_result(self) -> QueryResult:
        return QueryResult(
            columns=list(self.columns),
            rows=[list(row) for row in self.rows],
            row_count=len(self.rows),
            execution_time_ms=self.execution_time_ms,
        )


# ============================================================================
# SQL Server family
# ============================================================================

MSSQL_MARKERS = ("sys.", "msdb.", "[", "blockingtree")

MSSQL_RESULTS: tuple[CannedResult, ...] = (
    CannedResult(
        triggers=("blockingtree",),
        columns=("SPID", "Duration ms", "Wait", "Resource", "SQL", "Detective"),
        rows=(
            ("54", 0, "LCK_M_X", "KEY: 5:72057594043531264 (a1b2c3d4e5f6)",
             "UPDATE Orders SET Status = 2 WHERE OrderID = 1001", "ACTION_INVESTIGATE"),
            ("--- 62", 1500, "LCK_M_S", "KEY: 5:72057594043531264 (a1b2c3d4e5f6)",
             "SELECT * FROM Orders WHERE OrderID = 1001", "ACTION_INVESTIGATE"),
            ("--- 78", 3200, "LCK_M_U", "KEY: 5:72057594043531264 (a1b2c3d4e5f6)",
             "UPDATE Orders SET Total = 50.00 WHERE OrderID = 1001", "ACTION_INVESTIGATE"),
        ),
        execution_time_ms=145,
    ),
    CannedResult(
        triggers=("msdb.dbo.backupset",),
        columns=("database_name", "physical_device_name", "backup_start_date", "type", "Size MB"),
        rows=(
            ("Production_CRM", "S:\\Backups\\Full\\CRM_Full.bak", "2023-11-01 01:00:00", "D", 4500.50),
            ("Production_CRM", "S:\\Backups\\Log\\CRM_Log_06.trn", "2023-11-01 06:00:00", "L", 12.20),
            ("Production_CRM", "S:\\Backups\\Diff\\CRM_Diff.bak", "2023-11-01 12:00:00", "I", 45.80),
            ("Master", "C:\\SystemDBs\\Master.bak", "2023-10-31 23:00:00", "D", 1.50),
        ),
        execution_time_ms=120,
    ),
    CannedResult(
        triggers=("sys.dm_db_index_physical_stats", "avg_fragmentation_in_percent"),
        columns=("TableName", "IndexName", "Frag%", "AlterStatement"),
        rows=(
            ("SalesOrderHeader", "PK_SalesOrderHeader", 45.2,
             "ALTER INDEX [PK_SalesOrderHeader] ON [SalesOrderHeader] REBUILD"),
            ("Customer", "IX_AccountNumber", 22.8, "ALTER INDEX [IX_AccountNumber] ON [Customer] REORGANIZE"),
            ("Product", "IX_ProductNumber", 38.1, "ALTER INDEX [IX_ProductNumber] ON [Product] REBUILD"),
        ),
        execution_time_ms=280,
    ),
    CannedResult(
        triggers=("sys.dm_os_wait_stats",),
        columns=("wait_type", "Wait (sec)", "Resource Wait", "Signal Wait (CPU)"),
        rows=(
            ("LCK_M_IX", 5420.5, 5000.0, 420.5),
            ("PAGEIOLATCH_SH", 3200.1, 3200.1, 0.0),
            ("CXPACKET", 1200.0, 100.0, 1100.0),
        ),
        execution_time_ms=50,
    ),
    # Values chosen so the configuration advisor has something to report
    CannedResult(
        triggers=("sys.configurations",),
        columns=("name", "value", "value_in_use", "description"),
        rows=(
            ("max server memory (MB)", 2147483647, 16000, "Maximum size of server memory (MB)"),
            ("cost threshold for parallelism", 5, 5,
             "Threshold above which SQL Server creates parallel plans"),
            ("max degree of parallelism", 0, 0, "Maximum number of processors used for parallel execution"),
            ("optimize for ad hoc workloads", 0, 0, "Plan cache optimization"),
        ),
        execution_time_ms=15,
    ),
    CannedResult(
        triggers=("ring_buffer_connectivity",),
        columns=("Time", "Type", "Spid", "Error"),
        rows=(),
        execution_time_ms=80,
    ),
    CannedResult(
        triggers=("sys.tables",),
        columns=("name",),
        rows=(("SalesOrderHeader",), ("Customer",), ("Product",)),
        execution_time_ms=10,
    ),
)

# ============================================================================
# PostgreSQL family
# ============================================================================

POSTGRES_MARKERS = ("pg_", "information_schema", "blocking_tree")

POSTGRES_RESULTS: tuple[CannedResult, ...] = (
    CannedResult(
        triggers=("blocking_tree",),
        columns=("Tree PID", "state", "Age", "SQL Text", "Investigate"),
        rows=(
            ("1422", "active", "00:00:12.4", "BEGIN; UPDATE inventory SET stock = 0 WHERE id = 5;",
             "ACTION_INVESTIGATE"),
            ("  1899", "active", "00:00:05.1", "UPDATE inventory SET stock = 10 WHERE id = 5;",
             "ACTION_INVESTIGATE"),
        ),
        execution_time_ms=120,
    ),
    CannedResult(
        triggers=("datfrozenxid",),
        columns=("datname", "XID Age", "% to Critical Limit"),
        rows=(
            ("production_db", 1250442100, 58.21),
            ("analytics_db", 120400, 0.01),
            ("postgres", 4500, 0.00),
        ),
        execution_time_ms=110,
    ),
    CannedResult(
        triggers=("pg_stat_database",),
        columns=("datname", "Hit Ratio %", "Commits", "Rollbacks"),
        rows=(("production_db", 99.85, 150400, 23), ("postgres", 99.99, 500, 0)),
        execution_time_ms=40,
    ),
    CannedResult(
        triggers=("pg_database_size",),
        columns=("Database", "Pretty Size", "Bytes"),
        rows=(("production_db", "45 GB", 48318382080), ("postgres", "12 MB", 12582912)),
        execution_time_ms=35,
    ),
    CannedResult(
        triggers=("pg_settings",),
        columns=("name", "setting", "unit", "short_desc"),
        rows=(
            ("max_connections", "40", None, "Sets the maximum number of concurrent connections."),
            ("shared_buffers", "16384", "8kB", "Sets the number of shared memory buffers used by the server."),
            ("work_mem", "4096", "kB", "Sets the maximum memory to be used for query workspaces."),
            ("autovacuum", "off", None, "Automated vacuuming."),
        ),
        execution_time_ms=12,
    ),
    CannedResult(
        triggers=("pg_extension",),
        columns=("extname", "extversion"),
        rows=(("plpgsql", "1.0"), ("pg_stat_statements", "1.9"), ("uuid-ossp", "1.1")),
        execution_time_ms=8,
    ),
)

GENERIC_ROW_COUNT = 20


def _first_match(results: Sequence[CannedResult], lowered_sql: str) -> QueryResult | None:
    for canned in results:
        if canned.matches(lowered_sql):
            return canned.to_result()
    return None


def canned_result(sql: str) -> QueryResult:
    """Pick the canned result for a statement.

    A dialect family is tried when any of its markers occur; if none of its
    results match, dispatch falls through to the next family and finally to
    the generic paginated rows for any ``select``.
    """
    lowered = sql.lower()

    if any(marker in lowered for marker in MSSQL_MARKERS):
        result = _first_match(MSSQL_RESULTS, lowered)
        if result is not None:
            return result

    if any(marker in lowered for marker in POSTGRES_MARKERS):
        result = _first_match(POSTGRES_RESULTS, lowered)
        if result is not None:
            return result

    if "select" in lowered:
        return QueryResult(
            columns=["id", "name", "status", "created_at"],
            rows=[
                [i, f"Item {i}", "active" if i % 2 == 0 else "inactive", "2023-01-01"]
                for i in range(GENERIC_ROW_COUNT)
            ],
            row_count=GENERIC_ROW_COUNT,
            execution_time_ms=120,
        )

    return QueryResult(execution_time_ms=50)


# ============================================================================
# Canned schemas
# ============================================================================


def _mssql_schema() -> DbSchema:
    return DbSchema(
        tables=[
            TableDefinition(
                name="SalesOrderHeader",
                columns=[
                    ColumnDefinition("SalesOrderID", "int", is_primary_key=True),
                    ColumnDefinition("OrderDate", "datetime"),
                    ColumnDefinition(
                        "CustomerID", "int", references=ColumnReference("Customer", "CustomerID")
                    ),
                    ColumnDefinition("TotalDue", "money"),
                ],
            )
        ]
    )


def _default_schema() -> DbSchema:
    # audit_log_heap deliberately has no primary key
    return DbSchema(
        tables=[
            TableDefinition(
                name="users",
                columns=[
                    ColumnDefinition("id", "uuid", is_primary_key=True),
                    ColumnDefinition("email", "varchar"),
                ],
            ),
            TableDefinition(
                name="audit_log_heap",
                columns=[
                    ColumnDefinition("event_id", "uuid"),
                    ColumnDefinition("payload", "text"),
                ],
            ),
        ]
    )


MSSQL_SCHEMA_CONNECTION = "db-mssql"


class SimulatedSqlEngine:
    """Engine that answers every query from the canned library.

    Attributes:
        dialect: Nominal dialect; dispatch itself looks only at the SQL text
        latency_ms: Artificial delay applied to every query
    """

    dialect = Dialect.POSTGRES

    def __init__(self, latency_ms: int = DEFAULT_LATENCY_MS) -> None:
        self.latency_ms = latency_ms

    async def init(self) -> None:
        pass

    async def execute_query(self, instance_id: str, sql: str) -> QueryResult:
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000)
        result = canned_result(sql)
        logger.debug(f"Simulated {instance_id}: {result.row_count} canned rows")
        return result

    async def get_schema(self, instance_id: str) -> DbSchema:
        if instance_id == MSSQL_SCHEMA_CONNECTION:
            return _mssql_schema()
        return _default_schema()

    async def get_stats(self, instance_id: str) -> DbStats:
        return DbStats.from_schema(await self.get_schema(instance_id))
