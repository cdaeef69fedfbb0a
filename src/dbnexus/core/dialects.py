"""Per-dialect metadata registry.

Each supported dialect has one ``DialectDefinition`` describing how to list
tables, columns and foreign keys, how to build management statements, and
which diagnostic insights can be run against it. The built-in table is
defined once at import time and never mutated; callers that need a different
insight catalog construct a ``DialectRegistry`` with an override map.

Example:
    registry = DialectRegistry()
    definition = registry.definition_for(Dialect.SQLITE)
    sql = definition.introspection.columns_sql("users")
    # -> PRAGMA table_info("users")

Introspection templates interpolate the table name verbatim. Table names from
untrusted input must be quoted by the caller before reaching the registry.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Literal

from .exceptions import UnknownDialectError

logger = logging.getLogger(__name__)


class Dialect(Enum):
    """Supported database dialects."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE = "sqlite"
    MSSQL = "mssql"
    MONGODB = "mongodb"
    PARQUET = "parquet"  # inert placeholder, no introspection

    @classmethod
    def resolve(cls, name: str | Dialect | None) -> Dialect:
        """Map a free-text engine name to a dialect.

        Used for remote credentials, whose ``dbType`` is owned by the bridge.
        ``sqlserver`` and ``postgresql`` are accepted spellings; anything
        unrecognized (including a missing name) resolves to PostgreSQL.
        """
        if isinstance(name, Dialect):
            return name
        key = (name or "").strip().lower()
        key = _DIALECT_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return cls.POSTGRES

    @classmethod
    def parse(cls, name: str | Dialect) -> Dialect:
        """Strict variant of ``resolve`` that rejects unknown names."""
        if isinstance(name, Dialect):
            return name
        key = name.strip().lower()
        key = _DIALECT_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise UnknownDialectError(name) from None


_DIALECT_ALIASES: dict[str, str] = {
    "sqlserver": "mssql",
    "postgresql": "postgres",
}

InsightCategory = Literal[
    "Performance",
    "Storage",
    "Indexes",
    "Fragmentation",
    "Expensive Queries",
    "System",
    "Locks",
    "Wait Stats",
    "Processes",
    "Backups",
    "Maintenance",
    "Server Parameters",
    "Security",
    "Configuration",
]
InsightContext = Literal["server", "database"]
ImpactLevel = Literal["High", "Medium", "Low"]


@dataclass(frozen=True)
class DiagnosticInsight:
    """A canned diagnostic query in a dialect's catalog.

    Attributes:
        id: Stable identifier (unique within a dialect)
        category: Grouping shown to the user
        context: Whether the query inspects the whole server or one database
        title: Short label
        description: One-sentence explanation
        query: Literal SQL (or shell command for the document store)
        impact: How much attention a bad result deserves
        min_version: Lowest engine version the query works on, if limited
    """

    id: str
    category: InsightCategory
    context: InsightContext
    title: str
    description: str
    query: str
    impact: ImpactLevel
    min_version: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DiagnosticInsight:
        """Create an insight from a camelCase or snake_case mapping."""
        return cls(
            id=data["id"],
            category=data["category"],
            context=data.get("context", "database"),
            title=data["title"],
            description=data.get("description", ""),
            query=data["query"],
            impact=data.get("impact", "Medium"),
            min_version=data.get("min_version", data.get("minVersion")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "context": self.context,
            "title": self.title,
            "description": self.description,
            "query": self.query,
            "impact": self.impact,
            "minVersion": self.min_version,
        }


@dataclass(frozen=True)
class IntrospectionQueries:
    """Catalog queries used for schema discovery.

    ``tables`` is a literal statement; ``columns`` and ``foreign_keys`` are
    ``str.format`` templates taking a single ``table`` argument. An empty
    ``tables`` statement means the dialect cannot be introspected with SQL.
    """

    tables: str
    columns: str
    foreign_keys: str

    def columns_sql(self, table: str) -> str:
        return self.columns.format(table=table)

    def foreign_keys_sql(self, table: str) -> str:
        return self.foreign_keys.format(table=table)

    @property
    def supported(self) -> bool:
        return bool(self.tables.strip())


@dataclass(frozen=True)
class ManagementStatements:
    """Pure string builders for administrative statements."""

    kill_session: str
    reindex_table: str

    def kill_session_sql(self, session_id: str | int) -> str:
        return self.kill_session.format(session_id=session_id)

    def reindex_table_sql(self, table: str) -> str:
        return self.reindex_table.format(table=table)


@dataclass(frozen=True)
class DialectDefinition:
    """Everything the registry knows about one dialect."""

    dialect: Dialect
    version: str
    introspection: IntrospectionQueries
    management: ManagementStatements
    insights: tuple[DiagnosticInsight, ...] = field(default_factory=tuple)

    def find_insight(self, insight_id: str) -> DiagnosticInsight | None:
        for insight in self.insights:
            if insight.id == insight_id:
                return insight
        return None

    def insights_for(self, context: InsightContext | None = None) -> list[DiagnosticInsight]:
        """Insights in catalog order, optionally limited to one context."""
        if context is None:
            return list(self.insights)
        return [insight for insight in self.insights if insight.context == context]


# ============================================================================
# Built-in catalog
# ============================================================================

_POSTGRES = DialectDefinition(
    dialect=Dialect.POSTGRES,
    version="2.5.0-stable",
    introspection=IntrospectionQueries(
        tables=(
            "SELECT table_name AS \"name\" FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_type = 'BASE TABLE' ORDER BY table_name"
        ),
        columns="""
        SELECT
          c.column_name AS "name",
          c.data_type AS "type",
          (SELECT COUNT(*) > 0 FROM information_schema.table_constraints tc
           JOIN information_schema.key_column_usage kcu ON tc.constraint_name = kcu.constraint_name
           WHERE tc.constraint_type = 'PRIMARY KEY' AND tc.table_name='{table}' AND kcu.column_name=c.column_name) as "pk"
        FROM information_schema.columns c
        WHERE c.table_name = '{table}' AND c.table_schema = 'public'
        ORDER BY c.ordinal_position""",
        foreign_keys="""
        SELECT
          kcu.column_name AS "from",
          ccu.table_name AS "table",
          ccu.column_name AS "to"
        FROM information_schema.key_column_usage AS kcu
        JOIN information_schema.table_constraints AS tc ON kcu.constraint_name = tc.constraint_name
        JOIN information_schema.constraint_column_usage AS ccu ON ccu.constraint_name = tc.constraint_name
        WHERE tc.constraint_type = 'FOREIGN KEY' AND kcu.table_name = '{table}' AND kcu.table_schema = 'public'""",
    ),
    management=ManagementStatements(
        kill_session="SELECT pg_terminate_backend({session_id});",
        reindex_table='VACUUM ANALYZE "{table}"; REINDEX TABLE "{table}";',
    ),
    insights=(
        DiagnosticInsight(
            id="pg-conn-overview",
            context="server",
            category="System",
            title="Connection State Overview",
            description="Count of connections grouped by state (active, idle, etc).",
            query=(
                'SELECT state, count(*) as "Count", '
                'pg_size_pretty(sum(pg_backend_memory_allocated())) as "Mem Alloc" '
                "FROM pg_stat_activity GROUP BY 1 ORDER BY 2 DESC;"
            ),
            impact="Medium",
        ),
        DiagnosticInsight(
            id="pg-storage",
            context="server",
            category="Storage",
            title="Database Disk Usage",
            description="Physical disk space occupied by each database.",
            query=(
                'SELECT datname AS "Database", pg_size_pretty(pg_database_size(datname)) AS "Pretty Size", '
                'pg_database_size(datname) AS "Bytes" FROM pg_database ORDER BY 3 DESC;'
            ),
            impact="Medium",
        ),
        DiagnosticInsight(
            id="pg-io-stats",
            context="server",
            category="Performance",
            title="I/O Cache Hit Ratio",
            description="Critical metric: % of reads found in memory (should be > 99%).",
            query=(
                'SELECT datname, round(100 * blks_hit / (blks_hit + blks_read + 1), 2) AS "Hit Ratio %", '
                'xact_commit AS "Commits", xact_rollback AS "Rollbacks" FROM pg_stat_database ORDER BY 2 ASC;'
            ),
            impact="High",
        ),
        DiagnosticInsight(
            id="pg-wait-topology",
            context="server",
            category="Wait Stats",
            title="Wait Event Distribution",
            description="Identifies current session bottlenecks (Lock vs IO vs CPU).",
            query=(
                'SELECT wait_event_type, wait_event, count(*) as "Active Sessions" FROM pg_stat_activity '
                "WHERE state = 'active' AND wait_event IS NOT NULL GROUP BY 1, 2 ORDER BY 3 DESC;"
            ),
            impact="High",
        ),
        DiagnosticInsight(
            id="pg-block-tree",
            context="server",
            category="Locks",
            title="Recursive Blocking Tree",
            description="Visualizes the chain of blocked PIDs and the head root blocker.",
            query="""
        WITH RECURSIVE blocking_tree AS (
          SELECT pid, NULL::integer AS blocking_pid, ARRAY[pid] AS path, query, wait_event_type, state, now() - xact_start as duration
          FROM pg_stat_activity
          WHERE pid IN (SELECT DISTINCT(unnest(pg_blocking_pids(pid))) FROM pg_stat_activity)
            AND (pg_blocking_pids(pid) = '{}' OR pg_blocking_pids(pid) IS NULL)
          UNION ALL
          SELECT a.pid, (pg_blocking_pids(a.pid))[1] AS blocking_pid, bt.path || a.pid, a.query, a.wait_event_type, a.state, now() - a.xact_start
          FROM pg_stat_activity a
          JOIN blocking_tree bt ON (pg_blocking_pids(a.pid))[1] = bt.pid
          WHERE NOT a.pid = ANY(bt.path)
        )
        SELECT repeat('  ', array_length(path, 1) - 1) || pid AS "Tree PID", state, duration AS "Age", query AS "SQL Text", 'ACTION_INVESTIGATE' AS "Investigate" FROM blocking_tree;""",
            impact="High",
        ),
        DiagnosticInsight(
            id="pg-long-running",
            context="server",
            category="Expensive Queries",
            title="Long Running Queries",
            description="Queries running longer than 5 minutes.",
            query=(
                "SELECT pid, user, pg_stat_activity.datname, now() - pg_stat_activity.query_start AS duration, query "
                "FROM pg_stat_activity WHERE pg_stat_activity.query_start < (now() - '5 minutes'::interval) "
                "AND state = 'active' ORDER BY duration DESC;"
            ),
            impact="High",
        ),
        DiagnosticInsight(
            id="pg-xid-wraparound",
            context="server",
            category="Maintenance",
            title="XID Wraparound Risk",
            description="Monitors transaction ID age to prevent forced read-only mode.",
            query=(
                'SELECT datname, age(datfrozenxid) AS "XID Age", '
                'round(age(datfrozenxid)::numeric / 2147483647 * 100, 2) AS "% to Critical Limit" '
                "FROM pg_database WHERE datallowconn ORDER BY 2 DESC;"
            ),
            impact="High",
        ),
        DiagnosticInsight(
            id="pg-index-bloat",
            context="database",
            category="Indexes",
            title="Unused Indexes",
            description="Indexes that are rarely used but consume write overhead.",
            query=(
                'SELECT schemaname, relname AS "Table", indexrelname AS "Index", '
                'pg_size_pretty(pg_relation_size(i.indexrelid)) AS "Size", idx_scan AS "Scans" '
                "FROM pg_stat_user_indexes i JOIN pg_index USING (indexrelid) "
                "WHERE idx_scan < 50 AND indisunique IS FALSE ORDER BY pg_relation_size(i.indexrelid) DESC LIMIT 20;"
            ),
            impact="Medium",
        ),
        DiagnosticInsight(
            id="pg-table-stats",
            context="database",
            category="Storage",
            title="Table Size & Tuple Stats",
            description="Dead tuples ratio indicates need for VACUUM.",
            query=(
                'SELECT relname AS "Table", pg_size_pretty(pg_total_relation_size(relid)) AS "Total Size", '
                'n_live_tup AS "Live Rows", n_dead_tup AS "Dead Rows", '
                'round(n_dead_tup::numeric / (n_live_tup + n_dead_tup + 1) * 100, 2) AS "Dead Ratio %" '
                "FROM pg_stat_user_tables ORDER BY pg_total_relation_size(relid) DESC LIMIT 20;"
            ),
            impact="Medium",
        ),
        DiagnosticInsight(
            id="pg-settings",
            context="server",
            category="Configuration",
            title="Important Settings",
            description="Key performance configuration parameters.",
            query=(
                "SELECT name, setting, unit, short_desc FROM pg_settings WHERE name IN "
                "('max_connections', 'shared_buffers', 'work_mem', 'maintenance_work_mem', "
                "'effective_cache_size', 'wal_buffers', 'autovacuum');"
            ),
            impact="Medium",
        ),
        DiagnosticInsight(
            id="pg-extensions",
            context="database",
            category="Configuration",
            title="Installed Extensions",
            description="List of extensions installed in the current database.",
            query="SELECT extname, extversion FROM pg_extension ORDER BY extname;",
            impact="Low",
        ),
    ),
)

_MSSQL = DialectDefinition(
    dialect=Dialect.MSSQL,
    version="1.9.0-stable",
    introspection=IntrospectionQueries(
        tables='SELECT name AS "name" FROM sys.tables WHERE is_ms_shipped = 0 ORDER BY name',
        columns="""
        SELECT
          c.name AS "name",
          TYPE_NAME(c.system_type_id) as "type",
          CONVERT(bit, i.is_primary_key) as "pk"
        FROM sys.columns c
        LEFT JOIN sys.index_columns ic ON ic.object_id = c.object_id AND ic.column_id = c.column_id
        LEFT JOIN sys.indexes i ON i.object_id = c.object_id AND i.index_id = ic.index_id AND i.is_primary_key = 1
        WHERE c.object_id = OBJECT_ID('{table}')
        ORDER BY c.column_id""",
        foreign_keys="""
        SELECT
          cpa.name AS "from",
          OBJECT_NAME(f.referenced_object_id) AS "table",
          cpr.name AS "to"
        FROM sys.foreign_keys AS f
        INNER JOIN sys.foreign_key_columns AS fc ON f.object_id = fc.constraint_object_id
        INNER JOIN sys.columns AS cpa ON fc.parent_object_id = cpa.object_id AND fc.parent_column_id = cpa.column_id
        INNER JOIN sys.columns AS cpr ON fc.referenced_object_id = cpr.object_id AND fc.referenced_column_id = cpr.column_id
        WHERE f.parent_object_id = OBJECT_ID('{table}')""",
    ),
    management=ManagementStatements(
        kill_session="KILL {session_id};",
        reindex_table="ALTER INDEX ALL ON [{table}] REBUILD;",
    ),
    insights=(
        DiagnosticInsight(
            id="ms-disk-usage",
            context="server",
            category="Storage",
            title="File & Drive Space",
            description="Allocation of physical files (.mdf/.ldf) across OS drives.",
            query=(
                "SELECT DB_NAME(database_id) AS [Database], name AS [Logical Name], physical_name AS [Path], "
                "size * 8 / 1024 AS [Size MB], CAST(FILEPROPERTY(name, 'SpaceUsed') AS INT) * 8 / 1024 AS [Used MB] "
                "FROM sys.master_files ORDER BY [Size MB] DESC;"
            ),
            impact="Medium",
        ),
        DiagnosticInsight(
            id="ms-io-perf",
            context="server",
            category="Performance",
            title="Virtual File I/O Latency",
            description="Detailed read/write latency and stall metrics per file.",
            query=(
                "SELECT DB_NAME(vfs.database_id) AS [DB], mf.name AS [File], num_of_reads AS [Reads], "
                "num_of_writes AS [Writes], io_stall_read_ms AS [Read Stall ms], io_stall_write_ms AS [Write Stall ms], "
                "CAST(1.0 * io_stall / (num_of_reads + num_of_writes + 1) AS DECIMAL(10,2)) AS [Avg Stall ms] "
                "FROM sys.dm_io_virtual_file_stats(NULL, NULL) vfs JOIN sys.master_files mf "
                "ON vfs.database_id = mf.database_id AND vfs.file_id = mf.file_id ORDER BY [Avg Stall ms] DESC;"
            ),
            impact="High",
        ),
        DiagnosticInsight(
            id="ms-cpu-hogs",
            context="server",
            category="Expensive Queries",
            title="Top CPU Consumers",
            description="Queries consuming the most CPU time from cached plans.",
            query=(
                "SELECT TOP 10 st.text AS [SQL], qs.total_worker_time AS [Total CPU], qs.execution_count AS [Execs], "
                "qs.total_worker_time/qs.execution_count AS [Avg CPU] FROM sys.dm_exec_query_stats qs "
                "CROSS APPLY sys.dm_exec_sql_text(qs.sql_handle) st ORDER BY qs.total_worker_time DESC;"
            ),
            impact="High",
        ),
        DiagnosticInsight(
            id="ms-wait-stats",
            context="server",
            category="Wait Stats",
            title="Wait Resource Profile",
            description="Compares Signal (CPU) vs Resource (IO/Memory) waits.",
            query=(
                'SELECT TOP 10 wait_type, wait_time_ms / 1000.0 AS "Wait (sec)", '
                '(wait_time_ms - signal_wait_time_ms) / 1000.0 AS "Resource Wait", '
                'signal_wait_time_ms / 1000.0 AS "Signal Wait (CPU)" FROM sys.dm_os_wait_stats '
                "WHERE wait_type NOT IN ('SLEEP_TASK', 'BROKER_RECEIVE_WAITFOR', 'CHECKPOINT_QUEUE', "
                "'REQUEST_FOR_DEADLOCK_SEARCH') ORDER BY wait_time_ms DESC;"
            ),
            impact="High",
        ),
        DiagnosticInsight(
            id="ms-buffer-cache",
            context="server",
            category="Performance",
            title="Buffer Pool Usage",
            description="Memory consumption per database.",
            query=(
                "SELECT DB_NAME(database_id) AS [Database], COUNT(*) * 8 / 1024 AS [Cache MB] "
                "FROM sys.dm_os_buffer_descriptors GROUP BY database_id ORDER BY [Cache MB] DESC;"
            ),
            impact="Medium",
        ),
        DiagnosticInsight(
            id="ms-missing-idx",
            context="database",
            category="Indexes",
            title="Missing Index Recommendations",
            description="Indexes suggested by the query optimizer.",
            query=(
                "SELECT TOP 10 db_name(d.database_id) as [DB], "
                "s.avg_total_user_cost * s.avg_user_impact * (s.user_seeks + s.user_scans) as [Impact], "
                "'CREATE INDEX [IX_MISSING_1] ON ' + d.statement + ' (' + ISNULL(d.equality_columns,'') + "
                "CASE WHEN d.equality_columns IS NOT NULL AND d.inequality_columns IS NOT NULL THEN ',' ELSE '' END + "
                "ISNULL(d.inequality_columns, '') + ')' + ISNULL(' INCLUDE (' + d.included_columns + ')', '') "
                "AS [Create Statement] FROM sys.dm_db_missing_index_group_stats s, sys.dm_db_missing_index_groups g, "
                "sys.dm_db_missing_index_details d WHERE s.group_handle = g.index_group_handle "
                "AND g.index_handle = d.index_handle ORDER BY [Impact] DESC;"
            ),
            impact="High",
        ),
        DiagnosticInsight(
            id="ms-backups",
            context="server",
            category="Backups",
            title="Backup History (Last 7 Days)",
            description="Checks recent backup completion status.",
            query=(
                "SELECT s.database_name, m.physical_device_name, s.backup_start_date, s.type, "
                "s.backup_size/1024/1024 as [Size MB] FROM msdb.dbo.backupset s "
                "INNER JOIN msdb.dbo.backupmediafamily m ON s.media_set_id = m.media_set_id "
                "WHERE s.backup_start_date > DATEADD(day, -7, GETDATE()) ORDER BY s.backup_start_date DESC;"
            ),
            impact="Low",
        ),
        DiagnosticInsight(
            id="ms-block-tree",
            context="server",
            category="Locks",
            title="Recursive Blocking Hierarchy",
            description="Full chain of SPID dependencies with wait resource hex IDs.",
            query="""
        WITH BlockingTree AS (
            SELECT r.session_id, r.blocking_session_id, r.wait_type, r.wait_resource, st.text AS [SQL], r.total_elapsed_time, 0 AS [Level], CAST(r.session_id AS VARCHAR(MAX)) AS [Path]
            FROM sys.dm_exec_requests r CROSS APPLY sys.dm_exec_sql_text(r.sql_handle) st
            WHERE r.blocking_session_id = 0 AND r.session_id IN (SELECT blocking_session_id FROM sys.dm_exec_requests WHERE blocking_session_id <> 0)
            UNION ALL
            SELECT r.session_id, r.blocking_session_id, r.wait_type, r.wait_resource, st.text AS [SQL], r.total_elapsed_time, bt.[Level] + 1, bt.[Path] + ' > ' + CAST(r.session_id AS VARCHAR(MAX))
            FROM sys.dm_exec_requests r CROSS APPLY sys.dm_exec_sql_text(r.sql_handle) st
            INNER JOIN BlockingTree bt ON r.blocking_session_id = bt.session_id
        )
        SELECT REPLICATE('--- ', [Level]) + CAST(session_id AS VARCHAR(10)) AS [SPID], total_elapsed_time AS [Duration ms], wait_type AS [Wait], wait_resource AS [Resource], [SQL], 'ACTION_INVESTIGATE' AS [Detective] FROM BlockingTree ORDER BY [Path];""",
            impact="High",
        ),
        DiagnosticInsight(
            id="ms-frag",
            context="database",
            category="Fragmentation",
            title="Index Maintenance HUD",
            description="Identifies high fragmentation with auto-generated REBUILD scripts.",
            query="""
        SELECT OBJECT_NAME(ips.object_id) AS [TableName], i.name AS [IndexName], ips.avg_fragmentation_in_percent AS [Frag%],
        CASE WHEN ips.avg_fragmentation_in_percent > 30 THEN 'ALTER INDEX [' + i.name + '] ON [' + OBJECT_NAME(ips.object_id) + '] REBUILD'
        WHEN ips.avg_fragmentation_in_percent > 5 THEN 'ALTER INDEX [' + i.name + '] ON [' + OBJECT_NAME(ips.object_id) + '] REORGANIZE' ELSE '-- Healthy' END AS [AlterStatement]
        FROM sys.dm_db_index_physical_stats(DB_ID(), NULL, NULL, NULL, 'DETAILED') ips JOIN sys.indexes i ON ips.object_id = i.object_id AND ips.index_id = i.index_id
        WHERE ips.avg_fragmentation_in_percent > 5 ORDER BY ips.avg_fragmentation_in_percent DESC;""",
            impact="High",
        ),
        DiagnosticInsight(
            id="ms-config",
            context="server",
            category="Configuration",
            title="Server Configuration",
            description="Global server settings (Memory, Parallelism, etc).",
            query="SELECT name, value, value_in_use, description FROM sys.configurations ORDER BY name;",
            impact="Low",
        ),
        DiagnosticInsight(
            id="ms-logins",
            context="server",
            category="Security",
            title="Failed Logins (Recent)",
            description="Checks ring buffer for recent connectivity errors.",
            query=(
                "SELECT record.value('(./Record/@time)[1]', 'bigint') AS [Time], "
                "record.value('(./Record/ConnectivityTraceRecord/RecordType)[1]', 'varchar(50)') AS [Type], "
                "record.value('(./Record/ConnectivityTraceRecord/Spid)[1]', 'int') AS [Spid], "
                "record.value('(./Record/ConnectivityTraceRecord/ErrorMessage)[1]', 'varchar(max)') AS [Error] "
                "FROM (SELECT CAST(record as xml) as record FROM sys.dm_os_ring_buffers "
                "WHERE ring_buffer_type = 'RING_BUFFER_CONNECTIVITY') AS x ORDER BY [Time] DESC;"
            ),
            impact="Medium",
        ),
    ),
)

_MYSQL = DialectDefinition(
    dialect=Dialect.MYSQL,
    version="1.2.0",
    introspection=IntrospectionQueries(
        tables='SELECT table_name AS "name" FROM information_schema.tables WHERE table_schema = DATABASE()',
        columns="DESCRIBE `{table}`",
        foreign_keys=(
            "SELECT K.COLUMN_NAME AS 'from', K.REFERENCED_TABLE_NAME AS 'table', "
            "K.REFERENCED_COLUMN_NAME AS 'to' FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE AS K "
            "WHERE K.TABLE_SCHEMA = SCHEMA() AND K.TABLE_NAME = '{table}' "
            "AND K.REFERENCED_TABLE_NAME IS NOT NULL;"
        ),
    ),
    management=ManagementStatements(
        kill_session="KILL {session_id};",
        reindex_table="OPTIMIZE TABLE `{table}`;",
    ),
    insights=(
        DiagnosticInsight(
            id="my-buffer",
            context="server",
            category="Performance",
            title="InnoDB Buffer Cache Efficiency",
            description="Ratio of memory reads vs disk reads.",
            query=(
                "SELECT (1 - (Variable_value / (SELECT Variable_value FROM information_schema.global_status "
                'WHERE Variable_name = "Innodb_buffer_pool_read_requests"))) * 100 AS "Hit Rate (%)" '
                'FROM information_schema.global_status WHERE Variable_name = "Innodb_buffer_pool_reads";'
            ),
            impact="High",
        ),
        DiagnosticInsight(
            id="my-connections",
            context="server",
            category="System",
            title="Connection Usage",
            description="Current open connections vs max allowed.",
            query=(
                "SELECT Variable_name, Variable_value FROM information_schema.global_status "
                'WHERE Variable_name IN ("Threads_connected", "Max_used_connections");'
            ),
            impact="Medium",
        ),
    ),
)

_SQLITE = DialectDefinition(
    dialect=Dialect.SQLITE,
    version="1.0.0",
    introspection=IntrospectionQueries(
        tables="SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name",
        columns='PRAGMA table_info("{table}")',
        foreign_keys='PRAGMA foreign_key_list("{table}")',
    ),
    management=ManagementStatements(
        # SQLite has no sessions to terminate; degrade to an explanatory no-op
        kill_session="-- SQLite does not support killing sessions remotely",
        reindex_table='REINDEX "{table}";',
    ),
    insights=(
        DiagnosticInsight(
            id="sq-integrity",
            context="database",
            category="Maintenance",
            title="Integrity Check",
            description="Physical page scan for database corruption.",
            query="PRAGMA integrity_check;",
            impact="High",
        ),
        DiagnosticInsight(
            id="sq-freelist",
            context="database",
            category="Storage",
            title="Unused (Free) Pages",
            description="Pages ready for reuse. High counts suggest VACUUM is needed.",
            query="PRAGMA freelist_count;",
            impact="Low",
        ),
        DiagnosticInsight(
            id="sq-compile-ops",
            context="database",
            category="System",
            title="Compile Options",
            description="List of compile-time options used to build SQLite.",
            query="PRAGMA compile_options;",
            impact="Low",
        ),
    ),
)

_MONGODB = DialectDefinition(
    dialect=Dialect.MONGODB,
    version="1.0.0",
    introspection=IntrospectionQueries(tables="", columns="", foreign_keys=""),
    management=ManagementStatements(
        kill_session="db.killOp({session_id})",
        reindex_table="db.{table}.reIndex()",
    ),
    insights=(
        DiagnosticInsight(
            id="mg-db-stats",
            context="database",
            category="Storage",
            title="Database Statistics",
            description="Detailed size and object counts.",
            query="db.stats()",
            impact="Low",
        ),
        DiagnosticInsight(
            id="mg-slow-ops",
            context="database",
            category="Expensive Queries",
            title="Slow Op Profiling",
            description="Operations exceeding 100ms from the profiler.",
            query="db.system.profile.find({millis: {$gt: 100}}).sort({ts: -1}).limit(10)",
            impact="High",
        ),
        DiagnosticInsight(
            id="mg-conn",
            context="server",
            category="System",
            title="Connection Status",
            description="Current active connections.",
            query="db.serverStatus().connections",
            impact="Medium",
        ),
    ),
)

_PARQUET = DialectDefinition(
    dialect=Dialect.PARQUET,
    version="0.0.1",
    introspection=IntrospectionQueries(tables="", columns="", foreign_keys=""),
    management=ManagementStatements(kill_session="", reindex_table=""),
    insights=(),
)

BUILTIN_DEFINITIONS: Mapping[Dialect, DialectDefinition] = {
    definition.dialect: definition
    for definition in (_POSTGRES, _MSSQL, _MYSQL, _SQLITE, _MONGODB, _PARQUET)
}


# ============================================================================
# Primary-key detection
# ============================================================================


def _sqlite_pk(row: Mapping[str, Any]) -> bool:
    # PRAGMA table_info reports the 1-based position within the key, 0 otherwise
    value = row.get("pk")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value > 0


def _flag_pk(row: Mapping[str, Any]) -> bool:
    value = row.get("pk")
    return value is True or (not isinstance(value, bool) and value == 1)


def _mysql_pk(row: Mapping[str, Any]) -> bool:
    return str(row.get("key") or "").upper() == "PRI"


def _no_pk(row: Mapping[str, Any]) -> bool:
    return False


PRIMARY_KEY_RULES: Mapping[Dialect, Callable[[Mapping[str, Any]], bool]] = {
    Dialect.SQLITE: _sqlite_pk,
    Dialect.POSTGRES: _flag_pk,
    Dialect.MSSQL: _flag_pk,
    Dialect.MYSQL: _mysql_pk,
    Dialect.MONGODB: _no_pk,
    Dialect.PARQUET: _no_pk,
}


def is_primary_key(dialect: Dialect, row: Mapping[str, Any]) -> bool:
    """Decide whether a catalog column row describes a primary-key column.

    Args:
        dialect: Dialect that produced the row
        row: Column row with lower-cased keys

    Returns:
        True if the row's dialect-specific key marker is set
    """
    return PRIMARY_KEY_RULES[dialect](row)


# ============================================================================
# Registry
# ============================================================================


class DialectRegistry:
    """Lookup of dialect definitions with optional insight overrides.

    The override map replaces a dialect's insight catalog in the definitions
    handed out by this registry. The built-in table is never modified, so two
    registries with different overrides can coexist in one process.

    Example:
        registry = DialectRegistry(overrides={Dialect.SQLITE: [my_insight]})
        registry.definition_for(Dialect.SQLITE).insights  # -> (my_insight,)
    """

    def __init__(
        self,
        overrides: Mapping[Dialect, Sequence[DiagnosticInsight]] | None = None,
    ) -> None:
        self._definitions: dict[Dialect, DialectDefinition] = dict(BUILTIN_DEFINITIONS)
        for dialect, insights in (overrides or {}).items():
            dialect = Dialect.parse(dialect)
            self._definitions[dialect] = replace(
                self._definitions[dialect], insights=tuple(insights)
            )
            logger.debug(f"Using {len(insights)} custom insights for {dialect.value}")

    def definition_for(self, dialect: Dialect | str) -> DialectDefinition:
        """Return the definition for a dialect.

        Raises:
            UnknownDialectError: If the dialect is not part of the enumeration
        """
        return self._definitions[Dialect.parse(dialect)]

    def dialects(self) -> list[Dialect]:
        return list(self._definitions)

    def __contains__(self, dialect: object) -> bool:
        return dialect in self._definitions


__all__ = [
    "BUILTIN_DEFINITIONS",
    "Dialect",
    "DialectDefinition",
    "DialectRegistry",
    "DiagnosticInsight",
    "ImpactLevel",
    "InsightCategory",
    "InsightContext",
    "IntrospectionQueries",
    "ManagementStatements",
    "PRIMARY_KEY_RULES",
    "is_primary_key",
]
