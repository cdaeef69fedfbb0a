"""Central dispatch from connection ids to execution paths.

A connection id resolves to exactly one path:

    credential supplied       -> remote bridge
    imported instance id      -> embedded SQLite engine
    document-store simulation -> document engine
    anything else             -> canned SQL engine

The router owns the embedded instance table and the cache of credentials
seen in the last ``list_connections`` call. It never caches query results.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Sequence

from .advisor import AdvisorFinding, DbaAdvisor
from .bridge import CredentialEntry, RemoteBridge, new_request_id
from .dialects import Dialect, DialectRegistry, InsightContext
from .discovery import discover_remote_schema
from .engines import EmbeddedEngine, ExecutionEngine, SimulatedDocumentEngine, SimulatedSqlEngine
from .models import Connection, ConnectionKind, DbSchema, DbStats, QueryResult

logger = logging.getLogger(__name__)

LOCAL_ID_PREFIX = "user-db"

BUILTIN_CONNECTIONS: tuple[Connection, ...] = (
    Connection("db-1", "Production DB (Simulated SQL)", Dialect.POSTGRES, ConnectionKind.SIMULATED),
    Connection("db-mssql", "Enterprise SQL Server (Simulated)", Dialect.MSSQL, ConnectionKind.SIMULATED),
    Connection("db-2", "Analytics Parquet (Simulated)", Dialect.PARQUET, ConnectionKind.SIMULATED),
    Connection("db-mongo", "User Store (Simulated MongoDB)", Dialect.MONGODB, ConnectionKind.SIMULATED),
)


def explain_sql(dialect: Dialect, sql: str) -> str:
    """Rewrite a statement into the dialect's plan-producing form."""
    if dialect == Dialect.POSTGRES:
        return f"EXPLAIN (FORMAT JSON, ANALYZE) {sql}"
    if dialect == Dialect.SQLITE:
        return f"EXPLAIN QUERY PLAN {sql}"
    if dialect == Dialect.MSSQL:
        return f"SET SHOWPLAN_XML ON;\nGO\n{sql}\nGO\nSET SHOWPLAN_XML OFF;"
    if dialect == Dialect.MYSQL:
        return f"EXPLAIN FORMAT=JSON {sql}"
    if dialect == Dialect.MONGODB:
        return sql if ".explain" in sql else f'{sql}.explain("executionStats")'
    return f"EXPLAIN {sql}"


class DatabaseRouter:
    """Routes schema, stats and query calls to the right engine or the bridge.

    Example:
        router = DatabaseRouter(simulated=SimulatedSqlEngine(latency_ms=0))
        await router.init()
        connection = await router.import_file("people.csv", data)
        result = await router.execute_query(connection.id, "SELECT * FROM people")
    """

    def __init__(
        self,
        registry: DialectRegistry | None = None,
        bridge: RemoteBridge | None = None,
        embedded: EmbeddedEngine | None = None,
        simulated: SimulatedSqlEngine | None = None,
        documents: SimulatedDocumentEngine | None = None,
        simulated_connections: Sequence[Connection] = BUILTIN_CONNECTIONS,
        advisor: DbaAdvisor | None = None,
    ) -> None:
        self.registry = registry or DialectRegistry()
        self.bridge = bridge or RemoteBridge()
        self.embedded = embedded or EmbeddedEngine(self.registry)
        self.simulated = simulated or SimulatedSqlEngine()
        self.documents = documents or SimulatedDocumentEngine()
        self.advisor = advisor or DbaAdvisor()

        self._simulated_connections = {c.id: c for c in simulated_connections}
        self._local: dict[str, Connection] = {}
        self._credentials: dict[str, CredentialEntry] = {}
        self._local_ids = itertools.count(1)

    async def init(self) -> None:
        for engine in (self.embedded, self.simulated, self.documents):
            await engine.init()

    # ========================================================================
    # Connections
    # ========================================================================

    async def list_connections(self) -> list[Connection]:
        """Remote credentials first, then imported instances, then simulations."""
        remote = []
        if self.bridge.available:
            credentials = await self.bridge.fetch_saved_credentials()
            self._credentials = {credential.id: credential for credential in credentials}
            remote = [
                Connection(credential.id, credential.display_name, credential.dialect, ConnectionKind.REMOTE)
                for credential in credentials
            ]
        return [*remote, *self._local.values(), *self._simulated_connections.values()]

    def credential_for(self, connection_id: str) -> CredentialEntry | None:
        """Credential cached by the last ``list_connections`` call, if any."""
        return self._credentials.get(connection_id)

    async def import_file(self, filename: str, data: bytes) -> Connection:
        """Load an uploaded file into a new embedded instance.

        Instance ids are ``user-db-<n>`` and are never reused.
        """
        conn = await self.embedded.create_from_file(filename, data)
        instance_id = f"{LOCAL_ID_PREFIX}-{next(self._local_ids)}"
        self.embedded.register(instance_id, conn)
        connection = Connection(instance_id, filename, self.embedded.dialect, ConnectionKind.LOCAL)
        self._local[instance_id] = connection
        logger.info(f"Registered {filename} as {instance_id}")
        return connection

    def dialect_for(self, connection_id: str, credential: CredentialEntry | None = None) -> Dialect:
        if credential is not None:
            return credential.dialect
        if connection_id in self._local:
            return self._local[connection_id].dialect
        if connection_id in self._simulated_connections:
            return self._simulated_connections[connection_id].dialect
        return Dialect.POSTGRES

    def _engine_for(self, connection_id: str) -> ExecutionEngine:
        if connection_id in self._local:
            return self.embedded
        simulated = self._simulated_connections.get(connection_id)
        if simulated is not None and simulated.dialect == Dialect.MONGODB:
            return self.documents
        return self.simulated

    # ========================================================================
    # Schema and stats
    # ========================================================================

    async def schema_for(self, connection_id: str, credential: CredentialEntry | None = None) -> DbSchema:
        if credential is not None:
            return await discover_remote_schema(self.bridge, credential, self.registry)
        return await self._engine_for(connection_id).get_schema(connection_id)

    async def stats_for(self, connection_id: str, credential: CredentialEntry | None = None) -> DbStats:
        """Aggregate counts; remote stats are folded from the discovered schema."""
        if credential is not None:
            return DbStats.from_schema(await self.schema_for(connection_id, credential))
        return await self._engine_for(connection_id).get_stats(connection_id)

    # ========================================================================
    # Execution
    # ========================================================================

    async def execute_query(self, connection_id: str, sql: str, request_id: str | None = None) -> QueryResult:
        """Run a statement on a local or simulated connection.

        Raises:
            InstanceNotFoundError: If an embedded instance disappeared
        """
        engine = self._engine_for(connection_id)
        logger.debug(f"Query {request_id or '-'} on {connection_id} via {type(engine).__name__}")
        return await engine.execute_query(connection_id, sql)

    async def execute_remote_query(
        self, credential: CredentialEntry, sql: str, request_id: str | None = None
    ) -> QueryResult:
        return await self.bridge.execute_query(credential, sql, request_id=request_id)

    async def _run(
        self,
        connection_id: str,
        sql: str,
        credential: CredentialEntry | None,
        request_id: str,
    ) -> QueryResult:
        if credential is not None:
            return await self.execute_remote_query(credential, sql, request_id=request_id)
        return await self.execute_query(connection_id, sql, request_id=request_id)

    async def explain_query(
        self, connection_id: str, sql: str, credential: CredentialEntry | None = None
    ) -> QueryResult:
        dialect = self.dialect_for(connection_id, credential)
        return await self._run(connection_id, explain_sql(dialect, sql), credential, new_request_id("expl"))

    # ========================================================================
    # Diagnostics and management
    # ========================================================================

    async def run_insight(
        self, connection_id: str, insight_id: str, credential: CredentialEntry | None = None
    ) -> QueryResult:
        """Run one catalog diagnostic against a connection."""
        dialect = self.dialect_for(connection_id, credential)
        insight = self.registry.definition_for(dialect).find_insight(insight_id)
        if insight is None:
            return QueryResult.failure(f"Unknown insight '{insight_id}' for {dialect.value}")
        return await self._run(connection_id, insight.query, credential, new_request_id(f"insight-{insight.id}"))

    async def refresh_insights(
        self,
        connection_id: str,
        context: InsightContext | None = None,
        credential: CredentialEntry | None = None,
    ) -> dict[str, QueryResult]:
        """Run every catalog insight for a context concurrently.

        Completion order is not guaranteed; results are keyed by insight id.
        """
        dialect = self.dialect_for(connection_id, credential)
        insights = self.registry.definition_for(dialect).insights_for(context)
        results = await asyncio.gather(
            *(
                self._run(connection_id, insight.query, credential, new_request_id(f"insight-{insight.id}"))
                for insight in insights
            )
        )
        return {insight.id: result for insight, result in zip(insights, results)}

    def kill_session_sql(
        self, connection_id: str, session_id: str | int, credential: CredentialEntry | None = None
    ) -> str:
        dialect = self.dialect_for(connection_id, credential)
        return self.registry.definition_for(dialect).management.kill_session_sql(session_id)

    def reindex_table_sql(
        self, connection_id: str, table: str, credential: CredentialEntry | None = None
    ) -> str:
        dialect = self.dialect_for(connection_id, credential)
        return self.registry.definition_for(dialect).management.reindex_table_sql(table)

    async def audit(self, connection_id: str, credential: CredentialEntry | None = None) -> list[AdvisorFinding]:
        """Run the configuration and schema rules for a connection.

        The configuration rules use the first Configuration insight in the
        dialect's catalog; a failed configuration query only skips those rules.
        """
        dialect = self.dialect_for(connection_id, credential)
        findings: list[AdvisorFinding] = []

        config_insight = next(
            (i for i in self.registry.definition_for(dialect).insights if i.category == "Configuration"),
            None,
        )
        if config_insight is not None:
            result = await self._run(
                connection_id, config_insight.query, credential, new_request_id(f"audit-{config_insight.id}")
            )
            if result.error:
                logger.warning(f"Configuration audit skipped for {connection_id}: {result.error}")
            else:
                findings.extend(self.advisor.audit_configuration(dialect, result.records()))

        findings.extend(self.advisor.audit_schema(await self.schema_for(connection_id, credential)))
        return findings

    async def close(self) -> None:
        await self.embedded.close()
