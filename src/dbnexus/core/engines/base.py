"""Execution engine protocol.

Every engine exposes the same async capability set so the router can treat
embedded, simulated and document-store backends interchangeably.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..dialects import Dialect
from ..models import DbSchema, DbStats, QueryResult


@runtime_checkable
class ExecutionEngine(Protocol):
    """Protocol implemented by all execution engines.

    Example implementation:
        class EchoEngine:
            dialect = Dialect.SQLITE

            async def init(self) -> None:
                pass

            async def execute_query(self, instance_id: str, sql: str) -> QueryResult:
                return QueryResult(columns=["sql"], rows=[[sql]], row_count=1)

            async def get_schema(self, instance_id: str) -> DbSchema:
                return DbSchema()

            async def get_stats(self, instance_id: str) -> DbStats:
                return DbStats()
    """

    dialect: Dialect

    async def init(self) -> None:
        """Prepare the engine for use. Safe to call more than once."""
        ...

    async def execute_query(self, instance_id: str, sql: str) -> QueryResult:
        """Run SQL (or a document-store command) against one instance.

        Args:
            instance_id: Engine-specific instance identifier
            sql: Statement text

        Returns:
            QueryResult; execution errors are reported in ``error``
        """
        ...

    async def get_schema(self, instance_id: str) -> DbSchema:
        """Return the normalized schema; empty when introspection fails."""
        ...

    async def get_stats(self, instance_id: str) -> DbStats:
        """Return aggregate counts; zeroed when introspection fails."""
        ...
