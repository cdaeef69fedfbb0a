"""Shared data classes for query results, schemas and connections.

Every engine, the router and the remote bridge normalize their output into
these shapes. ``to_dict`` methods emit the camelCase wire form that UI
consumers expect.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .dialects import Dialect


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class QueryResult:
    """Unified tabular result across engines.

    Attributes:
        columns: Column names in result order (duplicates allowed, positional)
        rows: Positional rows; each row has ``len(columns)`` values
        row_count: Number of rows returned
        execution_time_ms: Wall time spent producing the result
        timestamp: Epoch milliseconds when the result was produced
        error: Error message; when set, columns and rows are empty
        raw_json: Original documents for document-store results
    """

    columns: list[str] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)
    row_count: int = 0
    execution_time_ms: float = 0
    timestamp: int = field(default_factory=now_ms)
    error: str | None = None
    raw_json: Any = None

    @classmethod
    def failure(cls, error: str, execution_time_ms: float = 0) -> QueryResult:
        return cls(error=error, execution_time_ms=execution_time_ms)

    @property
    def ok(self) -> bool:
        return self.error is None

    def records(self) -> list[dict[str, Any]]:
        """Rows as dicts keyed by lower-cased column name.

        With duplicate column names the last occurrence wins.
        """
        keys = [column.lower() for column in self.columns]
        return [dict(zip(keys, row)) for row in self.rows]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "columns": list(self.columns),
            "rows": [list(row) for row in self.rows],
            "rowCount": self.row_count,
            "executionTimeMs": self.execution_time_ms,
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.raw_json is not None:
            data["rawJson"] = self.raw_json
        return data


@dataclass(frozen=True)
class ColumnReference:
    """Target of a foreign key."""

    table: str
    column: str


@dataclass
class ColumnDefinition:
    """One column of a normalized table.

    ``is_foreign_key`` is derived from ``references`` so a foreign-key column
    always carries its target.
    """

    name: str
    type: str
    is_primary_key: bool = False
    references: ColumnReference | None = None

    @property
    def is_foreign_key(self) -> bool:
        return self.references is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "isPrimaryKey": self.is_primary_key,
            "isForeignKey": self.is_foreign_key,
        }
        if self.references is not None:
            data["references"] = {
                "table": self.references.table,
                "column": self.references.column,
            }
        return data


@dataclass
class TableDefinition:
    name: str
    columns: list[ColumnDefinition] = field(default_factory=list)

    def column(self, name: str) -> ColumnDefinition | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def primary_keys(self) -> list[ColumnDefinition]:
        return [column for column in self.columns if column.is_primary_key]

    @property
    def foreign_keys(self) -> list[ColumnDefinition]:
        return [column for column in self.columns if column.is_foreign_key]

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "columns": [c.to_dict() for c in self.columns]}


@dataclass
class DbSchema:
    tables: list[TableDefinition] = field(default_factory=list)

    def table(self, name: str) -> TableDefinition | None:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    @property
    def table_names(self) -> list[str]:
        return [table.name for table in self.tables]

    def to_dict(self) -> dict[str, Any]:
        return {"tables": [t.to_dict() for t in self.tables]}


@dataclass
class DbStats:
    """Aggregate counts over a schema.

    ``index_count`` approximates with the primary-key count when no index
    catalog was consulted.
    """

    table_count: int = 0
    column_count: int = 0
    pk_count: int = 0
    fk_count: int = 0
    index_count: int = 0

    @classmethod
    def from_schema(cls, schema: DbSchema, index_count: int | None = None) -> DbStats:
        columns = [column for table in schema.tables for column in table.columns]
        pk_count = sum(1 for column in columns if column.is_primary_key)
        return cls(
            table_count=len(schema.tables),
            column_count=len(columns),
            pk_count=pk_count,
            fk_count=sum(1 for column in columns if column.is_foreign_key),
            index_count=pk_count if index_count is None else index_count,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "tableCount": self.table_count,
            "columnCount": self.column_count,
            "pkCount": self.pk_count,
            "fkCount": self.fk_count,
            "indexCount": self.index_count,
        }


class ConnectionKind(Enum):
    """Where a connection's queries are executed."""

    REMOTE = "remote"
    LOCAL = "local"
    SIMULATED = "simulated"


@dataclass
class Connection:
    """A queryable target known to the router.

    Attributes:
        id: Opaque identifier (credential id, instance id or built-in id)
        name: Display name
        dialect: Dialect used for introspection and management statements
        kind: Execution path for the connection
    """

    id: str
    name: str
    dialect: Dialect
    kind: ConnectionKind

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "dialect": self.dialect.value,
            "kind": self.kind.value,
        }


__all__ = [
    "ColumnDefinition",
    "ColumnReference",
    "Connection",
    "ConnectionKind",
    "DbSchema",
    "DbStats",
    "QueryResult",
    "TableDefinition",
    "now_ms",
]
