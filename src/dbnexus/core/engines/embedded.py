"""Embedded file-backed engine.

Each imported file becomes an in-memory SQLite database owned by this
engine. The stdlib sqlite3 module is blocking, so every call runs in the
default executor to keep the event loop responsive.

Supported inputs:
    - SQLite containers (.sqlite, .db, .sqlite3), loaded byte-for-byte
    - Delimited text (.csv, .tsv), loaded into one all-TEXT table
    - Anything else becomes an empty database
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import re
import sqlite3
import time
from typing import Any

from ..dialects import Dialect, DialectRegistry, is_primary_key
from ..exceptions import InstanceNotFoundError
from ..models import ColumnDefinition, ColumnReference, DbSchema, DbStats, QueryResult, TableDefinition

logger = logging.getLogger(__name__)

DATABASE_EXTENSIONS = (".sqlite", ".db", ".sqlite3")
DELIMITED_EXTENSIONS = {".csv": ",", ".tsv": "\t"}

_NON_IDENTIFIER = re.compile(r"[^a-zA-Z0-9]")
_EXTENSION_SUFFIX = re.compile(r"_(csv|tsv|json|parquet)$", re.IGNORECASE)


def sanitize_table_name(filename: str) -> str:
    """Derive a table name from an uploaded file name.

    Non-alphanumerics become underscores and the data-file extension is
    dropped: ``"sales 2024.csv"`` -> ``"sales_2024"``.
    """
    return _EXTENSION_SUFFIX.sub("", _NON_IDENTIFIER.sub("_", filename))


def split_statements(script: str) -> list[str]:
    """Split a script into complete statements.

    Statement boundaries are semicolons that end a complete statement
    according to ``sqlite3.complete_statement``, so semicolons inside string
    literals and trigger bodies stay in place. Trailing text without a
    semicolon is returned as a final statement.
    """
    statements: list[str] = []
    buffer = ""
    for char in script:
        buffer += char
        if char == ";" and sqlite3.complete_statement(buffer):
            if buffer.strip(" \t\r\n;"):
                statements.append(buffer.strip())
            buffer = ""
    if buffer.strip():
        statements.append(buffer.strip())
    return statements


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


class EmbeddedEngine:
    """In-process SQLite engine holding one database per imported file.

    Attributes:
        dialect: Dialect.SQLITE

    Example:
        engine = EmbeddedEngine()
        conn = await engine.create_from_file("people.csv", b"id,name\\n1,Ann\\n")
        engine.register("user-db-1", conn)
        result = await engine.execute_query("user-db-1", "SELECT * FROM people")
    """

    dialect = Dialect.SQLITE

    def __init__(self, registry: DialectRegistry | None = None) -> None:
        self._registry = registry or DialectRegistry()
        self._instances: dict[str, sqlite3.Connection] = {}

    async def init(self) -> None:
        logger.debug(f"Embedded engine ready (sqlite {sqlite3.sqlite_version})")

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._instances

    def instance_ids(self) -> list[str]:
        return list(self._instances)

    def register(self, instance_id: str, conn: sqlite3.Connection) -> None:
        self._instances[instance_id] = conn

    async def create_from_file(self, filename: str, data: bytes) -> sqlite3.Connection:
        """Build a database from an uploaded file.

        The returned connection is not registered; pass it to ``register``
        under an id of the caller's choosing.

        Args:
            filename: Original file name; its extension selects the loader
            data: Raw file contents

        Raises:
            sqlite3.DatabaseError: If a database container cannot be loaded
        """

        def _create() -> sqlite3.Connection:
            conn = sqlite3.connect(":memory:", check_same_thread=False, isolation_level=None)
            lowered = filename.lower()
            try:
                if lowered.endswith(DATABASE_EXTENSIONS):
                    conn.deserialize(data)
                    # Reads the header, so a non-database payload fails here
                    conn.execute("PRAGMA schema_version").fetchone()
                    conn.execute("PRAGMA foreign_keys = ON")
                    logger.debug(f"Loaded SQLite container {filename} ({len(data)} bytes)")
                else:
                    for extension, delimiter in DELIMITED_EXTENSIONS.items():
                        if lowered.endswith(extension):
                            self._import_delimited(conn, filename, data, delimiter)
                            break
                    else:
                        logger.debug(f"Unrecognized file type for {filename}, created empty database")
            except Exception:
                conn.close()
                raise
            return conn

        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, _create)

    def _import_delimited(
        self, conn: sqlite3.Connection, filename: str, data: bytes, delimiter: str
    ) -> None:
        text = data.decode("utf-8-sig", errors="replace")
        reader = csv.reader(io.StringIO(text), delimiter=delimiter)
        # Blank lines come back as empty lists
        records = [row for row in reader if any(cell.strip() for cell in row)]
        if len(records) < 2:
            logger.debug(f"No data rows in {filename}, created empty database")
            return

        header, body = records[0], records[1:]
        width = len(header)
        table = sanitize_table_name(filename)
        columns = ", ".join(f"{_quote(name)} TEXT" for name in header)
        placeholders = ", ".join("?" for _ in header)

        conn.execute(f"CREATE TABLE {_quote(table)} ({columns})")
        conn.execute("BEGIN")
        try:
            conn.executemany(
                f"INSERT INTO {_quote(table)} VALUES ({placeholders})",
                (row[:width] + [None] * (width - len(row)) for row in body),
            )
            conn.execute("COMMIT")
        except sqlite3.Error:
            conn.execute("ROLLBACK")
            raise
        logger.info(f"Imported {len(body)} rows from {filename} into table {table}")

    def _connection(self, instance_id: str) -> sqlite3.Connection:
        try:
            return self._instances[instance_id]
        except KeyError:
            raise InstanceNotFoundError(instance_id) from None

    async def execute_query(self, instance_id: str, sql: str) -> QueryResult:
        """Run a script and return the last result set it produced.

        Raises:
            InstanceNotFoundError: If no instance has this id
        """
        conn = self._connection(instance_id)

        def _execute() -> QueryResult:
            start = time.perf_counter()
            columns: list[str] = []
            rows: list[list[Any]] = []
            try:
                for statement in split_statements(sql):
                    cursor = conn.execute(statement)
                    if cursor.description:
                        columns = [desc[0] for desc in cursor.description]
                        rows = [list(row) for row in cursor.fetchall()]
            except sqlite3.Error as e:
                elapsed = round((time.perf_counter() - start) * 1000)
                logger.debug(f"Query failed on {instance_id}: {e}")
                return QueryResult.failure(str(e), execution_time_ms=elapsed)

            return QueryResult(
                columns=columns,
                rows=rows,
                row_count=len(rows),
                execution_time_ms=round((time.perf_counter() - start) * 1000),
            )

        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, _execute)

    async def get_schema(self, instance_id: str) -> DbSchema:
        """Introspect tables, columns and foreign keys.

        Unknown instances and catalog errors both yield an empty schema.
        """
        conn = self._instances.get(instance_id)
        if conn is None:
            return DbSchema()

        introspection = self._registry.definition_for(self.dialect).introspection

        def _read(sql: str) -> list[dict[str, Any]]:
            cursor = conn.execute(sql)
            keys = [desc[0].lower() for desc in cursor.description or ()]
            return [dict(zip(keys, row)) for row in cursor.fetchall()]

        def _target_column(edge: dict[str, Any]) -> str | None:
            if edge["to"]:
                return edge["to"]
            # "REFERENCES parent" without a column targets the parent's primary key
            keyed = sorted(
                (row["pk"], row["name"]) for row in _read(introspection.columns_sql(edge["table"])) if row["pk"]
            )
            return keyed[0][1] if keyed else None

        def _introspect() -> DbSchema:
            tables: list[TableDefinition] = []
            for table_row in _read(introspection.tables):
                name = table_row["name"]
                edges = {}
                for edge in _read(introspection.foreign_keys_sql(name)):
                    column = _target_column(edge)
                    if column is None:
                        logger.debug(f"Dropping foreign key {name}.{edge['from']}: no key column on {edge['table']}")
                        continue
                    edges[edge["from"]] = ColumnReference(table=edge["table"], column=column)
                columns = [
                    ColumnDefinition(
                        name=row["name"],
                        type=row["type"] or "",
                        is_primary_key=is_primary_key(self.dialect, row),
                        references=edges.get(row["name"]),
                    )
                    for row in _read(introspection.columns_sql(name))
                ]
                tables.append(TableDefinition(name=name, columns=columns))
            return DbSchema(tables=tables)

        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, _introspect)
        except sqlite3.Error as e:
            logger.warning(f"Schema introspection failed for {instance_id}: {e}")
            return DbSchema()

    async def get_stats(self, instance_id: str) -> DbStats:
        conn = self._instances.get(instance_id)
        if conn is None:
            return DbStats()

        schema = await self.get_schema(instance_id)

        def _count_indexes() -> int:
            row = conn.execute("SELECT count(*) FROM sqlite_master WHERE type='index'").fetchone()
            return int(row[0]) if row else 0

        loop = asyncio.get_event_loop()
        try:
            index_count = await loop.run_in_executor(None, _count_indexes)
        except sqlite3.Error as e:
            logger.warning(f"Index count failed for {instance_id}: {e}")
            return DbStats()
        return DbStats.from_schema(schema, index_count=index_count)

    async def close(self) -> None:
        """Close every instance connection."""

        def _close() -> None:
            for conn in self._instances.values():
                conn.close()

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, _close)
        self._instances.clear()
