"""Schema discovery over the remote bridge.

Runs a dialect's catalog queries through the bridge and normalizes the
answers into a ``DbSchema``. Remote catalogs differ in column naming and in
how they flag primary keys, so every row is read through lower-cased keys
with a few tolerated spellings.
"""

from __future__ import annotations

import logging
from typing import Any

from .bridge import CredentialEntry, RemoteBridge
from .dialects import Dialect, DialectRegistry, is_primary_key
from .models import ColumnDefinition, ColumnReference, DbSchema, QueryResult, TableDefinition

logger = logging.getLogger(__name__)

_NAME_KEYS = ("name", "field", "column_name")
_TYPE_KEYS = ("type", "data_type")


def _first(row: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = row.get(key)
        if value:
            return value
    return None


def table_names(result: QueryResult) -> list[str]:
    """Table names from a "list tables" result.

    Uses the ``name`` column when present, otherwise the first column.
    """
    first_column = result.columns[0].lower() if result.columns else None
    names = []
    for row in result.records():
        name = row.get("name") or (row.get(first_column) if first_column else None)
        if name:
            names.append(str(name))
    return names


def primary_key_column(dialect: Dialect, column_rows: list[dict[str, Any]]) -> str | None:
    """Name of the first primary-key column in a catalog column listing."""
    for row in column_rows:
        name = _first(row, _NAME_KEYS)
        if name and is_primary_key(dialect, row):
            return str(name)
    return None


def _reference(
    edge: dict[str, Any] | None,
    primary_keys: dict[str, str | None],
) -> ColumnReference | None:
    if edge is None or not edge.get("table"):
        return None
    table = str(edge["table"])
    # A key declared as "REFERENCES parent" leaves the target column empty
    column = edge.get("to") or primary_keys.get(table)
    if not column:
        logger.debug(f"Dropping foreign key to {table}: target column unknown")
        return None
    return ColumnReference(table=table, column=str(column))


def build_columns(
    dialect: Dialect,
    column_rows: list[dict[str, Any]],
    edge_rows: list[dict[str, Any]],
    primary_keys: dict[str, str | None] | None = None,
) -> list[ColumnDefinition]:
    """Join catalog column rows with foreign-key edges by source column name.

    ``primary_keys`` maps table names to their key column and fills in edges
    that name only the target table.
    """
    primary_keys = primary_keys or {}
    columns = []
    for row in column_rows:
        name = _first(row, _NAME_KEYS)
        if not name:
            logger.debug(f"Skipping unnamed column row: {row!r}")
            continue
        edge = next((edge for edge in edge_rows if edge.get("from") == name), None)
        columns.append(
            ColumnDefinition(
                name=str(name),
                type=str(_first(row, _TYPE_KEYS) or ""),
                is_primary_key=is_primary_key(dialect, row),
                references=_reference(edge, primary_keys),
            )
        )
    return columns


async def discover_remote_schema(
    bridge: RemoteBridge,
    credential: CredentialEntry,
    registry: DialectRegistry,
) -> DbSchema:
    """Introspect a remote database through the bridge.

    Args:
        bridge: Bridge used for every catalog query
        credential: Saved credential whose ``dbType`` selects the dialect
        registry: Source of the catalog query templates

    Returns:
        Normalized schema. A failed table listing gives an empty schema, a
        failed column listing drops that table, and a failed foreign-key
        listing leaves that table without references.
    """
    dialect = credential.dialect
    introspection = registry.definition_for(dialect).introspection
    if not introspection.supported:
        logger.debug(f"No catalog queries for {dialect.value}, returning empty schema")
        return DbSchema()

    listing = await bridge.execute_query(credential, introspection.tables)
    if listing.error:
        logger.warning(f"Could not list tables for credential {credential.id}: {listing.error}")
        return DbSchema()

    catalog: list[tuple[str, list[dict[str, Any]], list[dict[str, Any]]]] = []
    for name in table_names(listing):
        column_result = await bridge.execute_query(credential, introspection.columns_sql(name))
        if column_result.error:
            logger.warning(f"Skipping table {name}: {column_result.error}")
            continue

        edge_result = await bridge.execute_query(credential, introspection.foreign_keys_sql(name))
        if edge_result.error:
            logger.warning(f"No foreign keys for table {name}: {edge_result.error}")
            edge_rows: list[dict[str, Any]] = []
        else:
            edge_rows = edge_result.records()
        catalog.append((name, column_result.records(), edge_rows))

    primary_keys = {name: primary_key_column(dialect, column_rows) for name, column_rows, _ in catalog}
    tables = [
        TableDefinition(
            name=name,
            columns=build_columns(dialect, column_rows, edge_rows, primary_keys),
        )
        for name, column_rows, edge_rows in catalog
    ]

    logger.info(f"Discovered {len(tables)} tables for credential {credential.id}")
    return DbSchema(tables=tables)
