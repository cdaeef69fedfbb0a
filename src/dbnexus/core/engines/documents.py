"""Simulated document-store engine.

Queries are shell-style commands such as ``db.users.find({})``. The
collection name is taken from the first ``db.<name>.`` path in the text and
the engine returns that collection's canned documents, flattened one level
deep for tabular display.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any

from ..dialects import Dialect
from ..models import ColumnDefinition, ColumnReference, DbSchema, DbStats, QueryResult, TableDefinition

logger = logging.getLogger(__name__)

DEFAULT_LATENCY_MS = 300
DEFAULT_COLLECTION = "users"
COLLECTIONS = ("users", "orders", "logs", "settings")
ID_FIELD = "_id"

_COLLECTION_PATH = re.compile(r"db\.(\w+)\.")


def collection_from_query(query: str) -> str:
    match = _COLLECTION_PATH.search(query)
    return match.group(1) if match else DEFAULT_COLLECTION


def canned_documents(collection: str) -> list[dict[str, Any]]:
    if collection == "users":
        return [
            {"_id": "64a1b2c3", "username": "jdoe", "profile": {"age": 30, "city": "NY"}, "tags": ["dev", "admin"]},
            {"_id": "64a1b2c4", "username": "asmith", "profile": {"age": 25, "city": "SF"}, "tags": ["design"]},
            {"_id": "64a1b2c5", "username": "bwong", "profile": {"age": 34, "city": "London"}, "tags": ["hr"]},
        ]
    if collection == "orders":
        return [
            {"_id": "77c1d2e3", "user_id": "64a1b2c3", "total": 120.5, "status": "shipped", "shipping": {"city": "NY"}},
            {"_id": "77c1d2e4", "user_id": "64a1b2c5", "total": 42.0, "status": "pending", "shipping": {"city": "London"}},
        ]
    return [
        {"_id": "99x88y77", "collection": collection, "status": "processed", "metadata": {"source": "web"}},
        {"_id": "99x88y78", "collection": collection, "status": "pending", "metadata": {"source": "api"}},
    ]


def flatten_columns(documents: list[dict[str, Any]]) -> list[str]:
    """Column names in first-seen order; nested objects become ``key.sub``.

    Only one level is flattened. Lists are kept as single values.
    """
    columns: dict[str, None] = {}
    for document in documents:
        for key, value in document.items():
            if isinstance(value, dict):
                for sub_key in value:
                    columns[f"{key}.{sub_key}"] = None
            else:
                columns[key] = None
    return list(columns)


def _lookup(document: dict[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def referenced_collection(column: str) -> str | None:
    """Collection an ``_id``-suffixed key points at, by naming convention.

    ``user_id`` -> ``users``. The ``_id`` key itself references nothing.
    """
    if column == ID_FIELD or not column.endswith(ID_FIELD):
        return None
    stem = column[: -len(ID_FIELD)].rstrip("_.")
    if not stem:
        return None
    return stem if stem.endswith("s") else f"{stem}s"


class SimulatedDocumentEngine:
    """Canned document-store engine.

    Attributes:
        dialect: Dialect.MONGODB
        latency_ms: Artificial delay applied to every query
    """

    dialect = Dialect.MONGODB

    def __init__(self, latency_ms: int = DEFAULT_LATENCY_MS) -> None:
        self.latency_ms = latency_ms

    async def init(self) -> None:
        pass

    async def execute_query(self, instance_id: str, sql: str) -> QueryResult:
        start = time.perf_counter()
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000)

        collection = collection_from_query(sql)
        documents = canned_documents(collection)
        columns = flatten_columns(documents)
        rows = [[_lookup(document, column) for column in columns] for document in documents]
        logger.debug(f"Simulated {instance_id}: {len(rows)} documents from {collection}")

        return QueryResult(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            execution_time_ms=round((time.perf_counter() - start) * 1000),
            raw_json=documents,
        )

    async def get_schema(self, instance_id: str) -> DbSchema:
        tables = []
        for name in COLLECTIONS:
            sample = canned_documents(name)[:1]
            columns = []
            for column in flatten_columns(sample):
                target = referenced_collection(column)
                columns.append(
                    ColumnDefinition(
                        name=column,
                        type="bson",
                        is_primary_key=column == ID_FIELD,
                        references=ColumnReference(target, ID_FIELD) if target else None,
                    )
                )
            tables.append(TableDefinition(name=name, columns=columns))
        return DbSchema(tables=tables)

    async def get_stats(self, instance_id: str) -> DbStats:
        return DbStats.from_schema(await self.get_schema(instance_id))
