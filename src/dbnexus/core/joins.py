"""Join inference for tables added to an existing query.

When a table is added to a statement that already references other tables,
``infer_joins`` proposes the most plausible join predicate against one of
them. Candidates are scored in strict tiers and the first match wins:

    10  the new table declares a foreign key to the existing table
     8  the existing table declares a foreign key to the new table
     2  both share an id/key-like column name (heuristic, not authoritative)

Across existing tables the highest tier wins; within a tier the first
existing table in scan order wins. Tables with no candidate are appended as
standalone ``SELECT * ... LIMIT 100`` statements instead.

Example:
    plan = plan_table_drop('SELECT * FROM "orders";', ["customers"], schema)
    plan.joins[0].condition
    # -> '"orders"."customer_id" = "customers"."id"' (scored 8)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .models import DbSchema, TableDefinition

logger = logging.getLogger(__name__)

FOREIGN_KEY_SCORE = 10
REVERSE_FOREIGN_KEY_SCORE = 8
HEURISTIC_SCORE = 2

STANDALONE_LIMIT = 100

_IDENTIFIER = re.compile(r'"?([\w$]+)"?')
_PROJECTION = re.compile(r"SELECT\s+([\s\S]+?)\s+FROM", re.IGNORECASE)
_STATEMENT_END = re.compile(r";?\s*$")


def _qualified(table: str, column: str) -> str:
    return f'"{table}"."{column}"'


def standalone_select(table: str) -> str:
    return f'SELECT * FROM "{table}" LIMIT {STANDALONE_LIMIT};'


@dataclass
class JoinCandidate:
    """A proposed join between a new table and one already in the query."""

    new_table: TableDefinition
    existing_table: str
    condition: str
    score: int

    @property
    def is_heuristic(self) -> bool:
        return self.score == HEURISTIC_SCORE

    def to_dict(self) -> dict[str, object]:
        return {
            "newTable": self.new_table.name,
            "existingTable": self.existing_table,
            "joinCondition": self.condition,
            "score": self.score,
            "isHeuristic": self.is_heuristic,
            "columns": [column.name for column in self.new_table.columns],
        }


@dataclass
class JoinInference:
    joins: list[JoinCandidate] = field(default_factory=list)
    standalone: list[str] = field(default_factory=list)


def score_join(
    new_table: TableDefinition, existing: TableDefinition | None, existing_name: str
) -> JoinCandidate | None:
    """Score one (new, existing) pair, stopping at the first matching tier."""
    for column in new_table.columns:
        if column.references is not None and column.references.table == existing_name:
            return JoinCandidate(
                new_table=new_table,
                existing_table=existing_name,
                condition=(
                    f"{_qualified(new_table.name, column.name)} = "
                    f"{_qualified(existing_name, column.references.column)}"
                ),
                score=FOREIGN_KEY_SCORE,
            )

    # A table pairs with itself only through a declared self-reference
    if existing is None or existing_name == new_table.name:
        return None

    for column in existing.columns:
        if column.references is not None and column.references.table == new_table.name:
            return JoinCandidate(
                new_table=new_table,
                existing_table=existing_name,
                condition=(
                    f"{_qualified(existing_name, column.name)} = "
                    f"{_qualified(new_table.name, column.references.column)}"
                ),
                score=REVERSE_FOREIGN_KEY_SCORE,
            )

    existing_by_lower = {}
    for column in existing.columns:
        existing_by_lower.setdefault(column.name.lower(), column.name)
    for column in new_table.columns:
        lowered = column.name.lower()
        if lowered in existing_by_lower and ("id" in lowered or "key" in lowered):
            return JoinCandidate(
                new_table=new_table,
                existing_table=existing_name,
                condition=(
                    f"{_qualified(new_table.name, column.name)} = "
                    f"{_qualified(existing_name, existing_by_lower[lowered])}"
                ),
                score=HEURISTIC_SCORE,
            )
    return None


def infer_joins(
    schema: DbSchema,
    existing_tables: Sequence[str],
    new_tables: Iterable[str],
) -> JoinInference:
    """Propose at most one join per new table.

    Args:
        schema: Normalized schema of the target database
        existing_tables: Tables already referenced, in scan order
        new_tables: Tables being added; names missing from the schema are ignored

    Returns:
        Joins for tables with a candidate, and standalone statements for the rest
    """
    inference = JoinInference()
    for name in new_tables:
        new_table = schema.table(name)
        if new_table is None:
            logger.debug(f"Ignoring table {name!r}, not in schema")
            continue

        best: JoinCandidate | None = None
        for existing_name in existing_tables:
            candidate = score_join(new_table, schema.table(existing_name), existing_name)
            if candidate is not None and (best is None or candidate.score > best.score):
                best = candidate

        if best is None:
            inference.standalone.append(standalone_select(name))
        else:
            inference.joins.append(best)
    return inference


def referenced_tables(sql: str, schema: DbSchema) -> list[str]:
    """Schema tables mentioned in SQL text, deduplicated in first-seen order."""
    known = set(schema.table_names)
    seen: dict[str, None] = {}
    for match in _IDENTIFIER.finditer(sql):
        token = match.group(1)
        if token in known:
            seen.setdefault(token, None)
    return list(seen)


@dataclass
class TableDropPlan:
    """Outcome of adding tables to a statement.

    ``sql`` already contains the ``standalone`` statements; ``joins`` still
    need confirmation before ``apply_joins`` writes them into the statement.
    """

    sql: str
    joins: list[JoinCandidate] = field(default_factory=list)
    standalone: list[str] = field(default_factory=list)


def plan_table_drop(sql: str, new_tables: Sequence[str], schema: DbSchema) -> TableDropPlan:
    text = sql.strip()
    if not text:
        statements = [standalone_select(name) for name in new_tables]
        return TableDropPlan(sql="\n\n".join(statements), standalone=statements)

    inference = infer_joins(schema, referenced_tables(text, schema), new_tables)
    for statement in inference.standalone:
        text += f"\n\n{statement}"
    return TableDropPlan(sql=text, joins=inference.joins, standalone=inference.standalone)


@dataclass
class ConfirmedJoin:
    """A join accepted by the user, with the columns to add to the projection."""

    table: str
    condition: str
    columns: list[str] = field(default_factory=list)


def _projection_columns(table: str, columns: Sequence[str], projection: str) -> str:
    lowered = projection.lower()
    rendered = []
    for column in columns:
        name = column.lower()
        if f'"{name}"' in lowered or f", {name}" in lowered:
            rendered.append(f'{_qualified(table, column)} AS "{table}_{column}"')
        else:
            rendered.append(_qualified(table, column))
    return ",\n  ".join(rendered)


def apply_joins(sql: str, confirmed: Sequence[ConfirmedJoin]) -> str:
    """Write confirmed joins into a statement.

    Each join becomes an ``INNER JOIN`` at the end of the statement, and its
    chosen columns are appended to the projection. A column whose name already
    appears in the projection is aliased as ``<table>_<column>``. Statements
    without a recognizable ``SELECT ... FROM`` projection only get the joins.
    """
    text = sql.strip()
    match = _PROJECTION.search(text)
    projection = match.group(1) if match else "*"

    for join in confirmed:
        clause = f'\nINNER JOIN "{join.table}" ON {join.condition};'
        text = _STATEMENT_END.sub(lambda _: clause, text, count=1)
        if not join.columns:
            continue
        added = _projection_columns(join.table, join.columns, projection)
        if projection.strip() == "*":
            projection = f"*,\n  {added}"
        else:
            projection += f",\n  {added}"

    if match:
        text = text[: match.start(1)] + projection + text[match.end(1) :]
    return text


__all__ = [
    "ConfirmedJoin",
    "JoinCandidate",
    "JoinInference",
    "TableDropPlan",
    "apply_joins",
    "infer_joins",
    "plan_table_drop",
    "referenced_tables",
    "score_join",
    "standalone_select",
]
