"""Markdown formatting for MCP tool responses.

Tools return JSON-friendly dicts by default; these helpers render the same
data for ``format="markdown"``.
"""

from typing import Any

from .core.advisor import AdvisorFinding
from .core.models import Connection, DbSchema, QueryResult

# Cells longer than this are truncated in markdown tables
MAX_CELL_WIDTH = 80


def _cell(value: Any) -> str:
    if value is None:
        return "NULL"
    text = str(value).replace("|", "\\|").replace("\n", " ")
    if len(text) > MAX_CELL_WIDTH:
        text = text[: MAX_CELL_WIDTH - 3] + "..."
    return text


def format_result_markdown(result: QueryResult, max_rows: int = 50) -> str:
    """Format a query result as a markdown table.

    Args:
        result: Result to render
        max_rows: Rows shown before truncating

    Returns:
        Markdown table with a summary line
    """
    if result.error:
        return f"**Error**: {result.error}"
    if not result.columns:
        return f"Statement executed in {result.execution_time_ms}ms (no result set)"

    lines = [
        "| " + " | ".join(_cell(column) for column in result.columns) + " |",
        "|" + "---|" * len(result.columns),
    ]
    for row in result.rows[:max_rows]:
        lines.append("| " + " | ".join(_cell(value) for value in row) + " |")

    summary = f"{result.row_count} row(s) in {result.execution_time_ms}ms"
    if len(result.rows) > max_rows:
        summary += f", showing first {max_rows}"
    return "\n".join(lines) + f"\n\n_{summary}_"


def format_connections_markdown(connections: list[Connection]) -> str:
    if not connections:
        return "No connections available"
    lines = [f"## Connections ({len(connections)})", ""]
    lines.extend(
        f"- **{c.name}** (`{c.id}`): {c.dialect.value}, {c.kind.value}" for c in connections
    )
    return "\n".join(lines)


def format_schema_markdown(schema: DbSchema) -> str:
    if not schema.tables:
        return "No tables found"
    lines = [f"## Schema ({len(schema.tables)} tables)"]
    for table in schema.tables:
        lines.extend(["", f"### {table.name}"])
        for column in table.columns:
            flags = []
            if column.is_primary_key:
                flags.append("PK")
            if column.references is not None:
                flags.append(f"FK -> {column.references.table}.{column.references.column}")
            suffix = f" ({', '.join(flags)})" if flags else ""
            lines.append(f"- `{column.name}` {column.type}{suffix}")
    return "\n".join(lines)


_SEVERITY_ORDER = {"Critical": 0, "Warning": 1, "Pass": 2}


def format_findings_markdown(findings: list[AdvisorFinding]) -> str:
    if not findings:
        return "No findings"
    lines = [f"## Audit ({len(findings)} findings)", ""]
    for finding in sorted(findings, key=lambda f: _SEVERITY_ORDER[f.severity]):
        lines.append(f"- **[{finding.severity}] {finding.title}**: {finding.message}")
        if finding.recommendation:
            lines.append(f"  - Recommendation: {finding.recommendation}")
    return "\n".join(lines)
