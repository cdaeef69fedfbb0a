"""MCP tool implementations for dbnexus.

Every tool takes a connection id as listed by ``list_connections``. Remote
connection ids are resolved to their saved credential and routed through the
bridge; all other ids run locally.

Following official Anthropic MCP Python SDK patterns:
- Tool functions decorated with @mcp.tool()
- Flat parameter signatures with Annotated types for validation
- Clear docstrings (become tool descriptions)
"""

import base64
import binascii
import sqlite3
from pathlib import Path
from typing import Annotated, Any, Literal

from mcp.types import ToolAnnotations
from pydantic import Field

from .context import AppContextType
from .core.dialects import Dialect
from .core.exceptions import UnknownDialectError
from .core.joins import ConfirmedJoin, apply_joins, plan_table_drop
from .formatting import (
    format_connections_markdown,
    format_findings_markdown,
    format_result_markdown,
    format_schema_markdown,
)
from .server import mcp

ConnectionId = Annotated[
    str,
    Field(description="Connection id (use list_connections() to discover)", min_length=1, max_length=200),
]
OutputFormat = Annotated[Literal["json", "markdown"], Field(description="Output format")]

# =============================================================================
# Connections and schema
# =============================================================================


@mcp.tool(
    annotations=ToolAnnotations(
        title="List Connections",
        readOnlyHint=True,
        idempotentHint=True,
        openWorldHint=True,  # Remote credentials come from the bridge
    )
)
async def list_connections(
    format: OutputFormat = "json",  # noqa: A002
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """List remote, imported and simulated connections. Optional: format (json|markdown)."""
    app_ctx = ctx.request_context.lifespan_context
    connections = await app_ctx.router.list_connections()

    if format == "markdown":
        return format_connections_markdown(connections)
    return {"connections": [c.to_dict() for c in connections], "total": len(connections)}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Import File",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,  # Each import creates a new instance
        openWorldHint=False,
    )
)
async def import_file(
    path: Annotated[
        str | None,
        Field(description="Path to a .csv, .tsv, .sqlite, .db or .sqlite3 file"),
    ] = None,
    filename: Annotated[
        str | None,
        Field(description="File name for content_base64 (its extension selects the loader)"),
    ] = None,
    content_base64: Annotated[
        str | None,
        Field(description="Base64-encoded file contents (alternative to path)"),
    ] = None,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Import a file as a new local SQLite connection. Required: path, or filename + content_base64."""
    app_ctx = ctx.request_context.lifespan_context

    if path:
        file_path = Path(path).expanduser()
        try:
            data = file_path.read_bytes()
        except OSError as e:
            return {"status": "failure", "error": f"Cannot read {file_path}: {e}"}
        name = filename or file_path.name
    elif filename and content_base64 is not None:
        try:
            data = base64.b64decode(content_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            return {"status": "failure", "error": f"Invalid base64 content: {e}"}
        name = filename
    else:
        return {
            "status": "failure",
            "error": "Provide either 'path' or both 'filename' and 'content_base64'.",
        }

    try:
        connection = await app_ctx.router.import_file(name, data)
    except sqlite3.Error as e:
        return {"status": "failure", "error": f"Failed to import {name}: {e}"}

    schema = await app_ctx.router.schema_for(connection.id)
    return {
        "status": "success",
        "connection": connection.to_dict(),
        "tables": schema.table_names,
    }


@mcp.tool(
    annotations=ToolAnnotations(
        title="Get Schema",
        readOnlyHint=True,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def get_schema(
    connection_id: ConnectionId,
    format: OutputFormat = "json",  # noqa: A002
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """Get tables, columns, primary and foreign keys. Required: connection_id. Optional: format."""
    app_ctx = ctx.request_context.lifespan_context
    credential = await app_ctx.resolve_credential(connection_id)
    schema = await app_ctx.router.schema_for(connection_id, credential)

    if format == "markdown":
        return format_schema_markdown(schema)
    return schema.to_dict()


@mcp.tool(
    annotations=ToolAnnotations(
        title="Get Stats",
        readOnlyHint=True,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def get_stats(
    connection_id: ConnectionId,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Get table, column, key and index counts. Required: connection_id."""
    app_ctx = ctx.request_context.lifespan_context
    credential = await app_ctx.resolve_credential(connection_id)
    stats = await app_ctx.router.stats_for(connection_id, credential)
    return {"connection_id": connection_id, **stats.to_dict()}


# =============================================================================
# Query execution
# =============================================================================


@mcp.tool(
    annotations=ToolAnnotations(
        title="Execute Query",
        readOnlyHint=False,
        destructiveHint=True,  # Arbitrary SQL may modify data
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def execute_query(
    connection_id: ConnectionId,
    sql: Annotated[str, Field(description="SQL statement(s) or document-store command", min_length=1)],
    format: OutputFormat = "json",  # noqa: A002
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """Run SQL against a connection. Required: connection_id, sql. Optional: format."""
    app_ctx = ctx.request_context.lifespan_context
    credential = await app_ctx.resolve_credential(connection_id)

    if credential is not None:
        result = await app_ctx.router.execute_remote_query(credential, sql)
    else:
        try:
            result = await app_ctx.router.execute_query(connection_id, sql)
        except KeyError as e:
            return {"status": "failure", "error": str(e)}

    if format == "markdown":
        return format_result_markdown(result)
    return result.to_dict()


@mcp.tool(
    annotations=ToolAnnotations(
        title="Explain Query",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,  # PostgreSQL EXPLAIN ANALYZE executes the statement
        openWorldHint=True,
    )
)
async def explain_query(
    connection_id: ConnectionId,
    sql: Annotated[str, Field(description="Statement to explain", min_length=1)],
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Get the execution plan in the connection's dialect. Required: connection_id, sql."""
    app_ctx = ctx.request_context.lifespan_context
    credential = await app_ctx.resolve_credential(connection_id)
    try:
        result = await app_ctx.router.explain_query(connection_id, sql, credential)
    except KeyError as e:
        return {"status": "failure", "error": str(e)}
    return result.to_dict()


@mcp.tool(
    annotations=ToolAnnotations(
        title="Suggest Joins",
        readOnlyHint=True,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def suggest_joins(
    connection_id: ConnectionId,
    tables: Annotated[list[str], Field(description="Tables to add to the query", min_length=1)],
    sql: Annotated[str, Field(description="Current query text (may be empty)")] = "",
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Propose join predicates for tables added to a query. Required: connection_id, tables."""
    app_ctx = ctx.request_context.lifespan_context
    credential = await app_ctx.resolve_credential(connection_id)
    schema = await app_ctx.router.schema_for(connection_id, credential)

    plan = plan_table_drop(sql, tables, schema)
    if plan.joins:
        # Joins belong to the original statement, ahead of any standalone selects
        confirmed = [ConfirmedJoin(table=join.new_table.name, condition=join.condition) for join in plan.joins]
        joined_sql = "\n\n".join([apply_joins(sql, confirmed), *plan.standalone])
    else:
        joined_sql = plan.sql
    return {
        "sql": plan.sql,
        "joins": [join.to_dict() for join in plan.joins],
        "joined_sql": joined_sql,
    }


# =============================================================================
# Diagnostics
# =============================================================================


@mcp.tool(
    annotations=ToolAnnotations(
        title="List Insights",
        readOnlyHint=True,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def list_insights(
    connection_id: Annotated[
        str | None,
        Field(description="Connection whose dialect selects the catalog"),
    ] = None,
    dialect: Annotated[
        str | None,
        Field(description="Dialect name (postgres, mysql, sqlite, mssql, mongodb)"),
    ] = None,
    context: Annotated[
        Literal["server", "database"] | None,
        Field(description="Only insights for this context"),
    ] = None,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """List diagnostic queries for a dialect. Provide connection_id or dialect. Optional: context."""
    app_ctx = ctx.request_context.lifespan_context

    if dialect:
        try:
            resolved = Dialect.parse(dialect)
        except UnknownDialectError as e:
            return {"status": "failure", "error": str(e)}
    elif connection_id:
        credential = await app_ctx.resolve_credential(connection_id)
        resolved = app_ctx.router.dialect_for(connection_id, credential)
    else:
        return {"status": "failure", "error": "Provide either 'connection_id' or 'dialect'."}

    definition = app_ctx.registry.definition_for(resolved)
    insights = definition.insights_for(context)
    return {
        "dialect": resolved.value,
        "version": definition.version,
        "insights": [insight.to_dict() for insight in insights],
        "total": len(insights),
    }


@mcp.tool(
    annotations=ToolAnnotations(
        title="Run Insight",
        readOnlyHint=True,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def run_insight(
    connection_id: ConnectionId,
    insight_id: Annotated[
        str | None,
        Field(description="Insight id (use list_insights() to discover); omit to run all"),
    ] = None,
    context: Annotated[
        Literal["server", "database"] | None,
        Field(description="When running all insights, only this context"),
    ] = None,
    format: OutputFormat = "json",  # noqa: A002
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """Run one diagnostic insight, or all of them concurrently. Required: connection_id."""
    app_ctx = ctx.request_context.lifespan_context
    credential = await app_ctx.resolve_credential(connection_id)

    if insight_id:
        results = {insight_id: await app_ctx.router.run_insight(connection_id, insight_id, credential)}
    else:
        results = await app_ctx.router.refresh_insights(connection_id, context, credential)

    if format == "markdown":
        return "\n\n".join(f"## {key}\n\n{format_result_markdown(result)}" for key, result in results.items())
    return {"results": {key: result.to_dict() for key, result in results.items()}}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Audit Database",
        readOnlyHint=True,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def audit_database(
    connection_id: ConnectionId,
    format: OutputFormat = "json",  # noqa: A002
    *,
    ctx: AppContextType,
) -> dict[str, Any] | str:
    """Check server configuration and schema hygiene. Required: connection_id. Optional: format."""
    app_ctx = ctx.request_context.lifespan_context
    credential = await app_ctx.resolve_credential(connection_id)
    findings = await app_ctx.router.audit(connection_id, credential)

    if format == "markdown":
        return format_findings_markdown(findings)
    return {
        "findings": [finding.to_dict() for finding in findings],
        "critical": sum(1 for f in findings if f.severity == "Critical"),
        "warnings": sum(1 for f in findings if f.severity == "Warning"),
    }


@mcp.tool(
    annotations=ToolAnnotations(
        title="Management SQL",
        readOnlyHint=True,  # Only builds the statement, never runs it
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def management_sql(
    connection_id: ConnectionId,
    action: Annotated[
        Literal["kill_session", "reindex_table"],
        Field(description="Statement to build"),
    ],
    target: Annotated[
        str,
        Field(description="Session id for kill_session, table name for reindex_table", min_length=1),
    ],
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Build a dialect-correct kill-session or reindex statement. Required: connection_id, action, target."""
    app_ctx = ctx.request_context.lifespan_context
    credential = await app_ctx.resolve_credential(connection_id)
    router = app_ctx.router

    if action == "kill_session":
        statement = router.kill_session_sql(connection_id, target, credential)
    else:
        statement = router.reindex_table_sql(connection_id, target, credential)

    return {
        "dialect": router.dialect_for(connection_id, credential).value,
        "action": action,
        "sql": statement,
    }
