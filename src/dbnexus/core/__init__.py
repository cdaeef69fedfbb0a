"""Core of dbnexus: dialects, engines, remote bridge, routing, joins and advisor.

Modules:
- dialects: Per-dialect catalog queries, management statements and insights
- models: QueryResult, schema and connection data classes
- engines: Embedded SQLite, canned SQL and canned document-store engines
- bridge: Request/reply protocol for the external database bridge
- discovery: Remote schema introspection through the bridge
- router: Connection-to-engine dispatch
- joins: Join inference for tables added to a query
- advisor: Configuration and schema rules
"""

from .advisor import AdvisorFinding, DbaAdvisor
from .bridge import CredentialEntry, HttpBridgeTransport, RemoteBridge
from .dialects import Dialect, DialectDefinition, DialectRegistry, DiagnosticInsight
from .discovery import discover_remote_schema
from .exceptions import (
    BridgeReplyError,
    BridgeUnavailableError,
    DbNexusError,
    InstanceNotFoundError,
    UnknownDialectError,
)
from .joins import ConfirmedJoin, JoinCandidate, apply_joins, infer_joins, plan_table_drop
from .models import (
    ColumnDefinition,
    ColumnReference,
    Connection,
    ConnectionKind,
    DbSchema,
    DbStats,
    QueryResult,
    TableDefinition,
)
from .router import DatabaseRouter

__all__ = [
    "AdvisorFinding",
    "BridgeReplyError",
    "BridgeUnavailableError",
    "ColumnDefinition",
    "ColumnReference",
    "ConfirmedJoin",
    "Connection",
    "ConnectionKind",
    "CredentialEntry",
    "DatabaseRouter",
    "DbNexusError",
    "DbSchema",
    "DbStats",
    "DbaAdvisor",
    "DiagnosticInsight",
    "Dialect",
    "DialectDefinition",
    "DialectRegistry",
    "HttpBridgeTransport",
    "InstanceNotFoundError",
    "JoinCandidate",
    "QueryResult",
    "RemoteBridge",
    "TableDefinition",
    "UnknownDialectError",
    "apply_joins",
    "discover_remote_schema",
    "infer_joins",
    "plan_table_drop",
]
