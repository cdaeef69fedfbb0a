"""Rule-based DBA advisor.

Stateless checks over configuration rows and a normalized schema. Each rule
emits an ``AdvisorFinding``; nothing here queries a database.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from .dialects import Dialect
from .models import DbSchema

logger = logging.getLogger(__name__)

FindingCategory = Literal["Configuration", "Schema", "Security"]
Severity = Literal["Critical", "Warning", "Pass"]

WIDE_TYPE_MARKERS = ("max", "text", "blob")
WIDE_COLUMN_LIMIT = 2
MSSQL_MIN_COST_THRESHOLD = 15
PG_MIN_CONNECTIONS = 50


@dataclass(frozen=True)
class AdvisorFinding:
    id: str
    category: FindingCategory
    severity: Severity
    title: str
    message: str
    recommendation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "category": self.category,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
        }
        if self.recommendation is not None:
            data["recommendation"] = self.recommendation
        return data


def _number(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _format_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


class DbaAdvisor:
    """Evaluates configuration and schema rules.

    Example:
        advisor = DbaAdvisor()
        findings = advisor.audit_configuration(Dialect.POSTGRES, result.records())
        findings += advisor.audit_schema(schema)
    """

    def audit_configuration(
        self, dialect: Dialect, config_rows: Sequence[Mapping[str, Any]]
    ) -> list[AdvisorFinding]:
        """Check server settings.

        Args:
            dialect: Dialect the rows came from; only SQL Server and
                PostgreSQL have rules
            config_rows: Rows of the dialect's configuration insight, keyed by
                lower-cased column name

        Returns:
            Findings in rule order; empty for no rows or other dialects
        """
        if not config_rows:
            return []
        if dialect == Dialect.MSSQL:
            return self._audit_mssql(config_rows)
        if dialect == Dialect.POSTGRES:
            return self._audit_postgres(config_rows)
        return []

    def _audit_mssql(self, config_rows: Sequence[Mapping[str, Any]]) -> list[AdvisorFinding]:
        findings = []
        for row in config_rows:
            name = str(row.get("name") or "").lower()
            # value_in_use is 0 when the setting is unset; fall back to configured value
            value = _number(row.get("value_in_use") or row.get("value"))
            if value is None:
                continue

            if name == "cost threshold for parallelism":
                if value < MSSQL_MIN_COST_THRESHOLD:
                    findings.append(
                        AdvisorFinding(
                            id="ms-cost-threshold",
                            category="Configuration",
                            severity="Warning",
                            title="Low Parallelism Threshold",
                            message=(
                                f"Current Cost Threshold is {_format_number(value)}. "
                                "Default (5) is often too low for modern CPUs."
                            ),
                            recommendation="Increase to 25-50 to prevent tiny queries from going parallel.",
                        )
                    )
                else:
                    findings.append(
                        AdvisorFinding(
                            id="ms-cost-threshold-ok",
                            category="Configuration",
                            severity="Pass",
                            title="Parallelism Threshold",
                            message="Value is within modern standards.",
                        )
                    )
            elif name == "optimize for ad hoc workloads" and value == 0:
                findings.append(
                    AdvisorFinding(
                        id="ms-optimize-adhoc",
                        category="Configuration",
                        severity="Warning",
                        title="Ad Hoc Optimization Disabled",
                        message="Plan cache may be bloated with single-use plans.",
                        recommendation='Enable "optimize for ad hoc workloads" (set to 1).',
                    )
                )
            elif name == "max degree of parallelism" and value == 0:
                findings.append(
                    AdvisorFinding(
                        id="ms-maxdop",
                        category="Configuration",
                        severity="Warning",
                        title="Unbounded MaxDOP",
                        message="MaxDOP is 0 (unlimited). Queries may consume all CPU cores.",
                        recommendation="Set MaxDOP to 8 or the number of physical cores per NUMA node.",
                    )
                )
        return findings

    def _audit_postgres(self, config_rows: Sequence[Mapping[str, Any]]) -> list[AdvisorFinding]:
        settings = {str(row.get("name")): row.get("setting") for row in config_rows}
        findings = []

        autovacuum = settings.get("autovacuum")
        if autovacuum == "off":
            findings.append(
                AdvisorFinding(
                    id="pg-autovacuum",
                    category="Configuration",
                    severity="Critical",
                    title="Autovacuum Disabled",
                    message=(
                        "Autovacuum is turned off. This will lead to severe table bloat "
                        "and XID wraparound failure."
                    ),
                    recommendation="Enable autovacuum immediately.",
                )
            )
        elif autovacuum:
            findings.append(
                AdvisorFinding(
                    id="pg-autovacuum-ok",
                    category="Configuration",
                    severity="Pass",
                    title="Autovacuum Enabled",
                    message="System is maintaining itself.",
                )
            )

        max_connections = _number(settings.get("max_connections"))
        if max_connections is not None and max_connections < PG_MIN_CONNECTIONS:
            findings.append(
                AdvisorFinding(
                    id="pg-conn-limit",
                    category="Configuration",
                    severity="Warning",
                    title="Low Connection Limit",
                    message=f"Max connections is only {settings['max_connections']}.",
                    recommendation="Verify if this is intended for a production system.",
                )
            )
        return findings

    def audit_schema(self, schema: DbSchema) -> list[AdvisorFinding]:
        """Flag heap tables and tables with many large-object columns.

        A non-empty schema with nothing to flag yields a single Pass finding.
        """
        findings = []
        for table in schema.tables:
            if not table.primary_keys:
                findings.append(
                    AdvisorFinding(
                        id=f"schema-nopk-{table.name}",
                        category="Schema",
                        severity="Critical",
                        title=f"Heap Table Detected: {table.name}",
                        message=(
                            f'Table "{table.name}" has no Primary Key. '
                            "Updates/Deletes will be slow and replication may fail."
                        ),
                        recommendation=f'ALTER TABLE "{table.name}" ADD PRIMARY KEY ...',
                    )
                )

            wide = [
                column
                for column in table.columns
                if any(marker in column.type.lower() for marker in WIDE_TYPE_MARKERS)
            ]
            if len(wide) > WIDE_COLUMN_LIMIT:
                findings.append(
                    AdvisorFinding(
                        id=f"schema-wide-{table.name}",
                        category="Schema",
                        severity="Warning",
                        title=f"Wide Table: {table.name}",
                        message=(
                            f"Contains {len(wide)} LOB/Text columns. "
                            "This may impact memory grants and buffer cache."
                        ),
                        recommendation="Consider vertical partitioning or moving BLOBS to object storage.",
                    )
                )

        if not findings and schema.tables:
            findings.append(
                AdvisorFinding(
                    id="schema-ok",
                    category="Schema",
                    severity="Pass",
                    title="Schema Hygiene",
                    message="No obvious anti-patterns detected in mapped tables.",
                )
            )
        logger.debug(f"Schema audit produced {len(findings)} findings")
        return findings
