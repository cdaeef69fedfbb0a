"""Exceptions raised by the dbnexus core.

Most failures in this package never become exceptions: transport problems and
partial introspection failures are folded into ``QueryResult.error`` or an
empty schema at the call site. The classes below cover the remaining cases,
which are contract violations by the caller or broken configuration.
"""

from __future__ import annotations


class DbNexusError(Exception):
    """Base exception for dbnexus errors."""

    pass


class UnknownDialectError(DbNexusError, ValueError):
    """A dialect tag outside the supported enumeration was requested."""

    def __init__(self, dialect: object):
        self.dialect = dialect
        super().__init__(f"Unknown dialect: {dialect!r}")


class InstanceNotFoundError(DbNexusError, KeyError):
    """An embedded instance id was not created by this engine."""

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Database instance not found: {instance_id}")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0])


class BridgeUnavailableError(DbNexusError):
    """The host did not provide a bridge transport."""

    pass


class BridgeReplyError(DbNexusError):
    """The bridge answered with a reply that could not be used."""

    pass


__all__ = [
    "DbNexusError",
    "UnknownDialectError",
    "InstanceNotFoundError",
    "BridgeUnavailableError",
    "BridgeReplyError",
]
