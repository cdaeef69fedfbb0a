"""Execution engines: embedded SQLite, canned SQL and canned documents."""

from .base import ExecutionEngine
from .documents import SimulatedDocumentEngine
from .embedded import EmbeddedEngine
from .simulated import SimulatedSqlEngine

__all__ = [
    "EmbeddedEngine",
    "ExecutionEngine",
    "SimulatedDocumentEngine",
    "SimulatedSqlEngine",
]
