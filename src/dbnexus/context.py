"""Shared context types for MCP server.

This module contains context types used across server and tools modules,
separated to avoid circular imports.
"""

from dataclasses import dataclass

from mcp.server.fastmcp import Context
from mcp.server.session import ServerSession

from .config import DbNexusConfig
from .core.bridge import CredentialEntry
from .core.dialects import DialectRegistry
from .core.router import DatabaseRouter


@dataclass
class AppContext:
    """Application context containing shared resources for MCP tools.

    Created once during server startup and made available to all tools via
    the Context parameter.
    """

    config: DbNexusConfig
    registry: DialectRegistry
    router: DatabaseRouter

    async def resolve_credential(self, connection_id: str) -> CredentialEntry | None:
        """Credential for a remote connection id, or None for local ones.

        Refreshes the credential list from the bridge when the id has not
        been seen yet.
        """
        if not self.router.bridge.available:
            return None
        credential = self.router.credential_for(connection_id)
        if credential is None:
            await self.router.list_connections()
            credential = self.router.credential_for(connection_id)
        return credential


# Type alias for MCP tool context parameter
AppContextType = Context[ServerSession, AppContext]


__all__ = ["AppContext", "AppContextType"]
