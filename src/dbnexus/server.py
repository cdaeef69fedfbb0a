"""FastMCP server initialization for dbnexus.

This module initializes the MCP server and manages shared resources via lifespan context.
All tool implementations are in the tools module.
"""

import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from .config import ConfigLoader, DbNexusConfig
from .context import AppContext, AppContextType
from .core.bridge import HttpBridgeTransport, RemoteBridge
from .core.dialects import DialectRegistry
from .core.engines import EmbeddedEngine, SimulatedDocumentEngine, SimulatedSqlEngine
from .core.router import BUILTIN_CONNECTIONS, DatabaseRouter

logger = logging.getLogger(__name__)

# =============================================================================
# Shared Resources and Lifespan Management
# =============================================================================


def build_bridge(config: DbNexusConfig) -> RemoteBridge:
    """Create the bridge client; without a URL the bridge is absent."""
    if not config.bridge.url:
        return RemoteBridge()
    transport = HttpBridgeTransport(
        config.bridge.url,
        timeout=config.bridge.timeout,
        headers=config.bridge.headers,
    )
    return RemoteBridge(transport)


def build_router(config: DbNexusConfig, registry: DialectRegistry) -> DatabaseRouter:
    simulation = config.simulation
    return DatabaseRouter(
        registry=registry,
        bridge=build_bridge(config),
        embedded=EmbeddedEngine(registry),
        simulated=SimulatedSqlEngine(latency_ms=simulation.sql_latency_ms),
        documents=SimulatedDocumentEngine(latency_ms=simulation.document_latency_ms),
        simulated_connections=BUILTIN_CONNECTIONS if simulation.enabled else (),
    )


@asynccontextmanager
async def app_lifespan(_server: FastMCP) -> AsyncIterator[AppContext]:
    """Build the router and registry on startup and close instances on shutdown.

    Environment Variables:
        DBNEXUS_CONFIG: Path to the YAML config file
        DBNEXUS_BRIDGE_URL: Bridge endpoint, overrides the config file

    Args:
        _server: FastMCP server instance (unused, required by FastMCP signature)

    Yields:
        AppContext with initialized resources
    """
    logger.info("Initializing MCP server resources...")

    config = ConfigLoader().load_config()
    registry = config.build_registry()
    router = build_router(config, registry)
    await router.init()

    if router.bridge.available:
        logger.info(f"Remote bridge configured at {config.bridge.url}")
    else:
        logger.warning("No remote bridge configured; only local and simulated connections are available")

    app_context = AppContext(config=config, registry=registry, router=router)

    try:
        yield app_context
    finally:
        logger.info("Shutting down MCP server...")
        await router.close()


# Following Python MCP naming convention: {service}_mcp
mcp = FastMCP("dbnexus_mcp", lifespan=app_lifespan)


# =============================================================================
# Server Entry Point
# =============================================================================


def main() -> None:
    """Entry point for running the MCP server.

    Defaults to stdio transport for MCP protocol communication.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    log_level_str = os.getenv("DBNEXUS_LOG_LEVEL", "INFO").upper()

    if log_level_str not in valid_log_levels:
        print(
            f"Warning: Invalid DBNEXUS_LOG_LEVEL '{log_level_str}'. "
            f"Valid levels: {', '.join(sorted(valid_log_levels))}. "
            "Using INFO.",
            file=sys.stderr,
        )
        log_level_str = "INFO"

    log_level = getattr(logging, log_level_str)

    # Configure logging to stderr (MCP requirement)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    logger.info("Starting MCP server (press Ctrl+C to stop)...")

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
    except Exception as e:
        logger.exception(f"Server error: {e}")
        sys.exit(1)

    logger.info("Server shutdown complete")


__all__ = [
    "mcp",
    "main",
    "AppContext",
    "AppContextType",
    "build_bridge",
    "build_router",
]
