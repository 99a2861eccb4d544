#!/usr/bin/env python3
"""
Chronotask error diagnostics MCP server.

Exposes the process error log, handler configuration and recovery state of
the default error pipeline as MCP tools.
"""

import asyncio
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from chronotask.config import validate_config
from chronotask.error_handling import get_error_handler
from chronotask.logging_config import setup_logging
from chronotask.tools import set_error_handler, set_mcp_instance

# Load environment variables
load_dotenv()

logger = setup_logging()


@asynccontextmanager
async def lifespan(app):
    """Lifecycle manager for the MCP server."""
    logger.info("Starting Chronotask diagnostics server...")
    handler = get_error_handler()
    handler.error_logger.install_global_handlers(asyncio.get_running_loop())
    flusher = asyncio.create_task(handler.error_logger.run_periodic_flush())

    yield

    logger.info("Shutting down Chronotask diagnostics server...")
    flusher.cancel()
    handler.error_logger.close()


# Create FastMCP server
mcp = FastMCP("chronotask-diagnostics", lifespan=lifespan)

# Set MCP instance for tools to use decorators
set_mcp_instance(mcp)


def run():
    validate_config()
    set_error_handler(get_error_handler())
    mcp.run("stdio")


# Main execution
if __name__ == "__main__":
    run()
