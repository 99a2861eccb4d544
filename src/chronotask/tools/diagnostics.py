"""
MCP tools for inspecting the error pipeline of a running process.

Dependencies:
- FastMCP for tool registration
- The process-wide ErrorHandler, injected by main.py
"""

import json
import logging
from typing import Optional

from chronotask.error_handling.error_handler import ErrorHandler
from chronotask.models.log_models import LogFilters
from chronotask.taxonomy import ERROR_KINDS, lookup

# MCP instance will be injected at runtime
mcp = None

logger = logging.getLogger(__name__)

# Will be set by main.py during initialization
error_handler: Optional[ErrorHandler] = None


def set_error_handler(handler: ErrorHandler):
    """Set the error handler the tools report on."""
    global error_handler
    error_handler = handler


def set_mcp_instance(mcp_instance):
    """Set the FastMCP instance for tool registration."""
    global mcp
    mcp = mcp_instance
    _register_mcp_tools()


def _register_mcp_tools():
    if mcp is None:
        raise RuntimeError("MCP instance not set. Call set_mcp_instance() first.")

    mcp.tool()(get_error_logs)
    mcp.tool()(get_error_stats)
    mcp.tool()(export_error_logs)
    mcp.tool()(clear_error_logs)
    mcp.tool()(get_recovery_stats)
    mcp.tool()(get_handler_config)
    mcp.tool()(lookup_error_code)

    mcp.prompt("error-triage")(error_triage_prompt)


def _require_handler() -> ErrorHandler:
    if error_handler is None:
        raise RuntimeError("Error handler not set. Call set_error_handler() first.")
    return error_handler


async def get_error_logs(
    level: Optional[str] = None,
    category: Optional[str] = None,
    severity: Optional[str] = None,
    limit: int = 20,
) -> str:
    """
    List recent error log entries, newest first.

    Args:
        level: Only entries at this level (debug, info, warn, error, fatal)
        category: Only entries of this error category
        severity: Only entries of this severity
        limit: Maximum number of entries to list
    """
    try:
        filters = LogFilters(level=level, category=category, severity=severity)
        logs = _require_handler().error_logger.get_logs(filters)[: max(limit, 0)]

        if not logs:
            return "No error log entries found."

        output = [f"# Error Log ({len(logs)} entries)", ""]
        for entry in logs:
            component = entry.context.get("component") or "-"
            output.append(
                f"- {entry.timestamp.isoformat()} [{entry.level.value.upper()}] "
                f"**{entry.error_type.code}** ({entry.error_type.severity}) "
                f"in {component}: {entry.error_type.message}"
            )
        return "\n".join(output)

    except Exception as e:
        logger.error(f"Failed to list error logs: {e}")
        return f"Error listing logs: {str(e)}"


async def get_error_stats() -> str:
    """Summarize the error log: totals, recent counts and the most frequent errors."""
    try:
        stats = _require_handler().error_logger.get_stats()

        output = [
            "# Error Statistics",
            f"**Total**: {stats.total}",
            f"**Last hour**: {stats.last_hour}",
            f"**Last day**: {stats.last_day}",
        ]

        for title, counts in (
            ("By Level", stats.by_level),
            ("By Category", stats.by_category),
            ("By Severity", stats.by_severity),
        ):
            if counts:
                output.extend(["", f"## {title}"])
                for name, count in sorted(counts.items(), key=lambda kv: -kv[1]):
                    output.append(f"- {name}: {count}")

        if stats.top_errors:
            output.extend(["", "## Most Frequent"])
            for i, top in enumerate(stats.top_errors, 1):
                output.append(f"{i}. {top.code} x{top.count} (`{top.fingerprint}`)")

        return "\n".join(output)

    except Exception as e:
        logger.error(f"Failed to compute error stats: {e}")
        return f"Error computing stats: {str(e)}"


async def export_error_logs(format: str = "json") -> str:
    """Export the stored error log as JSON or CSV text."""
    try:
        return _require_handler().error_logger.export_logs(format)
    except Exception as e:
        logger.error(f"Failed to export error logs: {e}")
        return f"Error exporting logs: {str(e)}"


async def clear_error_logs() -> str:
    """Delete every stored error log entry."""
    try:
        if _require_handler().error_logger.clear_logs():
            return "Error logs cleared."
        return "Error logs could not be cleared; see the server log."
    except Exception as e:
        logger.error(f"Failed to clear error logs: {e}")
        return f"Error clearing logs: {str(e)}"


async def get_recovery_stats() -> str:
    """Retry attempt counts and circuit breaker states of the recovery engine."""
    try:
        stats = _require_handler().recovery.get_recovery_stats()
        return json.dumps(stats, indent=2, default=str)
    except Exception as e:
        logger.error(f"Failed to read recovery stats: {e}")
        return f"Error reading recovery stats: {str(e)}"


async def get_handler_config() -> str:
    """Current handler, logger and recovery configuration."""
    try:
        return json.dumps(_require_handler().get_config(), indent=2, default=str)
    except Exception as e:
        logger.error(f"Failed to read handler config: {e}")
        return f"Error reading config: {str(e)}"


async def lookup_error_code(code: str) -> str:
    """Describe a catalog error code; unknown codes resolve to UNKNOWN_ERROR."""
    kind = lookup(code)
    return json.dumps(kind.to_dict(), indent=2)


def error_triage_prompt(code: str, details: str = ""):
    """Prompt for triaging one error code."""
    kind = lookup(code)
    known = ", ".join(sorted(ERROR_KINDS))
    return f"""Triage the following client error.

Code: {kind.code}
Category: {kind.category.value}
Severity: {kind.severity.value}
Recovery strategy: {kind.recovery.value}
What the user saw: {kind.user_message}
Details: {details or "none"}

1. Use get_error_logs and get_error_stats to find how often it happens and where.
2. Use get_recovery_stats to check whether its circuit breaker is open.
3. Say whether the recovery strategy fits, and what should change if not.

Known codes: {known}"""
