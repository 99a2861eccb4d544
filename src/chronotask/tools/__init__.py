"""
MCP tool definitions for inspecting the error pipeline.
"""

from .diagnostics import (
    # Tools
    clear_error_logs,
    export_error_logs,
    get_error_logs,
    get_error_stats,
    get_handler_config,
    get_recovery_stats,
    lookup_error_code,
    # Prompts
    error_triage_prompt,
    # Utilities
    set_error_handler,
    set_mcp_instance,
)

__all__ = [
    "clear_error_logs",
    "export_error_logs",
    "get_error_logs",
    "get_error_stats",
    "get_handler_config",
    "get_recovery_stats",
    "lookup_error_code",
    "error_triage_prompt",
    "set_error_handler",
    "set_mcp_instance",
]
