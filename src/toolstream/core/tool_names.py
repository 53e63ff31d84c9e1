"""Qualified tool names: (server id, tool name) encoded as one model-facing string."""

from __future__ import annotations

from toolstream.core.constants import QUALIFIED_NAME_SEPARATOR
from toolstream.core.exceptions import ToolInvocationError


def is_valid_server_id(server_id: str) -> bool:
    """True if qualified names built from this id split back to it.

    The id must be non-empty and may not contain the separator. A trailing
    '_' is also rejected: "s1_" qualifies to "s1___search", which splits
    as ("s1", "_search").
    """
    return bool(server_id) and QUALIFIED_NAME_SEPARATOR not in server_id and not server_id.endswith("_")


def qualify_tool_name(server_id: str, tool_name: str) -> str:
    """Join server id and tool name with the qualified-name separator."""
    return f"{server_id}{QUALIFIED_NAME_SEPARATOR}{tool_name}"


def split_qualified_name(qualified_name: str) -> tuple[str, str]:
    """Split on the first separator.

    Everything after the first separator is the tool name, so tool names
    containing the separator survive the round trip.

    Raises:
        ToolInvocationError: If the name has no separator, or an empty server id or tool name.
    """
    server_id, sep, tool_name = qualified_name.partition(QUALIFIED_NAME_SEPARATOR)
    if not sep or not server_id or not tool_name:
        raise ToolInvocationError(
            qualified_name,
            f"Malformed tool name '{qualified_name}': expected '<server>{QUALIFIED_NAME_SEPARATOR}<tool>'",
        )
    return server_id, tool_name
