"""Route modules for the toolstream API."""

from __future__ import annotations

from . import chat, health, mcp

__all__ = ["chat", "health", "mcp"]
