"""
In-memory store of saved MCP server records.

Holds the records a client has created or imported so they can be listed,
exported and connected by id. Live connections are tracked separately by the
ConnectionRegistry.
"""

from __future__ import annotations

from typing import Any

from toolstream.models.mcp_models import MCPServerConfig, export_server_configs, import_server_configs


class ServerConfigStore:
    """Insertion-ordered collection of server records keyed by id."""

    def __init__(self, configs: list[MCPServerConfig] | None = None):
        self._configs: dict[str, MCPServerConfig] = {c.id: c for c in configs or []}

    def __len__(self) -> int:
        return len(self._configs)

    def list_configs(self) -> list[MCPServerConfig]:
        return list(self._configs.values())

    def get(self, server_id: str) -> MCPServerConfig | None:
        return self._configs.get(server_id)

    def save(self, config: MCPServerConfig) -> MCPServerConfig:
        """Insert or replace a record."""
        self._configs[config.id] = config
        return config

    def delete(self, server_id: str) -> bool:
        return self._configs.pop(server_id, None) is not None

    def export(self) -> str:
        return export_server_configs(self.list_configs())

    def import_configs(self, data: str | list[Any]) -> list[MCPServerConfig]:
        """Validate an exported array and add its records under fresh ids.

        Raises:
            ConfigError: If the payload is invalid; nothing is added.
        """
        imported = import_server_configs(data)
        for config in imported:
            self.save(config)
        return imported
