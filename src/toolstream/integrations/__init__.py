"""
Integrations Module - MCP Servers and Model Providers
=====================================================

Modules:
    mcp_transport: stdio, SSE, streamable HTTP and WebSocket transports
    mcp_session_client: Adapter over the MCP SDK ClientSession
    mcp_websocket_client: JSON-RPC client for containerized WebSocket servers
    mcp_registry: ConnectionRegistry owning every live server connection
    mcp_config_store: Saved server records with export/import
    model_provider: ModelProvider protocol and the OpenAI streaming implementation
"""
