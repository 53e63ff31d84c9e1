"""
toolstream - Streaming agentic chat over MCP tool servers
==========================================================

Connects to Model Context Protocol servers, exposes their tools to a language
model under qualified names, and streams the model's reply together with tool
call events on a single ordered channel.

Modules:
    core: Agentic loop, stream protocol, qualified tool names, configuration
    integrations: MCP transports, connection registry, model provider
    models: Pydantic models for MCP records, stream events, chat and errors
    api: FastAPI application, routes and middleware
    utils: Logging and client factories

Architecture:
    A chat request enters the AgenticLoop, which streams the model's reply
    through a ModelProvider. Requested tool calls are dispatched through the
    ConnectionRegistry to live MCP servers, and every text fragment and call
    event is encoded by the stream protocol onto one HTTP response body.

Example:
    Run the API server::

        $ toolstream --port 8000
"""

__version__ = "0.1.0"
