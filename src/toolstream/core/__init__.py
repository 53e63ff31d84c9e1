"""
Core Layer - Agentic Loop, Stream Protocol and Configuration
============================================================

Modules:
    agentic_loop: Bounded generate/execute rounds over the connection registry
    stream_protocol: Delimited and NDJSON encoders/decoders for loop output
    tool_names: Qualified tool name encoding (``server__tool``)
    exceptions: AppException taxonomy carrying ErrorCodes
    constants: Configuration values and Pydantic settings validation

Configuration (constants.py):
    Centralized configuration using Pydantic Settings:
    - OpenAI credentials, model and sampling defaults
    - Round bound for the agentic loop
    - MCP handshake and call timeouts
    - Logging configuration
"""
