"""
Models Module - Data Models and Type Definitions
=================================================

Pydantic v2 models for validation and JSON serialization.

Modules:
    mcp_models: Server configuration records, tool/prompt/resource listings, tool results
    event_models: Stream events and the function call record lifecycle
    chat_models: Chat requests, history turns and model fragments
    api_models: Request bodies of the MCP management endpoints
    error_models: Error codes and the standard error response
"""
