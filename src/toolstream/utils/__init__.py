"""
Utils Module - Infrastructure Utilities
=======================================

Modules:
    logger: Colored console logging plus JSON error logs with rotation
    client_factory: httpx and AsyncOpenAI client creation
"""
