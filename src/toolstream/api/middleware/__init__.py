"""Request context tracking and exception handlers."""
