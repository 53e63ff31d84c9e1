"""FastAPI application for toolstream.

Build the app with :func:`toolstream.api.main.create_app`.
"""
