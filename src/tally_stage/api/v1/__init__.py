# src/tally_stage/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import rankings_router, tally_router

__all__ = [
    "rankings_router",
    "tally_router",
]
