# src/tally_stage/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .rankings import router as rankings_router
from .tally import router as tally_router

__all__ = [
    "rankings_router",
    "tally_router",
]
