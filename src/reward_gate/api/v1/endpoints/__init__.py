"""API endpoint modules for version 1."""

from .matches import router as matches_router
from .rewards import router as rewards_router
from .system import router as system_router

__all__ = ["matches_router", "rewards_router", "system_router"]
