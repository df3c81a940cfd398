"""Version 1 API endpoints."""

from .endpoints import matches_router, rewards_router, system_router

__all__ = ["matches_router", "rewards_router", "system_router"]
