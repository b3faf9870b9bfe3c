"""API routers for Tracker Core."""

from . import lifecycle, memberships, permissions, users

__all__ = ["lifecycle", "memberships", "permissions", "users"]
