# backend/tutormarket/routes/v1/__init__.py
"""
API v1 routers. ``main.py`` mounts them under /api/v1.
"""

from . import appeals, bookings, health, internal, users

__all__ = ["appeals", "bookings", "health", "internal", "users"]
