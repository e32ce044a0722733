"""
Repository Layer.

One repository per Supabase table.  Repositories receive a
``DatabaseManager`` and a ``StructuredLogger`` through ``__init__`` and
raise :mod:`event_planner.repositories.errors` exceptions.
"""

from event_planner.repositories.admin_repository import AdminRepository
from event_planner.repositories.base_repository import BaseRepository, ChannelSubscription
from event_planner.repositories.errors import RepositoryError, RepositoryUnavailableError
from event_planner.repositories.profile_repository import ProfileRepository
from event_planner.repositories.vendor_repository import VendorRepository

__all__ = [
    "AdminRepository",
    "BaseRepository",
    "ChannelSubscription",
    "ProfileRepository",
    "RepositoryError",
    "RepositoryUnavailableError",
    "VendorRepository",
]
