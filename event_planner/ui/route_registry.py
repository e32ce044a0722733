"""Route Registry.

Central table of every navigation target in the application: which
paths are public, which roles may reach each guarded path, and where
each role lands after signing in.

Adding a page = one ``register()`` call.  Paths may contain ``:name``
segments (``/events/:eventId/budget``), which ``match`` returns as
parameters.
"""

from __future__ import annotations

from typing import Optional

from event_planner.logger import StructuredLogger
from event_planner.models.enums import UserRole

LOGIN_PATH: str = "/login"
DASHBOARD_PATH: str = "/dashboard"
NOT_FOUND_NAME: str = "not_found"

ROLE_HOME: dict[UserRole, str] = {
    UserRole.ORGANIZER: "/dashboard/user",
    UserRole.VENDOR: "/dashboard/vendor",
    UserRole.ADMIN: "/dashboard/admin",
}

ALL_ROLES: frozenset[UserRole] = frozenset(UserRole)


def landing_path(role: Optional[UserRole]) -> str:
    """Default view for *role*; the login page when there is none."""
    if role is None:
        return LOGIN_PATH
    return ROLE_HOME[role]


def _split(path: str) -> list[str]:
    return [segment for segment in path.split("?", 1)[0].strip("/").split("/") if segment]


class RouteEntry:
    """Metadata for a single registered route.

    Attributes
    ----------
    path:
        Pattern such as ``/events/:eventId``.
    name:
        Unique identifier (e.g. ``'event_budget'``).
    required_roles:
        Roles permitted to open the page; ``None`` for public pages.
    """

    __slots__ = ("path", "name", "required_roles", "_segments")

    def __init__(
        self,
        path: str,
        name: str,
        required_roles: Optional[frozenset[UserRole]],
    ) -> None:
        self.path = path
        self.name = name
        self.required_roles = required_roles
        self._segments = _split(path)

    @property
    def is_public(self) -> bool:
        return self.required_roles is None

    def match(self, path: str) -> Optional[dict[str, str]]:
        """Return the path parameters when *path* fits this pattern."""
        segments = _split(path)
        if len(segments) != len(self._segments):
            return None
        params: dict[str, str] = {}
        for pattern, actual in zip(self._segments, segments):
            if pattern.startswith(":"):
                params[pattern[1:]] = actual
            elif pattern != actual:
                return None
        return params


class RouteMatch:
    """A resolved path: the entry that matched and its parameters."""

    __slots__ = ("entry", "params")

    def __init__(self, entry: RouteEntry, params: dict[str, str]) -> None:
        self.entry = entry
        self.params = params

    @property
    def found(self) -> bool:
        return self.entry.name != NOT_FOUND_NAME


class RouteRegistry:
    """Ordered collection of routes.

    Earlier registrations win when two patterns fit the same path, so
    literal paths (``/events/create``) must be registered before the
    parameterised ones they overlap (``/events/:eventId``).

    Parameters
    ----------
    logger:
        Structured logger for registration events.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._entries: dict[str, RouteEntry] = {}
        self._logger = logger
        self._not_found = RouteEntry("*", NOT_FOUND_NAME, None)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register(
        self,
        path: str,
        name: str,
        required_roles: Optional[frozenset[UserRole]] = None,
    ) -> None:
        if name in self._entries:
            self._logger.warning("Route '%s' already registered; overwriting.", name)
        self._entries[name] = RouteEntry(path, name, required_roles)
        self._logger.debug("Route registered: %s -> %s", path, name)

    def match(self, path: str) -> RouteMatch:
        """Find the route for *path*; unknown paths give the not-found entry."""
        for entry in self._entries.values():
            params = entry.match(path)
            if params is not None:
                return RouteMatch(entry, params)
        return RouteMatch(self._not_found, {})

    def get_route(self, name: str) -> RouteEntry:
        """Return a route by name.

        Raises
        ------
        KeyError
            If *name* is not registered.
        """
        if name not in self._entries:
            raise KeyError(f"Route '{name}' is not registered.")
        return self._entries[name]

    def get_routes_for_role(self, role: UserRole) -> list[RouteEntry]:
        """Guarded routes *role* may open, in registration order."""
        return [
            entry
            for entry in self._entries.values()
            if entry.required_roles is not None and role in entry.required_roles
        ]

    def resolve_redirect(self, path: str, role: Optional[UserRole]) -> Optional[str]:
        """Where the generic ``/dashboard`` entry sends *role*, else ``None``."""
        if _split(path) == _split(DASHBOARD_PATH):
            return landing_path(role)
        return None


def build_default_registry(logger: StructuredLogger) -> RouteRegistry:
    """The application's full route table."""
    organizer = frozenset({UserRole.ORGANIZER})
    vendor = frozenset({UserRole.VENDOR})
    admin = frozenset({UserRole.ADMIN})

    registry = RouteRegistry(logger)

    # --- Public ---
    registry.register("/", "home")
    registry.register(LOGIN_PATH, "login")
    registry.register("/register", "register")
    registry.register("/reset-password", "reset_password")
    registry.register("/events", "event_list")
    registry.register("/vendors", "vendor_list")
    registry.register("/about", "about")
    registry.register("/contact", "contact")
    registry.register("/faq", "faq")
    registry.register("/privacy", "privacy")
    registry.register("/terms", "terms")

    # --- Any signed-in role ---
    registry.register(DASHBOARD_PATH, "dashboard", ALL_ROLES)
    registry.register("/profile", "profile", ALL_ROLES)

    # --- Organizer ---
    registry.register(ROLE_HOME[UserRole.ORGANIZER], "organizer_dashboard", organizer)
    registry.register("/events/create", "event_create", organizer)
    registry.register("/events/:eventId", "event_detail", organizer)
    registry.register("/events/:eventId/manage", "event_manage", organizer)
    registry.register("/events/:eventId/budget", "event_budget", organizer)
    registry.register("/events/:eventId/guests", "event_guests", organizer)
    registry.register("/vendors/search", "vendor_search", organizer)

    # Public vendor detail comes after /vendors/search so the literal wins.
    registry.register("/vendors/:vendorId", "vendor_detail")

    # --- Vendor ---
    registry.register(ROLE_HOME[UserRole.VENDOR], "vendor_dashboard", vendor)
    registry.register("/vendor/profile", "vendor_profile", vendor)
    registry.register("/vendor/services", "vendor_services", vendor)
    registry.register("/vendor/services/add", "vendor_service_add", vendor)
    registry.register("/vendor/bookings", "vendor_bookings", vendor)
    registry.register("/vendor/reviews", "vendor_reviews", vendor)

    # --- Admin ---
    registry.register(ROLE_HOME[UserRole.ADMIN], "admin_dashboard", admin)
    registry.register("/admin/users", "admin_users", admin)
    registry.register("/admin/database-setup", "admin_database_setup", admin)
    registry.register("/admin/vendors", "admin_vendors", admin)
    registry.register("/admin/events", "admin_events", admin)
    registry.register("/admin/settings", "admin_settings", admin)

    return registry
