"""Route Guard.

Protects one role-scoped navigation target.  The guard is driven only by
``SessionContext`` state updates and moves between four states:

- ``checking``: session still loading; show a neutral placeholder
- ``unauthenticated``: redirect to the login page, remembering the path
- ``unauthorized``: redirect to the current role's landing view
- ``authorized``: render the guarded content

A guard issues at most one redirect over its lifetime and never reports
``render=True`` outside ``authorized``.
"""

from __future__ import annotations

from typing import Callable, Optional

from event_planner.logger import StructuredLogger
from event_planner.models.enums import GuardState, UserRole
from event_planner.models.session_models import GuardDecision, Redirect, SessionState
from event_planner.services.session_context import SessionContext
from event_planner.ui.route_registry import LOGIN_PATH, landing_path

Navigate = Callable[[Redirect], None]


def evaluate(
    required_roles: frozenset[UserRole],
    state: SessionState,
    requested_path: Optional[str] = None,
) -> GuardDecision:
    """Pure guard decision for one session snapshot."""
    if state.is_loading:
        return GuardDecision(state=GuardState.CHECKING)
    if state.identity is None:
        return GuardDecision(
            state=GuardState.UNAUTHENTICATED,
            redirect=Redirect(target=LOGIN_PATH, return_to=requested_path),
        )
    if state.role is None:
        # Signed in but the role is not known yet.
        return GuardDecision(state=GuardState.CHECKING)
    if state.role not in required_roles:
        return GuardDecision(
            state=GuardState.UNAUTHORIZED,
            redirect=Redirect(target=landing_path(state.role)),
        )
    return GuardDecision(state=GuardState.AUTHORIZED, render=True)


class RouteGuard:
    """Stateful guard bound to a ``SessionContext``.

    Parameters
    ----------
    required_roles:
        Roles allowed to see the guarded content.
    navigate:
        Called with the redirect, at most once.
    logger:
        Structured logger instance.
    requested_path:
        The path being guarded, passed to the login page as the return
        target.
    """

    def __init__(
        self,
        required_roles: frozenset[UserRole],
        navigate: Navigate,
        logger: StructuredLogger,
        requested_path: Optional[str] = None,
    ) -> None:
        self._required_roles = required_roles
        self._navigate = navigate
        self._logger = logger
        self._requested_path = requested_path
        self._decision = GuardDecision(state=GuardState.CHECKING)
        self._redirected: bool = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def decision(self) -> GuardDecision:
        return self._decision

    @property
    def state(self) -> GuardState:
        return self._decision.state

    @property
    def redirected(self) -> bool:
        return self._redirected

    def attach(self, context: SessionContext) -> GuardDecision:
        """Evaluate the current state and follow every later update."""
        self.detach()
        self._unsubscribe = context.subscribe(self.update)
        return self.update(context.state)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def update(self, state: SessionState) -> GuardDecision:
        """Re-evaluate for *state*; redirects once, then stops listening."""
        if self._redirected:
            return self._decision

        decision = evaluate(self._required_roles, state, self._requested_path)
        if decision.redirect is not None:
            self._redirected = True
            self._decision = decision
            self.detach()
            self._logger.info(
                "Guard for %s redirecting to %s (%s).",
                self._requested_path or "route", decision.redirect.target, decision.state,
            )
            self._navigate(decision.redirect)
            return decision

        self._decision = decision
        return decision
