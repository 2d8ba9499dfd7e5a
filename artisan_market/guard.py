"""View gating on session presence and role.

This only decides what a visitor gets to see; the capability check in
``policy`` is what actually protects the data.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

SIGN_IN_PATH = "/ui/login"
HOME_PATH = "/ui"


class GuardState(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class Outcome(str, Enum):
    RENDER = "render"
    REDIRECT = "redirect"
    PLACEHOLDER = "placeholder"


@dataclass(frozen=True)
class GuardDecision:
    state: GuardState
    outcome: Outcome
    location: Optional[str] = None


def session_state(context) -> GuardState:
    if context.loading:
        return GuardState.LOADING
    if context.user is None:
        return GuardState.UNAUTHENTICATED
    return GuardState.AUTHENTICATED


def evaluate(context, required_role: Optional[str] = None) -> GuardDecision:
    state = session_state(context)
    if state is GuardState.LOADING:
        return GuardDecision(state, Outcome.PLACEHOLDER)
    if state is GuardState.UNAUTHENTICATED:
        return GuardDecision(state, Outcome.REDIRECT, SIGN_IN_PATH)
    # an account whose profile was never written cannot use any protected view
    if context.profile is None:
        return GuardDecision(state, Outcome.REDIRECT, SIGN_IN_PATH)
    if required_role and context.role != required_role:
        return GuardDecision(state, Outcome.REDIRECT, HOME_PATH)
    return GuardDecision(state, Outcome.RENDER)


class GuardRedirect(Exception):
    def __init__(self, location: str):
        super().__init__(location)
        self.location = location


class GuardPending(Exception):
    pass


def enforce(context, required_role: Optional[str] = None):
    """Raise the exception the web layer turns into a redirect or placeholder page."""
    decision = evaluate(context, required_role)
    if decision.outcome is Outcome.REDIRECT:
        raise GuardRedirect(decision.location)
    if decision.outcome is Outcome.PLACEHOLDER:
        raise GuardPending()
    return context
