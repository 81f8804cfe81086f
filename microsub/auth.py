"""Scope checks and a token-table authorizer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Protocol

from .errors import InsufficientScope, InvalidRequest, Unauthorized

logger = logging.getLogger(__name__)

SCOPES: Dict[str, str] = {
    "timeline": "read",
    "channels": "channels",
    "follow": "follow",
    "unfollow": "follow",
    "mute": "mute",
    "unmute": "mute",
    "block": "block",
    "unblock": "block",
    "search": "read",
    "preview": "read",
}


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as reported by the authorizer."""

    user_id: str
    scopes: FrozenSet[str] = field(default_factory=frozenset)


class Authorizer(Protocol):
    def authenticate(self, token: Optional[str]) -> Principal:
        """Return the principal for ``token`` or raise :class:`Unauthorized`."""


def required_scope(action: str) -> Optional[str]:
    """Scope needed for ``action``, or None if the action is unknown."""
    return SCOPES.get(action)


def has_scope(required: str, scopes: Iterable[str]) -> bool:
    granted = set(scopes)
    # Any scope implies read.
    if required == "read" and granted:
        return True
    return required in granted


def check_permission(action: Optional[str], principal: Principal) -> None:
    """Raise if ``principal`` may not perform ``action``.

    Requests without an action are let through so that validation can
    report the missing parameter.
    """
    if not action:
        return

    scope = required_scope(action)
    if scope is None:
        raise InvalidRequest(f"Unknown action: {action}")
    if not has_scope(scope, principal.scopes):
        raise InsufficientScope(f'This action requires the "{scope}" scope.')


class TokenAuthorizer:
    """Resolve bearer tokens from a static table loaded from configuration."""

    def __init__(self, tokens: Mapping[str, Principal]) -> None:
        self._tokens = dict(tokens)

    def authenticate(self, token: Optional[str]) -> Principal:
        if not token:
            raise Unauthorized("Authentication required.")

        principal = self._tokens.get(token)
        if principal is None:
            logger.warning("Rejected unknown access token ending in %s", token[-4:])
            raise Unauthorized("The access token is invalid.")
        return principal
