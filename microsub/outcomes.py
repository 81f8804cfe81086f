"""Tagged results for single-owner operations.

Every adapter taking part in ownership routing answers with one of three
states: :data:`PENDING` (not mine, ask the next adapter), :class:`Handled`
(done, with an optional payload) or :class:`Failed` (mine, and it did not
work). ``Handled(None)`` is a success with an empty body.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


class _Pending:
    __slots__ = ()

    def __repr__(self) -> str:
        return "PENDING"

    def __bool__(self) -> bool:
        return False


PENDING = _Pending()


@dataclass(frozen=True)
class Handled:
    value: Any = None


@dataclass(frozen=True)
class Failed:
    reason: str = ""


Outcome = Union[_Pending, Handled, Failed]


def is_pending(outcome: Any) -> bool:
    return outcome is PENDING


def normalise(value: Any) -> Outcome:
    """Coerce a raw adapter return value into an outcome.

    Adapters written against the loose null/false convention still route
    correctly: ``None`` passes, ``False`` fails and anything else is a
    payload.
    """
    if value is PENDING or isinstance(value, (Handled, Failed)):
        return value
    if value is None:
        return PENDING
    if value is False:
        return Failed()
    return Handled(value)
