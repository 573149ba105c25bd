"""Immutable run request.

RunRequest is a frozen dataclass describing one reconciliation run: what to
do, which entities to cover, the date window and the paging limits. The CLI
builds it once and hands it to :func:`chat_reconciler.core.engine.run`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from chat_reconciler.constants import DEFAULT_PAGE_SIZE, DEFAULT_RESULT_LIMIT
from chat_reconciler.core.filters import DateWindow
from chat_reconciler.types import Action, ScopeKind


@dataclass(frozen=True)
class Scope:
    """The entities a run covers."""

    kind: ScopeKind
    # User id or channel unique name; None for sweeps
    identifier: str | None = None

    @classmethod
    def user(cls, user_id: str | int) -> Scope:
        return cls(ScopeKind.USER, str(user_id))

    @classmethod
    def channel(cls, unique_name: str) -> Scope:
        return cls(ScopeKind.CHANNEL, unique_name)

    @classmethod
    def all_users(cls) -> Scope:
        return cls(ScopeKind.ALL_USERS)

    @classmethod
    def all_channels(cls) -> Scope:
        return cls(ScopeKind.ALL_CHANNELS)

    def __str__(self) -> str:
        if self.identifier is None:
            return self.kind.value
        return f"{self.kind.value} {self.identifier}"


@dataclass(frozen=True)
class RunRequest:
    """Immutable description of a reconciliation run."""

    action: Action
    scope: Scope
    date_before: datetime | None = None
    date_after: datetime | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    # 0 means no limit
    result_limit: int = DEFAULT_RESULT_LIMIT
    blocked_listing_ids: frozenset[int] = field(default_factory=frozenset)

    @property
    def window(self) -> DateWindow:
        return DateWindow.from_bounds(self.date_before, self.date_after)

    @property
    def to_block(self) -> bool | None:
        """Desired blocked state, or None for migration."""
        if self.action is Action.BLOCK:
            return True
        if self.action is Action.UNBLOCK:
            return False
        return None

    def describe(self) -> str:
        return (
            f"{self.action.value} {self.scope} ({self.window.describe()}; "
            f"page size {self.page_size}; limit {self.result_limit or 'none'})"
        )
