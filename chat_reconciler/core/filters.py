"""
Shared predicates used by both reconciliation engines.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from chat_reconciler.types import ChannelAttributes, SourceChannel

# ---------------------------------------------------------------------------
# Date window
# ---------------------------------------------------------------------------


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so they compare with backend timestamps."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class DateWindow:
    """Decides whether an entity's last-updated timestamp is in scope.

    Use :meth:`from_bounds` to obtain the right strategy for a pair of
    bounds. A missing timestamp is always in scope.
    """

    @staticmethod
    def from_bounds(
        before: datetime | None = None, after: datetime | None = None
    ) -> DateWindow:
        """Select a window strategy from the relative order of the bounds.

        Args:
            before: Upper bound, inclusive.
            after: Lower bound, inclusive.

        Returns:
            ``OpenWindow`` when neither bound is set, ``IntervalWindow`` when
            ``after <= before`` (keep only timestamps inside), otherwise
            ``ExclusionWindow`` (keep everything outside the middle).
        """
        before, after = as_utc(before), as_utc(after)
        if before is None and after is None:
            return OpenWindow()
        if before is not None and after is not None and after <= before:
            return IntervalWindow(before=before, after=after)
        return ExclusionWindow(before=before, after=after)

    def includes(self, timestamp: datetime | None) -> bool:
        if timestamp is None:
            return True
        return self._includes(as_utc(timestamp))  # type: ignore[arg-type]

    def _includes(self, timestamp: datetime) -> bool:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError


class OpenWindow(DateWindow):
    """No bounds: everything is in scope."""

    def _includes(self, timestamp: datetime) -> bool:
        return True

    def describe(self) -> str:
        return "no date window"


@dataclass(frozen=True)
class IntervalWindow(DateWindow):
    """Keep only timestamps within ``[after, before]``."""

    before: datetime
    after: datetime

    def _includes(self, timestamp: datetime) -> bool:
        return self.after <= timestamp <= self.before

    def describe(self) -> str:
        return f"only between {self.after} and {self.before}"


@dataclass(frozen=True)
class ExclusionWindow(DateWindow):
    """Keep timestamps at or before ``before`` or at or after ``after``.

    With a single bound this reduces to a plain ``<= before`` or
    ``>= after`` comparison.
    """

    before: datetime | None = None
    after: datetime | None = None

    def _includes(self, timestamp: datetime) -> bool:
        if self.before is not None and timestamp <= self.before:
            return True
        if self.after is not None and timestamp >= self.after:
            return True
        return False

    def describe(self) -> str:
        if self.before is None:
            return f"from {self.after}"
        if self.after is None:
            return f"until {self.before}"
        return f"until {self.before} and from {self.after}"


# ---------------------------------------------------------------------------
# State checks
# ---------------------------------------------------------------------------


def is_state_achieved(
    attributes: ChannelAttributes | None, to_block: bool | None
) -> bool:
    """Return True when the desired state already holds and no write is needed.

    Migration (``to_block is None``) is never achieved, so entities are always
    created or updated. In blocking mode, a channel without attributes has
    nothing to change and counts as achieved.
    """
    if to_block is None:
        return False
    if attributes is None:
        return True
    return attributes.is_blocked == to_block


def has_uncertain_data(channel: SourceChannel) -> bool:
    """Channels that cannot be reconciled safely.

    Zero members, a zero listing id, or neither buyer nor seller known.
    """
    if channel.members_count == 0:
        return True
    attributes = channel.attributes
    if attributes is None:
        return False
    return attributes.listing_id == 0 or (
        attributes.seller_id == 0 and attributes.buyer_id == 0
    )
