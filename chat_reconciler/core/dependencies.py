"""
Dependency resolution for the reconciliation engines.

A channel can only be written to the target once its members exist there,
and a user's block-list can only be applied once the blockees exist. The
resolver finds which of these dependencies are missing and migrates them
through a user-migration callback, bounded to one extra level.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from chat_reconciler.constants import MAX_DEPENDENCY_DEPTH
from chat_reconciler.core.result import RunResult
from chat_reconciler.types import SourceChannel, parse_member_ids
from chat_reconciler.utils.logging import log_with_context

if TYPE_CHECKING:
    from chat_reconciler.services.source_client import SourceClient
    from chat_reconciler.services.target_client import TargetClient

# (user_id, existing_blockees_only, depth) -> RunResult
UserMigration = Callable[[str, bool, int], RunResult]


def find_counterpart(unique_name: str, known_ids: list[int]) -> int | None:
    """Return the member id of a 1:1 channel that is not already known."""
    for member_id in parse_member_ids(unique_name):
        if member_id not in known_ids:
            return member_id
    return None


class DependencyResolver:
    """Resolves and migrates the dependencies of users and channels.

    One resolver lives for one run. It remembers which user ids it has
    already migrated (so no id is migrated twice) and caches source
    block-lists fetched for the deliberately-blocked check.
    """

    def __init__(
        self,
        source: SourceClient,
        target: TargetClient | None = None,
        migrate_user: UserMigration | None = None,
        max_depth: int = MAX_DEPENDENCY_DEPTH,
    ) -> None:
        self.source = source
        self.target = target
        self.migrate_user = migrate_user
        self.max_depth = max_depth
        # user id -> whether its nested migration succeeded
        self._visited: dict[str, bool] = {}
        self._block_lists: dict[int, tuple[int, ...] | None] = {}

    # -- Channel members -----------------------------------------------------

    def resolve_channel_members(
        self, channel: SourceChannel, known_ids: list[int] | None = None
    ) -> list[int]:
        """Determine the member ids a channel should be written with.

        A channel with a single member asks the source who that member is;
        if the source cannot answer, no members are written rather than
        re-adding someone who left. Otherwise the ids come from the unique
        name. ``known_ids`` are always included first.
        """
        known = list(known_ids or [])

        if channel.members_count == 1:
            if known:
                return known
            result = self.source.list_channel_members(channel.unique_name)
            if not result.is_success:
                log_with_context(
                    logging.WARNING,
                    f"Failed to fetch members of channel {channel.unique_name}: "
                    f"{result.message}",
                    channel=channel.unique_name,
                    status_code=result.status_code,
                )
                return []
            ids = []
            for member in result.payload or []:
                try:
                    member_id = int(member.id)
                except ValueError:
                    continue
                if member_id > 0:
                    ids.append(member_id)
            return ids

        members = known[:]
        for member_id in parse_member_ids(channel.unique_name):
            if member_id not in members:
                members.append(member_id)
        return members

    # -- Visited users -------------------------------------------------------

    def is_handled(self, user_id: str) -> bool:
        """True when the user was already migrated in this run."""
        return str(user_id) in self._visited

    def mark_handled(self, user_id: str, succeeded: bool) -> None:
        """Record a top-level migration so nested lookups reuse its outcome."""
        self._visited.setdefault(str(user_id), succeeded)

    # -- Target presence -----------------------------------------------------

    def migrate_absent(
        self, absent_ids: list[str], depth: int, owner: str
    ) -> tuple[RunResult, list[str]]:
        """Migrate users missing on the target.

        Args:
            absent_ids: Ids reported absent by the target.
            depth: Depth of the entity that needs them.
            owner: Description of the dependent entity, for logging.

        Returns:
            The merged nested results and the ids that now exist on the target.
        """
        merged = RunResult()
        migrated: list[str] = []

        if self.migrate_user is None or depth >= self.max_depth:
            log_with_context(
                logging.DEBUG,
                f"Not migrating absent users of {owner}: dependency depth reached",
                depth=depth,
            )
            return merged, migrated

        for user_id in absent_ids:
            if user_id in self._visited:
                if self._visited[user_id]:
                    migrated.append(user_id)
                continue
            log_with_context(
                logging.INFO,
                f"Migrating absent user {user_id} required by {owner}",
                user_id=user_id,
            )
            nested = self.migrate_user(user_id, True, depth + 1)
            ok = nested.failed_count == 0 and nested.fetched_count > 0
            self._visited[user_id] = ok
            if ok:
                migrated.append(user_id)
            else:
                log_with_context(
                    logging.WARNING,
                    f"Migration of user {user_id} required by {owner} failed: "
                    f"{nested.message}",
                    user_id=user_id,
                )
            merged = merged.merge(nested)

        return merged, migrated

    def ensure_users_on_target(
        self, member_ids: list[int], depth: int, owner: str
    ) -> tuple[RunResult, list[int]]:
        """Make sure every member exists on the target before a channel write.

        Returns:
            The merged nested results and the member ids usable for the
            write: those already present plus those migrated now. When the
            presence query itself fails, the ids are used as they are.
        """
        if not member_ids or self.target is None:
            return RunResult(), list(member_ids)

        presence = self.target.find_absent_users([str(m) for m in member_ids])
        if not presence.is_success:
            log_with_context(
                logging.WARNING,
                f"Presence check for members of {owner} failed: {presence.message}",
                status_code=presence.status_code,
            )
            return RunResult(), list(member_ids)

        absent = presence.payload or []
        if not absent:
            return RunResult(), list(member_ids)

        nested, migrated = self.migrate_absent(absent, depth, owner)
        usable = [
            m for m in member_ids if str(m) not in absent or str(m) in migrated
        ]
        return nested, usable

    # -- Block-lists ---------------------------------------------------------

    def _block_list(self, user_id: int) -> tuple[int, ...] | None:
        if user_id not in self._block_lists:
            result = self.source.fetch_user(str(user_id))
            if result.is_success and result.payload is not None:
                self._block_lists[user_id] = result.payload.blocked_users
            else:
                log_with_context(
                    logging.WARNING,
                    f"Could not fetch block-list of user {user_id}: {result.message}",
                    user_id=user_id,
                    status_code=result.status_code,
                )
                self._block_lists[user_id] = None
        return self._block_lists[user_id]

    def is_deliberately_blocked(self, user_id: int, counterpart_id: int) -> bool:
        """True when either user has the other on their block-list.

        A block-list that cannot be fetched counts as blocking.
        """
        for owner, other in ((user_id, counterpart_id), (counterpart_id, user_id)):
            block_list = self._block_list(owner)
            if block_list is None or other in block_list:
                return True
        return False
