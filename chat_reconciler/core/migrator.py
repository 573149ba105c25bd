"""
Cross-system migration of users and channels from the source to the target.

Every public operation returns a :class:`RunResult`. Per-entity problems are
recorded in the result and never abort the run.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tqdm import tqdm

from chat_reconciler.constants import (
    DEFAULT_PAGE_SIZE,
    HTTP_NOT_FOUND,
    MAX_DEPENDENCY_DEPTH,
)
from chat_reconciler.core.channel_upsert import upsert_channel
from chat_reconciler.core.dependencies import DependencyResolver
from chat_reconciler.core.filters import (
    DateWindow,
    OpenWindow,
    has_uncertain_data,
    is_state_achieved,
)
from chat_reconciler.core.result import RunResult
from chat_reconciler.types import SourceChannel, SourceUser, build_user_payload
from chat_reconciler.utils.logging import log_with_context

if TYPE_CHECKING:
    from chat_reconciler.services.source_client import SourceClient
    from chat_reconciler.services.target_client import TargetClient


def _limit_or_none(limit: int) -> int | None:
    return limit if limit and limit > 0 else None


def _page_size_or_default(page_size: int) -> int:
    return page_size if page_size and page_size > 0 else DEFAULT_PAGE_SIZE


def parse_account_id(user_id: str | int | None) -> int | None:
    """Return the account id as a positive int, or None when invalid."""
    try:
        value = int(str(user_id).strip())
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


class Migrator:
    """Migrates users and channels from the source backend to the target."""

    def __init__(
        self,
        source: SourceClient,
        target: TargetClient,
        max_depth: int = MAX_DEPENDENCY_DEPTH,
    ) -> None:
        self.source = source
        self.target = target
        self.resolver = DependencyResolver(
            source, target, migrate_user=self._migrate_dependency, max_depth=max_depth
        )

    def _migrate_dependency(
        self, user_id: str, existing_blockees_only: bool, depth: int
    ) -> RunResult:
        # Dependencies are migrated regardless of their age
        return self.migrate_user(user_id, existing_blockees_only, OpenWindow(), depth)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def migrate_users(
        self, window: DateWindow, page_size: int, limit: int
    ) -> RunResult:
        """Migrate every source user, up to ``limit``."""
        log_with_context(
            logging.INFO,
            "Fetching users from the source in bulk. This might take a couple of minutes...",
        )
        fetched = self.source.list_users(
            _page_size_or_default(page_size), _limit_or_none(limit)
        )
        if not fetched.is_success:
            return RunResult.error(
                "Migration of users' attributes failed. See errors for details.",
                fetched.describe(),
            )

        result = RunResult()
        for user in tqdm(fetched.payload or [], desc="Migrating users", unit="user"):
            if self.resolver.is_handled(user.id):
                log_with_context(
                    logging.DEBUG,
                    f"User {user.id} already migrated as a dependency.",
                    user_id=user.id,
                )
                continue
            user_result = RunResult.fetched_entity(user).merge(
                self._migrate_fetched_user(user, False, window, 0)
            )
            self.resolver.mark_handled(user.id, user in user_result.succeeded)
            result = result.merge(user_result)

        return result.with_message(
            f"Migration finished. Totally migrated {result.succeeded_count} users' attributes."
            if result.failed_count == 0
            else f"Not all users' attributes migrated successfully. "
            f"{result.failed_count} failed, {result.succeeded_count} succeeded."
        )

    def migrate_channels(
        self, window: DateWindow, page_size: int, limit: int
    ) -> RunResult:
        """Migrate every private source channel, up to ``limit``."""
        log_with_context(
            logging.INFO,
            "Fetching channels from the source in bulk. This might take a couple of minutes...",
        )
        fetched = self.source.list_channels(
            _page_size_or_default(page_size), _limit_or_none(limit)
        )
        if not fetched.is_success:
            return RunResult.error(
                "Migration of channels' attributes failed. See errors for details.",
                fetched.describe(),
            )

        result = RunResult()
        for channel in tqdm(
            fetched.payload or [], desc="Migrating channels", unit="channel"
        ):
            result = result.merge(RunResult.fetched_entity(channel))
            result = result.merge(self._migrate_fetched_channel(channel, window))

        return result.with_message(
            f"Migration finished. Totally migrated {result.succeeded_count} channels' attributes."
            if result.failed_count == 0
            else f"Not all channels' attributes migrated successfully. "
            f"{result.failed_count} failed, {result.succeeded_count} succeeded."
        )

    # ------------------------------------------------------------------
    # Single entities
    # ------------------------------------------------------------------

    def migrate_account(
        self,
        user_id: str | int,
        window: DateWindow,
        page_size: int,
        limit: int,
    ) -> RunResult:
        """Migrate one user and then every channel the user belongs to.

        The user is always migrated, whatever the window, because an old
        account may still have recent channels.
        """
        account_id = parse_account_id(user_id)
        if account_id is None:
            return RunResult.error(
                "Migration of the account failed. See errors for details.",
                f"{user_id} is invalid.",
            )

        user_result = self.migrate_user(str(account_id), False, OpenWindow(), 0)
        if user_result.fetched_count == 0:
            return user_result.with_error(
                f"Failed to migrate the user with ID {account_id}; "
                f"reason: {user_result.message}."
            ).with_message("Migration of the account failed. See errors for details.")

        if any(
            isinstance(e, SourceUser) and e.id == str(account_id)
            for e in user_result.failed
        ):
            return user_result.with_message(
                "Migration of the account failed. See errors for details."
            )

        channels_result = self._migrate_account_channels(
            account_id, window, page_size, limit
        )
        return user_result.merge(
            channels_result,
            message=f"{user_result.message}; {channels_result.message}",
        )

    def _migrate_account_channels(
        self, account_id: int, window: DateWindow, page_size: int, limit: int
    ) -> RunResult:
        links = self.source.list_user_channels(
            str(account_id), _page_size_or_default(page_size), _limit_or_none(limit)
        )
        if not links.is_success:
            return RunResult.error(
                f"Migration of channels for the account {account_id} failed. "
                "See errors for details.",
                links.describe(),
            )
        if not links.payload:
            return RunResult(message=f"No channels for the account {account_id} to migrate.")

        result = RunResult()
        for link in tqdm(links.payload, desc=f"Migrating channels of {account_id}"):
            fetched = self.source.fetch_channel(link.channel_sid)
            if not fetched.is_success or fetched.payload is None:
                error = (
                    f"Failed to retrieve channel with SID {link.channel_sid}; "
                    f"reason: {fetched.describe()}."
                )
                log_with_context(logging.ERROR, error, channel=link.channel_sid)
                result = result.merge(
                    RunResult.failure(SourceChannel(unique_name=link.channel_sid), error)
                )
                continue

            channel = fetched.payload
            result = result.merge(RunResult.fetched_entity(channel))
            result = result.merge(
                self._migrate_fetched_channel(channel, window, known_ids=[account_id])
            )

        return result.with_message(
            f"Migration finished. Totally migrated {result.succeeded_count} channels' attributes."
            if result.failed_count == 0
            else f"Not all channels' attributes migrated successfully. "
            f"{result.failed_count} failed, {result.succeeded_count} succeeded."
        )

    def migrate_channel(self, unique_name: str, window: DateWindow) -> RunResult:
        """Migrate a single channel identified by its unique name."""
        if not unique_name or not unique_name.strip():
            return RunResult.error(
                "Migration of the channel failed. See errors for details.",
                f"{unique_name} is invalid.",
            )

        log_with_context(
            logging.INFO,
            f"Fetching channel {unique_name} from the source...",
            channel=unique_name,
        )
        fetched = self.source.fetch_channel(unique_name)
        if not fetched.is_success or fetched.payload is None:
            error = (
                f"Failed to retrieve channel {unique_name}; "
                f"reason: {fetched.describe()}."
            )
            log_with_context(logging.ERROR, error, channel=unique_name)
            return RunResult.failure(
                SourceChannel(unique_name=unique_name),
                error,
                f"Migration of attributes for the channel {unique_name} failed. "
                "See errors for details.",
            )

        channel = fetched.payload
        result = RunResult.fetched_entity(channel).merge(
            self._migrate_fetched_channel(channel, window)
        )
        return result.with_message(
            f"Migration finished. Channel {unique_name} successfully migrated with attributes."
            if result.failed_count == 0
            else f"Migration of the channel {unique_name} with attributes failed. "
            "See errors for details."
        )

    def migrate_user(
        self,
        user_id: str,
        existing_blockees_only: bool = False,
        window: DateWindow | None = None,
        depth: int = 0,
    ) -> RunResult:
        """Fetch and migrate a single user.

        Args:
            user_id: Source user identity.
            existing_blockees_only: Apply only the part of the block-list whose
                users already exist on the target, without migrating the rest.
            window: Date window; defaults to no window.
            depth: Dependency depth of this migration (0 for top-level).

        Returns:
            The user's RunResult. When the user cannot be fetched, a placeholder
            carrying only the id is reported as failed.
        """
        if parse_account_id(user_id) is None:
            return RunResult.error(
                "Migration of user attributes failed. See errors for details.",
                f"{user_id} is invalid.",
            )

        fetched = self.source.fetch_user(str(user_id))
        if not fetched.is_success or fetched.payload is None:
            return RunResult.failure(
                SourceUser(id=str(user_id)),
                fetched.describe(),
                "Migration of user attributes failed. See errors for details.",
            )

        user = fetched.payload
        migrated = self._migrate_fetched_user(
            user, existing_blockees_only, window or OpenWindow(), depth
        )
        return RunResult.fetched_entity(user).merge(migrated, message=migrated.message)

    # ------------------------------------------------------------------
    # Per-entity state machines
    # ------------------------------------------------------------------

    def _migrate_fetched_user(
        self,
        user: SourceUser,
        existing_blockees_only: bool,
        window: DateWindow,
        depth: int,
    ) -> RunResult:
        existing_only = existing_blockees_only or depth >= self.resolver.max_depth
        log_with_context(
            logging.DEBUG,
            f"Migrating user {user.id} with "
            f"{'only existing blockees' if existing_only else 'all the blockees'} if any...",
            user_id=user.id,
        )

        if not window.includes(user.date_updated):
            message = (
                f"User {user.id} skipped. Last updated on {user.date_updated}. "
                f"Requested time period: {window.describe()}."
            )
            log_with_context(logging.INFO, message, user_id=user.id)
            return RunResult.skip(user, message)

        payload = build_user_payload(user)
        upserted = self.target.update_user(user.id, payload)
        if upserted.status_code == HTTP_NOT_FOUND:
            log_with_context(
                logging.DEBUG,
                f"User {user.id} does not exist on target. Creating...",
                user_id=user.id,
            )
            upserted = self.target.create_user(payload)

        if not upserted.is_success:
            return self._user_failure(
                user,
                f"Failed to create user {user.id} on target. "
                f"Reason: {upserted.describe()}.",
            )

        blocked = [str(b) for b in user.blocked_users]
        if not blocked:
            return RunResult.success(user, f"User {user.id} has no blocked users.")

        absent_result = self.target.find_absent_users(blocked)
        if not absent_result.is_success:
            return self._user_failure(
                user,
                f"Failed to query the target for blockees of user {user.id}. "
                f"Reason: {absent_result.describe()}.",
            )
        absent = absent_result.payload or []

        result = RunResult()
        blockee_failed = False
        migrated: list[str] = []
        if not existing_only and absent:
            nested, migrated = self.resolver.migrate_absent(
                absent, depth, f"user {user.id}"
            )
            blockee_failed = nested.failed_count > 0 or len(migrated) < len(absent)
            result = result.merge(nested)

        # Only ids that exist on the target can be blocked
        to_block = [b for b in blocked if b not in absent or b in migrated]
        if not to_block:
            message = (
                f"User {user.id} migrated successfully, but none of the blockees "
                "could be migrated."
                if blockee_failed
                else f"User {user.id} migrated successfully. "
                "No blocked user currently exists."
            )
            return result.merge(RunResult.success(user, message), message=message)

        blocking = self.target.block_users(user.id, to_block)
        if not blocking.is_success:
            failure = self._user_failure(
                user,
                f"Failed to migrate blockages for user {user.id}. "
                f"Reason: {blocking.describe()}.",
            )
            return result.merge(failure, message=failure.message)

        message = (
            f"User {user.id} migrated successfully, but some or all of the blockees failed."
            if blockee_failed
            else f"User {user.id} migrated successfully with the blockees."
        )
        log_with_context(logging.INFO, message, user_id=user.id)
        return result.merge(RunResult.success(user, message), message=message)

    @staticmethod
    def _user_failure(user: SourceUser, error: str) -> RunResult:
        log_with_context(logging.ERROR, error, user_id=user.id)
        return RunResult.failure(user, error)

    def _migrate_fetched_channel(
        self,
        channel: SourceChannel,
        window: DateWindow,
        known_ids: list[int] | None = None,
        depth: int = 0,
    ) -> RunResult:
        name = channel.unique_name

        if not window.includes(channel.date_updated):
            message = (
                f"Channel {name} skipped. Last updated on {channel.date_updated}. "
                f"Requested time period: {window.describe()}."
            )
            log_with_context(logging.INFO, message, channel=name)
            return RunResult.skip(channel, message)

        if has_uncertain_data(channel):
            attrs = channel.attributes
            message = (
                f"Channel {name} contained uncertain data. Members: "
                f"[{channel.members_count}]; listing ID: "
                f"[{attrs.listing_id if attrs else None}]; buyer ID: "
                f"[{attrs.buyer_id if attrs else None}]; seller ID: "
                f"[{attrs.seller_id if attrs else None}]. Skipped."
            )
            log_with_context(logging.INFO, message, channel=name)
            return RunResult.skip(channel, message)

        if is_state_achieved(channel.attributes, None):
            return RunResult.skip(channel, f"Channel {name} already up to date.")

        member_ids = self.resolver.resolve_channel_members(channel, known_ids)
        nested, usable_ids = self.resolver.ensure_users_on_target(
            member_ids, depth, f"channel {name}"
        )
        upserted = upsert_channel(self.target, channel, usable_ids)
        return nested.merge(upserted, message=upserted.message)
