"""
Run result aggregation for the chat reconciler.

A :class:`RunResult` is created for every logical unit of work (one user,
one channel, one page sweep) and merged upward into the caller's result.
Results are immutable: ``merge`` and ``with_message`` return new instances.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Union

from chat_reconciler.types import SourceChannel, SourceUser

Entity = Union[SourceUser, SourceChannel]


@dataclass(frozen=True)
class RunResult:
    """Aggregate outcome of reconciling a set of entities.

    ``succeeded``, ``failed`` and ``skipped`` are disjoint and each is a
    subset of ``fetched``. Counts are always derived from the sequences.
    """

    fetched: tuple[Entity, ...] = ()
    succeeded: tuple[Entity, ...] = ()
    failed: tuple[Entity, ...] = ()
    skipped: tuple[Entity, ...] = ()
    errors: tuple[str, ...] = ()
    message: str | None = None

    # -- Constructors --------------------------------------------------------

    @classmethod
    def error(cls, message: str, *errors: str) -> RunResult:
        """A result carrying only error messages, e.g. a rejected request."""
        return cls(errors=errors, message=message)

    @classmethod
    def fetched_entity(cls, entity: Entity) -> RunResult:
        return cls(fetched=(entity,))

    @classmethod
    def failure(cls, entity: Entity, error: str, message: str | None = None) -> RunResult:
        return cls(failed=(entity,), errors=(error,), message=message or error)

    @classmethod
    def skip(cls, entity: Entity, message: str) -> RunResult:
        return cls(skipped=(entity,), message=message)

    @classmethod
    def success(cls, entity: Entity, message: str) -> RunResult:
        return cls(succeeded=(entity,), message=message)

    # -- Composition ---------------------------------------------------------

    def merge(self, other: RunResult, message: str | None = None) -> RunResult:
        """Concatenate ``other`` onto this result.

        Args:
            other: The result to append.
            message: Replaces the message when given; otherwise this result's
                message is kept.

        Returns:
            A new RunResult.
        """
        return RunResult(
            fetched=self.fetched + other.fetched,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            skipped=self.skipped + other.skipped,
            errors=self.errors + other.errors,
            message=message if message is not None else self.message,
        )

    def with_message(self, message: str) -> RunResult:
        return replace(self, message=message)

    def with_error(self, error: str) -> RunResult:
        return replace(self, errors=self.errors + (error,))

    # -- Derived values ------------------------------------------------------

    @property
    def fetched_count(self) -> int:
        return len(self.fetched)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed) or bool(self.errors)

    def summary(self) -> str:
        return (
            f"Fetched: {self.fetched_count}; Succeeded: {self.succeeded_count}; "
            f"Skipped: {self.skipped_count}; Failed: {self.failed_count}"
        )


def merge_all(results: list[RunResult], message: str | None = None) -> RunResult:
    """Fold a list of results left to right."""
    merged = RunResult()
    for result in results:
        merged = merged.merge(result)
    return merged.with_message(message) if message is not None else merged
