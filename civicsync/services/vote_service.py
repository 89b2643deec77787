"""Vote toggle service.

One user holds at most one vote per issue. Toggling inverts whichever state
is current: a present vote is deleted, an absent one is inserted.

The toggle is check-then-act, so two concurrent requests from the same user
can both see "no vote" and both insert. The store's unique (issue, user)
index rejects the second insert; that conflict means the vote already exists
and is reported as a successful ``voted`` outcome. A delete that matches
nothing likewise means a concurrent unvote already happened and reports
``unvoted``. ``unvote`` is the delete branch on its own and is idempotent.

Vote counts are always a fresh count query, never a stored counter.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from bson import ObjectId

from civicsync.adapters.document_store.base import (
    AbstractDocumentCollection,
    DocumentStoreError,
    DuplicateKeyStoreError,
)
from civicsync.core.errors import InvalidInputError, NotFoundError, VoteStoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

VOTE_UNIQUE_FIELDS = ("issue", "user")


class VoteState(str, Enum):
    VOTED = "voted"
    UNVOTED = "unvoted"


@dataclass(frozen=True)
class ToggleResult:
    """Outcome of a toggle: the caller's new state and the issue's vote count."""

    state: VoteState
    vote_count: int

    @property
    def voted(self) -> bool:
        return self.state is VoteState.VOTED


def parse_object_id(value: str, field: str) -> ObjectId:
    """Parse a hex id, raising InvalidInputError when malformed."""
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidInputError(
            code=f"invalid_{field}",
            message=f"Invalid {field.replace('_', ' ')}",
        )
    return ObjectId(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VoteToggleService:
    """Casts, retracts and counts votes."""

    def __init__(
        self,
        *,
        votes: AbstractDocumentCollection,
        issues: AbstractDocumentCollection,
        timeout_seconds: float = 10.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the service.

        Args:
            votes: Collection holding vote documents.
            issues: Collection holding issues (existence checks only).
            timeout_seconds: Deadline for each document store round trip.
            clock: Source of vote creation timestamps.
        """
        self._votes = votes
        self._issues = issues
        self._timeout_seconds = timeout_seconds
        self._clock = clock

    async def _call(self, awaitable: Awaitable[T], operation: str) -> T:
        """Run one store round trip under the deadline.

        Unique index conflicts pass through untouched; every other store
        failure or timeout becomes VoteStoreUnavailableError.
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout_seconds)
        except DuplicateKeyStoreError:
            raise
        except (DocumentStoreError, asyncio.TimeoutError) as exc:
            logger.error(
                "vote.store_error",
                extra={
                    "operation": operation,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            raise VoteStoreUnavailableError(
                code="vote_store_unavailable",
                message="Votes are temporarily unavailable. Try again.",
                details={"store": "document", "operation": operation},
            ) from exc

    async def ensure_indexes(self) -> None:
        """Declare the unique (issue, user) index the toggle relies on."""
        await self._votes.ensure_unique_index(VOTE_UNIQUE_FIELDS)
        logger.info("vote.index_ensured", extra={"fields": list(VOTE_UNIQUE_FIELDS)})

    async def _require_issue(self, issue_oid: ObjectId, issue_id: str) -> None:
        issue = await self._call(self._issues.find_one({"_id": issue_oid}), "find_issue")
        if issue is None:
            raise NotFoundError(
                code="issue_not_found",
                message="Issue not found",
                details={"issue_id": issue_id},
            )

    async def toggle_vote(self, issue_id: str, user_id: str) -> ToggleResult:
        """Flip the user's vote on an issue.

        Args:
            issue_id: Hex id of the issue.
            user_id: Hex id of the voting user.

        Returns:
            ToggleResult with the new state and fresh vote count.

        Raises:
            InvalidInputError: If either id is malformed (no store access).
            NotFoundError: If the issue does not exist.
            VoteStoreUnavailableError: If the document store fails.
        """
        issue_oid = parse_object_id(issue_id, "issue_id")
        user_oid = parse_object_id(user_id, "user_id")
        key = {"issue": issue_oid, "user": user_oid}

        await self._require_issue(issue_oid, issue_id)

        existing = await self._call(self._votes.find_one(key), "find_vote")

        if existing is not None:
            deleted = await self._call(self._votes.delete_one(key), "delete_vote")
            if deleted == 0:
                logger.info("vote.delete_noop", extra={"issue_id": issue_id})
            state = VoteState.UNVOTED
        else:
            vote = {"_id": ObjectId(), **key, "createdAt": self._clock()}
            try:
                await self._call(self._votes.insert_one(vote), "insert_vote")
            except DuplicateKeyStoreError:
                logger.info("vote.conflict_reinterpreted", extra={"issue_id": issue_id})
            state = VoteState.VOTED

        vote_count = await self._call(self._votes.count({"issue": issue_oid}), "count_votes")

        logger.info(
            "vote.toggled",
            extra={"issue_id": issue_id, "state": state.value, "vote_count": vote_count},
        )
        return ToggleResult(state=state, vote_count=vote_count)

    async def unvote(self, issue_id: str, user_id: str) -> ToggleResult:
        """Retract the user's vote; a no-op when none is recorded.

        Raises:
            InvalidInputError: If either id is malformed.
            NotFoundError: If the issue does not exist.
            VoteStoreUnavailableError: If the document store fails.
        """
        issue_oid = parse_object_id(issue_id, "issue_id")
        user_oid = parse_object_id(user_id, "user_id")
        await self._require_issue(issue_oid, issue_id)

        deleted = await self._call(
            self._votes.delete_one({"issue": issue_oid, "user": user_oid}), "delete_vote"
        )
        vote_count = await self._call(self._votes.count({"issue": issue_oid}), "count_votes")

        logger.info(
            "vote.retracted",
            extra={"issue_id": issue_id, "deleted": deleted, "vote_count": vote_count},
        )
        return ToggleResult(state=VoteState.UNVOTED, vote_count=vote_count)

    async def count_votes(self, issue_id: str) -> int:
        """Count votes currently recorded for an issue."""
        issue_oid = parse_object_id(issue_id, "issue_id")
        return await self._call(self._votes.count({"issue": issue_oid}), "count_votes")

    async def has_voted(self, issue_id: str, user_id: str) -> bool:
        """Whether ``user_id`` currently holds a vote on ``issue_id``."""
        key = {
            "issue": parse_object_id(issue_id, "issue_id"),
            "user": parse_object_id(user_id, "user_id"),
        }
        return await self._call(self._votes.count(key), "count_votes") > 0

    async def delete_votes_for_issue(self, issue_id: str) -> int | None:
        """Remove every vote of a deleted issue (best effort).

        Orphaned votes only affect counts for an issue that no longer exists,
        so a failure here is logged and swallowed.

        Returns:
            Number of deleted votes, or None if the cleanup failed.
        """
        issue_oid = parse_object_id(issue_id, "issue_id")
        try:
            deleted = await self._call(self._votes.delete_many({"issue": issue_oid}), "delete_votes")
        except VoteStoreUnavailableError:
            logger.warning("vote.cascade_failed", extra={"issue_id": issue_id})
            return None

        logger.info("vote.cascade_deleted", extra={"issue_id": issue_id, "deleted": deleted})
        return deleted
