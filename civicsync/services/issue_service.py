"""Issue lifecycle: create, list, read, update and delete.

Vote counts on read are derived from the votes collection. Only the creator
may update or delete an issue; ownership is compared as ObjectIds. Deleting
an issue removes the issue first, then asks the vote service to cascade its
votes; the cascade is best-effort and never fails the deletion.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

from bson import ObjectId

from civicsync.adapters.document_store.base import (
    ASCENDING,
    DESCENDING,
    AbstractDocumentCollection,
    DocumentStoreError,
)
from civicsync.core.errors import NotFoundError, PermissionAppError, StoreUnavailableError
from civicsync.schemas.issue import (
    IssueCreate,
    IssueListResponse,
    IssuePin,
    IssueResponse,
    IssueUpdate,
)
from civicsync.services.vote_service import VoteToggleService, parse_object_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
RECENT_PINS_LIMIT = 19

# filter value meaning "no filter"
_ANY = "all"

# request field -> document field, where they differ
_DOCUMENT_FIELDS = {"image_url": "imageUrl"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _newest_first(sort: str) -> bool:
    return sort != "oldest"


class IssueService:
    """Issue persistence built on the document store."""

    def __init__(
        self,
        *,
        issues: AbstractDocumentCollection,
        votes: VoteToggleService,
        timeout_seconds: float = 10.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._issues = issues
        self._votes = votes
        self._timeout_seconds = timeout_seconds
        self._clock = clock

    async def _call(self, awaitable: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout_seconds)
        except (DocumentStoreError, asyncio.TimeoutError) as exc:
            logger.error(
                "issue.store_error",
                extra={"operation": operation, "error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise StoreUnavailableError(
                code="issue_store_unavailable",
                message="Issues are temporarily unavailable. Try again.",
                details={"store": "document", "operation": operation},
            ) from exc

    async def _get_document(self, issue_id: str) -> dict[str, Any]:
        issue_oid = parse_object_id(issue_id, "issue_id")
        document = await self._call(self._issues.find_one({"_id": issue_oid}), "find_issue")
        if document is None:
            raise NotFoundError(
                code="issue_not_found",
                message="Issue not found",
                details={"issue_id": issue_id},
            )
        return document

    async def _get_owned_document(self, issue_id: str, requested_by: str, action: str) -> dict[str, Any]:
        requester = parse_object_id(requested_by, "user_id")
        document = await self._get_document(issue_id)
        if document.get("createdBy") != requester:
            raise PermissionAppError(
                code="issue_forbidden",
                message=f"You are not authorized to {action} this issue",
            )
        return document

    async def _with_votes(self, document: dict[str, Any], viewer_id: str | None) -> IssueResponse:
        issue_id = str(document["_id"])
        votes = await self._votes.count_votes(issue_id)
        user_has_voted = await self._votes.has_voted(issue_id, viewer_id) if viewer_id else False
        return _to_response(document, votes=votes, user_has_voted=user_has_voted)

    async def create_issue(self, payload: IssueCreate, *, created_by: str) -> IssueResponse:
        """Persist a new issue owned by ``created_by``."""
        now = self._clock()
        document: dict[str, Any] = {
            "_id": ObjectId(),
            "title": payload.title,
            "description": payload.description,
            "category": payload.category.value,
            "location": payload.location,
            "imageUrl": payload.image_url,
            "status": payload.status.value,
            "createdBy": parse_object_id(created_by, "user_id"),
            "latitude": payload.latitude,
            "longitude": payload.longitude,
            "createdAt": now,
            "updatedAt": now,
        }
        await self._call(self._issues.insert_one(document), "insert_issue")
        logger.info(
            "issue.created",
            extra={"issue_id": str(document["_id"]), "category": document["category"]},
        )
        return _to_response(document, votes=0, user_has_voted=False)

    async def get_issue(self, issue_id: str, *, viewer_id: str | None = None) -> IssueResponse:
        """Return an issue with its derived vote count and the viewer's vote."""
        document = await self._get_document(issue_id)
        return await self._with_votes(document, viewer_id)

    async def list_issues(
        self,
        *,
        category: str | None = None,
        status: str | None = None,
        search: str | None = None,
        sort: str = "newest",
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        viewer_id: str | None = None,
    ) -> IssueListResponse:
        """Return one page of issues matching the filters.

        ``category`` and ``status`` filter by exact value ("all" or empty
        disables them). ``search`` matches title or description
        case-insensitively as a literal substring. ``sort`` is "newest"
        (default) or "oldest" by creation time. Out-of-range ``page`` falls
        back to 1 and out-of-range ``limit`` to 10.
        """
        page = max(page, 1)
        if not 1 <= limit <= MAX_PAGE_SIZE:
            limit = DEFAULT_PAGE_SIZE

        filter: dict[str, Any] = {}
        if category and category != _ANY:
            filter["category"] = category
        if status and status != _ANY:
            filter["status"] = status
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            filter["$or"] = [{"title": pattern}, {"description": pattern}]

        direction = DESCENDING if _newest_first(sort) else ASCENDING
        total = await self._call(self._issues.count(filter), "count_issues")
        documents = await self._call(
            self._issues.find(
                filter,
                sort=[("createdAt", direction), ("_id", direction)],
                skip=(page - 1) * limit,
                limit=limit,
            ),
            "list_issues",
        )

        issues = [await self._with_votes(document, viewer_id) for document in documents]
        return IssueListResponse(
            issues=issues,
            total_issues=total,
            total_pages=(total + limit - 1) // limit,
            current_page=page,
        )

    async def list_issues_by_user(self, user_id: str, *, viewer_id: str | None = None) -> list[IssueResponse]:
        """Return every issue created by ``user_id``, newest first."""
        creator = parse_object_id(user_id, "user_id")
        documents = await self._call(
            self._issues.find(
                {"createdBy": creator},
                sort=[("createdAt", DESCENDING), ("_id", DESCENDING)],
            ),
            "list_issues",
        )
        return [await self._with_votes(document, viewer_id) for document in documents]

    async def recent_pins(self, limit: int = RECENT_PINS_LIMIT) -> list[IssuePin]:
        """Newest issues that carry coordinates, for the map view."""
        documents = await self._call(
            self._issues.find(
                {"latitude": {"$ne": None}, "longitude": {"$ne": None}},
                sort=[("createdAt", DESCENDING), ("_id", DESCENDING)],
                limit=limit,
            ),
            "recent_issues",
        )
        return [
            IssuePin(
                id=str(document["_id"]),
                title=document["title"],
                latitude=document["latitude"],
                longitude=document["longitude"],
                location=document["location"],
                category=document["category"],
                created_at=document["createdAt"],
            )
            for document in documents
        ]

    async def update_issue(self, issue_id: str, payload: IssueUpdate, *, requested_by: str) -> IssueResponse:
        """Apply a partial update to an issue owned by ``requested_by``.

        Fields left out of ``payload`` (or sent as null) are unchanged;
        ``updatedAt`` is always refreshed.

        Raises:
            NotFoundError: If the issue does not exist.
            PermissionAppError: If the requester did not create the issue.
        """
        document = await self._get_owned_document(issue_id, requested_by, "update")

        changes: dict[str, Any] = {
            _DOCUMENT_FIELDS.get(field, field): value
            for field, value in payload.model_dump(mode="json", exclude_none=True).items()
        }
        changes["updatedAt"] = self._clock()

        matched = await self._call(self._issues.update_one({"_id": document["_id"]}, changes), "update_issue")
        if not matched:
            raise NotFoundError(
                code="issue_not_found",
                message="Issue not found",
                details={"issue_id": issue_id},
            )
        logger.info("issue.updated", extra={"issue_id": issue_id, "fields": sorted(changes)})

        document.update(changes)
        return await self._with_votes(document, requested_by)

    async def delete_issue(self, issue_id: str, *, requested_by: str) -> None:
        """Delete an issue owned by ``requested_by`` and cascade its votes.

        Raises:
            NotFoundError: If the issue does not exist.
            PermissionAppError: If the requester did not create the issue.
        """
        document = await self._get_owned_document(issue_id, requested_by, "delete")

        await self._call(self._issues.delete_one({"_id": document["_id"]}), "delete_issue")
        logger.info("issue.deleted", extra={"issue_id": issue_id})

        await self._votes.delete_votes_for_issue(issue_id)


def _to_response(document: dict[str, Any], *, votes: int, user_has_voted: bool) -> IssueResponse:
    return IssueResponse(
        id=str(document["_id"]),
        title=document["title"],
        description=document["description"],
        category=document["category"],
        location=document["location"],
        image_url=document.get("imageUrl"),
        status=document["status"],
        created_by=str(document["createdBy"]),
        latitude=document.get("latitude"),
        longitude=document.get("longitude"),
        created_at=document["createdAt"],
        updated_at=document["updatedAt"],
        votes=votes,
        user_has_voted=user_has_voted,
    )
