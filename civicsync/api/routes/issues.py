"""Issue routes: creation (rate limited), listing, lookup, update, deletion and votes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from civicsync.api.dependencies import get_issue_service, get_vote_service
from civicsync.core.auth import get_principal_id, verify_gateway_key
from civicsync.core.rate_limit import issue_creation_policy, rate_limited
from civicsync.schemas.issue import (
    IssueCreate,
    IssueListResponse,
    IssuePin,
    IssueResponse,
    IssueUpdate,
    MessageResponse,
)
from civicsync.schemas.vote import VoteToggleResponse
from civicsync.services.issue_service import DEFAULT_PAGE_SIZE, IssueService
from civicsync.services.vote_service import ToggleResult, VoteToggleService

router = APIRouter(
    prefix="/issues",
    tags=["Issues"],
    dependencies=[Depends(verify_gateway_key)],
)

Principal = Annotated[str, Depends(get_principal_id)]
Issues = Annotated[IssueService, Depends(get_issue_service)]
Votes = Annotated[VoteToggleService, Depends(get_vote_service)]


def _vote_response(result: ToggleResult) -> VoteToggleResponse:
    return VoteToggleResponse(
        message="Vote cast successfully" if result.voted else "Vote removed successfully",
        voted=result.voted,
        votes=result.vote_count,
        user_has_voted=result.voted,
    )


@router.post(
    "",
    response_model=IssueResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limited(issue_creation_policy))],
)
async def create_issue(payload: IssueCreate, principal_id: Principal, issues: Issues) -> IssueResponse:
    """Report a new issue.

    Each user may create a limited number of issues per window; requests over
    the limit get HTTP 429 with a Retry-After header. Admitted requests use
    up quota even if the insert then fails.
    """
    return await issues.create_issue(payload, created_by=principal_id)


@router.get("", response_model=IssueListResponse)
async def list_issues(
    principal_id: Principal,
    issues: Issues,
    category: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    search: str | None = None,
    sort: str = "newest",
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> IssueListResponse:
    """List issues with filtering, title/description search and pagination.

    ``category`` and ``status`` accept "all" to disable the filter; ``sort``
    is "newest" (default) or "oldest".
    """
    return await issues.list_issues(
        category=category,
        status=status_filter,
        search=search,
        sort=sort,
        page=page,
        limit=limit,
        viewer_id=principal_id,
    )


@router.get("/recent", response_model=list[IssuePin])
async def recent_issues(principal_id: Principal, issues: Issues) -> list[IssuePin]:
    """Newest geolocated issues as map pins."""
    return await issues.recent_pins()


@router.get("/user/{user_id}", response_model=list[IssueResponse])
async def list_issues_by_user(user_id: str, principal_id: Principal, issues: Issues) -> list[IssueResponse]:
    """Issues created by ``user_id``, newest first."""
    return await issues.list_issues_by_user(user_id, viewer_id=principal_id)


@router.get("/{issue_id}", response_model=IssueResponse)
async def get_issue(issue_id: str, principal_id: Principal, issues: Issues) -> IssueResponse:
    """Fetch an issue with its vote count and whether the caller voted."""
    return await issues.get_issue(issue_id, viewer_id=principal_id)


@router.put("/{issue_id}", response_model=IssueResponse)
async def update_issue(
    issue_id: str,
    payload: IssueUpdate,
    principal_id: Principal,
    issues: Issues,
) -> IssueResponse:
    """Update fields of an issue created by the caller."""
    return await issues.update_issue(issue_id, payload, requested_by=principal_id)


@router.delete("/{issue_id}", response_model=MessageResponse)
async def delete_issue(issue_id: str, principal_id: Principal, issues: Issues) -> MessageResponse:
    """Delete an issue created by the caller, together with its votes."""
    await issues.delete_issue(issue_id, requested_by=principal_id)
    return MessageResponse(message="Issue deleted successfully")


@router.post("/{issue_id}/vote", response_model=VoteToggleResponse)
async def toggle_vote(issue_id: str, principal_id: Principal, votes: Votes) -> VoteToggleResponse:
    """Cast the caller's vote, or retract it if already cast."""
    return _vote_response(await votes.toggle_vote(issue_id, principal_id))


@router.delete("/{issue_id}/vote", response_model=VoteToggleResponse)
async def remove_vote(issue_id: str, principal_id: Principal, votes: Votes) -> VoteToggleResponse:
    """Retract the caller's vote; succeeds even if there was none."""
    return _vote_response(await votes.unvote(issue_id, principal_id))
