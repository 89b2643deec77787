"""Pydantic schemas for issue requests and responses."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class IssueCategory(str, Enum):
    ROAD = "Road"
    WATER = "Water"
    SANITATION = "Sanitation"
    ELECTRICITY = "Electricity"
    OTHER = "Other"


class IssueStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"


class IssueCreate(BaseModel):
    """Payload for reporting a new issue."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=1000)
    category: IssueCategory
    location: str = Field(..., min_length=1, max_length=200)
    image_url: str | None = Field(default=None, alias="imageUrl")
    status: IssueStatus = IssueStatus.PENDING
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class IssueUpdate(BaseModel):
    """Partial update of an issue; omitted or null fields keep their value."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1, max_length=1000)
    category: IssueCategory | None = None
    location: str | None = Field(default=None, min_length=1, max_length=200)
    image_url: str | None = Field(default=None, alias="imageUrl")
    status: IssueStatus | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class IssueResponse(BaseModel):
    """Issue as returned to clients, with its derived vote information."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str
    category: IssueCategory
    location: str
    image_url: str | None = Field(default=None, alias="imageUrl")
    status: IssueStatus
    created_by: str = Field(..., alias="createdBy")
    latitude: float | None = None
    longitude: float | None = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")
    votes: int = Field(0, description="Number of users currently voting for the issue.")
    user_has_voted: bool = Field(False, alias="userHasVoted")


class MessageResponse(BaseModel):
    message: str


class IssueListResponse(BaseModel):
    """One page of issues plus the totals needed to page through the rest."""

    model_config = ConfigDict(populate_by_name=True)

    issues: list[IssueResponse]
    total_issues: int = Field(..., alias="totalIssues")
    total_pages: int = Field(..., alias="totalPages")
    current_page: int = Field(..., alias="currentPage")


class IssuePin(BaseModel):
    """Map marker for a recently reported, geolocated issue."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    latitude: float
    longitude: float
    location: str
    category: IssueCategory
    created_at: datetime = Field(..., alias="createdAt")
