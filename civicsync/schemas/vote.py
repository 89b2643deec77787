"""Pydantic schemas for vote responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class VoteToggleResponse(BaseModel):
    """Result of toggling the caller's vote on an issue."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., description="Human-readable outcome.")
    voted: bool = Field(..., description="Whether the caller now votes for the issue.")
    votes: int = Field(..., description="Fresh vote count for the issue.")
    user_has_voted: bool = Field(..., alias="userHasVoted")
