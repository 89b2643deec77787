"""Service dependencies for API routes.

Each request gets services built around the shared store clients, so no
service holds hidden process-wide state of its own.
"""

from __future__ import annotations

from fastapi import Depends

from civicsync.adapters.document_store.base import AbstractDocumentStore
from civicsync.core.config import settings
from civicsync.core.stores import ISSUES_COLLECTION, VOTES_COLLECTION, get_document_store
from civicsync.services.issue_service import IssueService
from civicsync.services.vote_service import VoteToggleService


def get_vote_service(
    store: AbstractDocumentStore = Depends(get_document_store),
) -> VoteToggleService:
    return VoteToggleService(
        votes=store.collection(VOTES_COLLECTION),
        issues=store.collection(ISSUES_COLLECTION),
        timeout_seconds=settings.mongo.timeout_seconds,
    )


def get_issue_service(
    store: AbstractDocumentStore = Depends(get_document_store),
    votes: VoteToggleService = Depends(get_vote_service),
) -> IssueService:
    return IssueService(
        issues=store.collection(ISSUES_COLLECTION),
        votes=votes,
        timeout_seconds=settings.mongo.timeout_seconds,
    )
