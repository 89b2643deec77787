from __future__ import annotations

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from civicsync.adapters.counter_store.base import AbstractCounterStore
from civicsync.adapters.document_store.base import AbstractDocumentStore
from civicsync.core.stores import get_counter_store, get_document_store

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Does not touch the counter or document store; used by load balancers to
    check that the process is serving requests.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(
    response: Response,
    counter_store: Annotated[AbstractCounterStore, Depends(get_counter_store)],
    document_store: Annotated[AbstractDocumentStore, Depends(get_document_store)],
) -> dict:
    """Readiness check: pings both stores.

    Returns HTTP 503 when either store is unreachable.
    """

    counter_ok, document_ok = await asyncio.gather(counter_store.ping(), document_store.ping())
    ready = counter_ok and document_ok
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ok" if ready else "unavailable",
        "checks": {"counter_store": counter_ok, "document_store": document_ok},
    }
