from __future__ import annotations

from civicsync.api.routes.health import router as health_router
from civicsync.api.routes.issues import router as issues_router

__all__ = ["health_router", "issues_router"]
