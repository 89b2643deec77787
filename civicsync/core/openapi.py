"""OpenAPI customization.

Documents the gateway contract on the generated schema:
- ``X-Gateway-Key`` security scheme, required by default
- ``X-User-ID`` principal header forwarded by the gateway
- Tags metadata
Health endpoints are exempted from security.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from civicsync.core.config import settings


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add security and tags."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "GatewayKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-Gateway-Key",
                "description": "Shared key proving the request came through the gateway.",
            },
        )
        security_schemes.setdefault(
            "Principal",
            {
                "type": "apiKey",
                "in": "header",
                "name": settings.app.principal_header,
                "description": "User id verified and forwarded by the gateway.",
            },
        )

        schema.setdefault("security", [{"GatewayKeyAuth": [], "Principal": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Issues",
                "description": "Issue reporting (rate limited) and vote toggling.",
            },
            {
                "name": "Health",
                "description": "Liveness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path == "/health" or path.startswith("/health/"):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
