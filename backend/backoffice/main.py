"""FastAPI application entrypoint.

Configures CORS, includes routers, and exposes a healthcheck endpoint.
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from . import schemas  # noqa: E402
from .deps import get_settings  # noqa: E402
from .routers import order_sync as order_sync_router  # noqa: E402
from .routers import platform_settings as platform_settings_router  # noqa: E402
from .telemetry import init_observability  # noqa: E402


def create_app() -> FastAPI:
    init_observability()

    app = FastAPI(
        title="Back-office API",
        description="""
        Order synchronization and reconciliation for the back-office.

        This API provides endpoints for:
        - Pulling orders from WooCommerce and upserting them
        - Changing fulfillment status and pushing it back to WooCommerce
        - Resolving unidentified order items after a product is created
        - Rebuilding client order aggregates
        - Managing the WooCommerce connection

        ## Authentication

        Endpoints read the caller from a JWT in the `access_token` cookie.
        """,
        version="1.0.0",
    )

    # Trust X-Forwarded-Proto from the load balancer
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    settings = get_settings()

    # BACKEND_CORS_ORIGINS is a comma-separated list
    cors_origins_str = os.getenv("BACKEND_CORS_ORIGINS", settings.BACKEND_CORS_ORIGINS)
    allowed_origins = [origin.strip() for origin in cors_origins_str.split(",") if origin.strip()]
    logger.info(f"[CORS] Allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(order_sync_router.router)
    app.include_router(platform_settings_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        openapi_schema.setdefault("components", {})["securitySchemes"] = {
            "cookieAuth": {
                "type": "apiKey",
                "in": "cookie",
                "name": "access_token",
                "description": "JWT token stored in HTTP-only cookie. Format: 'Bearer <token>'"
            }
        }

        public_endpoints = ["/health"]
        for path in openapi_schema["paths"]:
            if path in public_endpoints:
                continue
            for method in openapi_schema["paths"][path]:
                openapi_schema["paths"][path][method].setdefault("security", [{"cookieAuth": []}])

        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi
    return app


app = create_app()
