from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse

_REQUIRED_API_PREFIXES = {
    "/api/v1/catalog",
    "/api/v1/projects",
    "/api/v1/webhooks",
}


def _validate_router_registry(routes: list[tuple[Any, str]]) -> None:
    """Routers may share a prefix, but no (method, path) pair may be claimed twice."""
    seen_prefixes: set[str] = set()
    seen_endpoints: set[tuple[str, str]] = set()
    for router, prefix in routes:
        route_list = getattr(router, "routes", None)
        if not isinstance(route_list, list) or not route_list:
            raise RuntimeError("Router registry includes an empty router definition")
        normalized_prefix = prefix.strip()
        if not normalized_prefix.startswith("/"):
            raise RuntimeError(f"Router prefix must start with '/': {prefix!r}")
        seen_prefixes.add(normalized_prefix)

        for route in route_list:
            for method in getattr(route, "methods", None) or ():
                endpoint = (method, normalized_prefix + route.path)
                if endpoint in seen_endpoints:
                    raise RuntimeError(
                        f"Duplicate route registered: {endpoint[0]} {endpoint[1]}"
                    )
                seen_endpoints.add(endpoint)

    missing_prefixes = sorted(_REQUIRED_API_PREFIXES - seen_prefixes)
    if missing_prefixes:
        raise RuntimeError(
            "Router registry is missing required API prefixes: "
            + ", ".join(missing_prefixes)
        )

    unexpected_prefixes = sorted(seen_prefixes - _REQUIRED_API_PREFIXES)
    if unexpected_prefixes:
        raise RuntimeError(
            "Router registry includes unexpected API prefixes: "
            + ", ".join(unexpected_prefixes)
        )


def register_lifecycle_routes(
    app: FastAPI,
    *,
    app_name: str,
    version: str,
) -> None:
    """Register lifecycle and health endpoints."""

    @app.get("/", tags=["Lifecycle"])
    async def root() -> dict[str, str]:
        """Root endpoint for basic reachability."""
        return {"status": "ok", "app": app_name, "version": version}

    @app.get("/health/live", tags=["Lifecycle"])
    async def liveness_check() -> dict[str, str]:
        """Fast liveness check without dependencies."""
        return {"status": "healthy"}

    @app.get("/health", tags=["Lifecycle"])
    async def health_check() -> Any:
        """Health check for load balancers; 503 when the database is down."""
        from portalight.shared.db.session import health_check as db_health_check

        database = await db_health_check()
        health = {
            "status": "healthy" if database["status"] == "up" else "unhealthy",
            "database": database,
        }
        if database["status"] == "down":
            return JSONResponse(status_code=503, content=health)
        return health


def register_api_routers(app: FastAPI) -> None:
    """Register API route modules in one place to keep app entrypoint focused."""
    from portalight.modules.catalog.api.v1.catalog import router as catalog_router
    from portalight.modules.catalog.api.v1.webhook import router as webhook_router
    from portalight.modules.inventory.api.v1.discovery import router as discovery_router
    from portalight.modules.provisioning.api.v1.provision import (
        router as provisioning_router,
    )

    routes: list[tuple[Any, str]] = [
        (catalog_router, "/api/v1/catalog"),
        (webhook_router, "/api/v1/webhooks"),
        (discovery_router, "/api/v1/projects"),
        (provisioning_router, "/api/v1/projects"),
    ]

    _validate_router_registry(routes)

    for router, prefix in routes:
        app.include_router(router, prefix=prefix)
