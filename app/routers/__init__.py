from fastapi import FastAPI

from app.routers import personal_insights

_API = "/api/v1"

_ROUTES = [
    # (router,                  path-suffix,            tags)
    (personal_insights.router,  "/personal-insights",   ["Personal Insights"]),
]


def register_routers(app: FastAPI) -> None:
    """Attach every API router to the FastAPI application."""
    for router, suffix, tags in _ROUTES:
        app.include_router(router, prefix=f"{_API}{suffix}", tags=tags)
