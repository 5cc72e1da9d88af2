from fastapi.openapi.utils import get_openapi
from blobcache.core.config import settings


def custom_openapi(app):
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=settings.APP_NAME,
        version=settings.PROJECT_VERSION,
        description=(
            "Compressed blob cache. Store payloads under your own key (PUT) or "
            "under their SHA-256 digest (POST); entries older than "
            f"{settings.RETENTION_DAYS:g} day(s) are removed in the background."
        ),
        routes=app.routes,
        tags=app.openapi_tags,
    )
    app.openapi_schema = openapi_schema
    return app.openapi_schema
