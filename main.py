import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blobcache.api.router import router as api_router
from blobcache.core.config import settings
from blobcache.core.exceptions.handlers import register_exception_handlers
from blobcache.core.lifespan import lifespan
from blobcache.core.logging import setup_early_logging
from blobcache.core.middlewares import LogRequestsMiddleware
from blobcache.core.openapi import custom_openapi
from blobcache.core.rate_limiting import setup_rate_limiting

# Setup early logging for startup errors
setup_early_logging()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.PROJECT_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "cache", "description": "Store, fetch, list and delete blobs"},
        {"name": "health", "description": "Liveness probe"},
    ],
)

# Customize OpenAPI schema
app.openapi = lambda: custom_openapi(app)

# Setup rate limiting if enabled
setup_rate_limiting(app)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add logging middleware
app.add_middleware(LogRequestsMiddleware)

# Register all exception handlers
register_exception_handlers(app)

# Include API routers
app.include_router(api_router)


def serve():
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    serve()
