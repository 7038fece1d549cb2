import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from storefront.adapters.storage import LocalStorageBucket
from storefront.api.health import router as health_router
from storefront.api.routes_catalogue import router as catalogue_router
from storefront.api.routes_checkout import router as checkout_router
from storefront.api.routes_functions import router as functions_router
from storefront.api.routes_images import router as images_router
from storefront.config import Settings, settings as default_settings
from storefront.db import BackendClient
from storefront.logging_config import configure_logging


def create_app(cfg: Optional[Settings] = None, backend: Optional[BackendClient] = None) -> FastAPI:
    """
    Build the application around one BackendClient. Tests pass their own
    client; otherwise one is constructed from settings.
    """
    cfg = cfg or default_settings
    configure_logging(cfg.LOG_LEVEL)
    backend = backend or BackendClient.from_settings(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Use env var RESET_DB=1 in dev to drop & recreate the catalog tables
        reset = os.environ.get("RESET_DB", "0").lower() in ("1", "true", "yes")
        backend.init_db(reset=reset)
        try:
            yield
        finally:
            backend.dispose()

    app = FastAPI(title="Storefront Catalog - Backend", version="0.1.0", lifespan=lifespan)
    app.state.backend = backend
    app.state.settings = cfg

    # edge functions answer their own fixed CORS handshake, so they sit
    # outside the origin-restricted API app
    app.include_router(functions_router)

    api = FastAPI(title="Storefront Catalog - API", version="0.1.0")
    api.state.backend = backend
    api.state.settings = cfg

    api.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.FRONTEND_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api.include_router(health_router, prefix="/api", tags=["health"])

    api.include_router(catalogue_router)

    api.include_router(checkout_router)

    api.include_router(images_router)

    if isinstance(backend.bucket, LocalStorageBucket):
        # public URLs of the local bucket point here
        api.mount(
            "/storage",
            StaticFiles(directory=str(backend.bucket.root.parent), check_dir=False),
            name="storage",
        )

    app.mount("/", api)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("storefront.main:app", host=default_settings.APP_HOST, port=default_settings.APP_PORT)
