from fastapi import APIRouter, Depends

from storefront.db import BackendClient, get_backend

router = APIRouter()


@router.get("/health", tags=["health"])
def health(backend: BackendClient = Depends(get_backend)):
    db_ok = backend.ping()
    storage_ok = False
    try:
        storage_ok = backend.bucket.health_check()
    except Exception:
        storage_ok = False

    return {
        "status": "ok" if db_ok and storage_ok else "degraded",
        "db": db_ok,
        "storage": storage_ok,
        "bucket": backend.bucket.name,
    }
