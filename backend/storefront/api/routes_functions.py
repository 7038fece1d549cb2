import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from storefront.db import BackendClient, get_backend
from storefront.schemas.view_count_schema import ViewCountRequest
from storefront.services.view_count_service import ViewCountService, ViewCountUpdateError

log = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["functions"])

MISSING_FIELDS = "Missing required fields: productId and storeSlug"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def _json(body: dict, status_code: int = 200) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers=CORS_HEADERS)


def client_ip(request: Request) -> str:
    return request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip") or "unknown"


@router.options("/increment-view-count", include_in_schema=False)
def increment_view_count_preflight():
    return PlainTextResponse("ok", headers=CORS_HEADERS)


@router.post("/increment-view-count", summary="Record a product view")
async def increment_view_count(request: Request, backend: BackendClient = Depends(get_backend)):
    try:
        try:
            payload = ViewCountRequest.model_validate(await request.json())
        except ValidationError:
            payload = None
        if payload is None or payload.missing_required():
            return _json({"error": MISSING_FIELDS}, 400)

        svc = ViewCountService(backend)
        try:
            await run_in_threadpool(
                svc.record_view, payload, client_ip(request), request.headers.get("referer")
            )
        except ViewCountUpdateError:
            return _json({"error": "Failed to update view count"}, 500)

        return _json({"success": True, "message": "View count incremented"})
    except Exception:
        log.exception("increment-view-count failed")
        return _json({"error": "Internal server error"}, 500)
