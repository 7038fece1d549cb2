from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from storefront.config import Settings
from storefront.db import BackendClient, get_backend, get_settings
from storefront.services.image_service import ImageFile
from storefront.services.upload_service import (
    ImageDeleteError,
    ImageUploadError,
    ImageUploadService,
    InvalidImageUrl,
)

router = APIRouter(prefix="/api/images", tags=["images"])


def get_upload_service(
    backend: BackendClient = Depends(get_backend), cfg: Settings = Depends(get_settings)
) -> ImageUploadService:
    return ImageUploadService(
        backend.bucket,
        quality=cfg.IMAGE_QUALITY,
        fetch_timeout=cfg.IMAGE_FETCH_TIMEOUT_SECONDS,
    )


@router.post("", summary="Upload an optimized product image")
def upload_image(
    file: UploadFile = File(...),
    owner_id: str = Form(...),
    generate_sizes: bool = Form(True),
    svc: ImageUploadService = Depends(get_upload_service),
):
    image = ImageFile(
        name=file.filename or "image",
        content=file.file.read(),
        content_type=file.content_type or "application/octet-stream",
    )
    try:
        return svc.upload_optimized_image(image, owner_id, generate_sizes)
    except ImageUploadError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("", summary="Delete an image and all its size variants")
def delete_image(
    url: str = Query(..., description="public URL of any rendition"),
    svc: ImageUploadService = Depends(get_upload_service),
):
    try:
        paths = svc.delete_image_with_variants(url)
    except InvalidImageUrl as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ImageDeleteError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"ok": True, "paths": paths}
