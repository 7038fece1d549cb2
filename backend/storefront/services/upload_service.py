import logging
import random
import re
import string
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Union
from urllib.parse import urlparse, urlunparse

import requests

from storefront.adapters.storage import StorageBucket, StorageError
from storefront.services.image_service import (
    DEFAULT_QUALITY,
    RESPONSIVE_SIZES,
    ImageException,
    ImageFile,
    compress_image,
)

log = logging.getLogger(__name__)

SIZE_VARIANTS = ("thumbnail", "medium", "large")
CANONICAL_EDGE = RESPONSIVE_SIZES["original"]
VARIANT_FILENAME = re.compile(r"^(.+?)(?:-(?:thumbnail|medium|large))?\.webp$")
SIZE_SUFFIX = re.compile(r"-(thumbnail|medium|large)\.")
BASE36 = string.digits + string.ascii_lowercase


class ImageUploadError(ImageException):
    pass


class ImageDeleteError(ImageException):
    pass


class InvalidImageUrl(ImageDeleteError):
    pass


def _unique_basename() -> str:
    suffix = "".join(random.choice(BASE36) for _ in range(8))
    return f"{int(time.time() * 1000)}-{suffix}"


def get_responsive_image_url(url: str, size: str = "original") -> str:
    """Point ``url`` (any rendition) at the ``size`` rendition."""
    if not url:
        return ""
    if size == "original":
        return url
    if SIZE_SUFFIX.search(url):
        return SIZE_SUFFIX.sub(f"-{size}.", url)
    parsed = urlparse(url)
    head, _, filename = parsed.path.rpartition("/")
    if not parsed.scheme or "." not in filename:
        return url
    stem, _, ext = filename.rpartition(".")
    return urlunparse(parsed._replace(path=f"{head}/{stem}-{size}.{ext}"))


class ImageUploadService:
    """
    Compresses product photos and stores every rendition under
    ``<owner_id>/<timestamp>-<random>[-<size>].webp`` in the bucket.
    """

    def __init__(
        self,
        bucket: StorageBucket,
        quality: float = DEFAULT_QUALITY,
        fetch_timeout: float = 30.0,
        http: Optional[requests.Session] = None,
    ):
        self.bucket = bucket
        self.quality = quality
        self.fetch_timeout = fetch_timeout
        self.http = http or requests.Session()

    def _store(self, image: ImageFile, path: str) -> str:
        self.bucket.upload(path, image.content, image.content_type)
        return self.bucket.get_public_url(path)

    def _upload_size(self, file: ImageFile, owner_id: str, base: str, size: str) -> Optional[str]:
        edge = RESPONSIVE_SIZES[size]
        try:
            sized = compress_image(file, edge, edge, self.quality, "image/webp")
            return self._store(sized, f"{owner_id}/{base}-{size}.webp")
        except (ImageException, StorageError) as e:
            log.error("Error uploading %s image for %s: %s", size, owner_id, e)
            return None

    def upload_optimized_image(self, file: ImageFile, owner_id: str, generate_sizes: bool = True) -> Dict[str, str]:
        """
        Upload the canonical 1200px WebP and, optionally, its smaller renditions.

        Returns ``{"original": url}`` plus one key per size that made it to
        storage; a failed size is left out rather than failing the upload.
        """
        try:
            canonical = compress_image(file, CANONICAL_EDGE, CANONICAL_EDGE, self.quality, "image/webp")
            base = _unique_basename()
            original_url = self._store(canonical, f"{owner_id}/{base}.webp")
        except (ImageException, StorageError) as e:
            log.error("Error in upload_optimized_image for %s: %s", owner_id, e)
            raise ImageUploadError("Error al subir y optimizar la imagen") from e

        result = {"original": original_url}
        if not generate_sizes:
            return result

        with ThreadPoolExecutor(max_workers=len(SIZE_VARIANTS)) as ex:
            futures = {
                size: ex.submit(self._upload_size, file, owner_id, base, size) for size in SIZE_VARIANTS
            }
            for size, fut in futures.items():
                url = fut.result()
                if url:
                    result[size] = url
        return result

    def process_existing_image(self, image_url: str, owner_id: str) -> Dict[str, str]:
        """Re-run an already hosted image through the pipeline; falls back to ``{"original": image_url}``."""
        try:
            resp = self.http.get(image_url, timeout=self.fetch_timeout)
            resp.raise_for_status()
            content_type = resp.headers.get("Content-Type", "image/jpeg")
            file = ImageFile(name="original-image.jpg", content=resp.content, content_type=content_type)
            return self.upload_optimized_image(file, owner_id, True)
        except (requests.RequestException, ImageException) as e:
            log.error("Error processing existing image %s: %s", image_url, e)
            return {"original": image_url}

    def batch_process_images(self, images: List[Union[ImageFile, str]], owner_id: str) -> List[Dict[str, str]]:
        """Process files and URLs one at a time, in order, to keep storage load flat."""
        results = []
        for image in images:
            if isinstance(image, str):
                results.append(self.process_existing_image(image, owner_id))
            else:
                results.append(self.upload_optimized_image(image, owner_id, True))
        return results

    def delete_image_with_variants(self, image_url: str) -> List[str]:
        """
        Remove every rendition that shares ``image_url``'s base name.
        Returns the storage paths that were requested for removal.
        """
        segments = [s for s in urlparse(image_url).path.split("/") if s]
        if len(segments) < 2:
            raise InvalidImageUrl(f"Not a storage object URL: {image_url}")
        owner_id, filename = segments[-2], segments[-1]

        match = VARIANT_FILENAME.match(filename)
        if match:
            base = match.group(1)
            paths = [f"{owner_id}/{base}.webp"] + [f"{owner_id}/{base}-{size}.webp" for size in SIZE_VARIANTS]
        else:
            paths = [f"{owner_id}/{filename}"]

        try:
            removed = self.bucket.remove(paths)
        except StorageError as e:
            log.error("Error deleting image variants for %s: %s", image_url, e)
            raise ImageDeleteError("Error al eliminar las variantes de la imagen") from e
        log.info("Removed %d of %d objects for %s", len(removed), len(paths), image_url)
        return paths
