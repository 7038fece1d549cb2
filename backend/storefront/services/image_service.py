"""
Server-side image compression for product photos.

Renditions are produced with Pillow: decode, shrink to fit a bounding box,
re-encode (WebP by default). Encoding problems never fail the caller, the
original bytes are handed back instead; only undecodable input is an error.
"""
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

log = logging.getLogger(__name__)

DEFAULT_MAX_WIDTH = 1200
DEFAULT_MAX_HEIGHT = 1200
DEFAULT_QUALITY = 0.8
DEFAULT_FORMAT = "image/webp"

# rendition name -> bounding box edge, smallest first
RESPONSIVE_SIZES = {
    "thumbnail": 150,
    "medium": 300,
    "large": 600,
    "original": 1200,
}

# content type -> (Pillow format, file extension)
FORMATS = {
    "image/webp": ("WEBP", "webp"),
    "image/jpeg": ("JPEG", "jpeg"),
    "image/jpg": ("JPEG", "jpeg"),
    "image/png": ("PNG", "png"),
}


class ImageException(Exception):
    pass


class ImageLoadError(ImageException):
    pass


@dataclass(frozen=True)
class ImageFile:
    name: str
    content: bytes
    content_type: str = "application/octet-stream"


def target_size(width: int, height: int, max_width: int, max_height: int) -> Tuple[int, int]:
    """Largest size fitting inside the box with the same aspect ratio; never upscales."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size {width}x{height}")
    scale = min(max_width / width, max_height / height, 1.0)
    return max(1, round(width * scale)), max(1, round(height * scale))


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)


def _prepare(img: Image.Image, pil_format: str) -> Image.Image:
    if pil_format == "JPEG":
        if _has_alpha(img):
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[-1])
            return background
        return img if img.mode == "RGB" else img.convert("RGB")
    if img.mode in ("RGB", "RGBA"):
        return img
    return img.convert("RGBA" if _has_alpha(img) else "RGB")


def _encode(img: Image.Image, content_type: str, quality: float) -> bytes:
    if content_type not in FORMATS:
        raise ValueError(f"Unsupported output format: {content_type}")
    pil_format, _ = FORMATS[content_type]
    img = _prepare(img, pil_format)
    q = max(0, min(100, int(round(quality * 100))))
    buf = io.BytesIO()
    if pil_format == "WEBP":
        img.save(buf, format="WEBP", quality=q, method=6)
    elif pil_format == "JPEG":
        img.save(buf, format="JPEG", quality=q, optimize=True)
    else:
        img.save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def compress_image(
    file: ImageFile,
    max_width: int = DEFAULT_MAX_WIDTH,
    max_height: int = DEFAULT_MAX_HEIGHT,
    quality: float = DEFAULT_QUALITY,
    format: str = DEFAULT_FORMAT,
) -> ImageFile:
    """
    Shrink ``file`` to fit ``max_width`` x ``max_height`` and re-encode it.

    Raises ImageLoadError when the bytes cannot be decoded. If re-encoding
    fails the untouched ``file`` is returned.
    """
    try:
        img = Image.open(io.BytesIO(file.content))
        img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        log.error("Error loading image %s for compression: %s", file.name, e)
        raise ImageLoadError("Error al cargar la imagen para compresión") from e

    with img:
        oriented = ImageOps.exif_transpose(img)
        size = target_size(oriented.width, oriented.height, max_width, max_height)
        if size != oriented.size:
            oriented = oriented.resize(size, Image.Resampling.LANCZOS)
        try:
            content = _encode(oriented, format, quality)
        except (OSError, ValueError, KeyError) as e:
            log.warning("Compression of %s to %s failed, keeping original: %s", file.name, format, e)
            return file

    _, ext = FORMATS[format]
    stem = file.name.split(".")[0] or "image"
    return ImageFile(name=f"{stem}.{ext}", content=content, content_type=format)


def generate_responsive_images(file: ImageFile, quality: float = DEFAULT_QUALITY) -> Dict[str, ImageFile]:
    """All WebP renditions of ``file`` keyed by size name, compressed concurrently."""
    with ThreadPoolExecutor(max_workers=len(RESPONSIVE_SIZES)) as ex:
        futures = {
            name: ex.submit(compress_image, file, edge, edge, quality, "image/webp")
            for name, edge in RESPONSIVE_SIZES.items()
        }
        try:
            return {name: fut.result() for name, fut in futures.items()}
        except ImageException as e:
            log.error("Error generating responsive images for %s: %s", file.name, e)
            raise ImageException("Error al generar imágenes responsivas") from e
