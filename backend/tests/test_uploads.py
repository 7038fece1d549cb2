import io
import random

import pytest
import requests
from fastapi.testclient import TestClient
from PIL import Image

from conftest import png_file
from storefront.adapters.storage import StorageError
from storefront.config import Settings
from storefront.main import create_app
from storefront.services.image_service import ImageFile
from storefront.services.upload_service import (
    ImageDeleteError,
    ImageUploadError,
    ImageUploadService,
    get_responsive_image_url,
)


def noisy_png(width, height):
    rng = random.Random(7)
    img = Image.frombytes("RGB", (width, height), bytes(rng.randrange(256) for _ in range(width * height * 3)))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _local_path(bucket, url):
    return bucket.root.joinpath(*url.split("/storage/products/", 1)[1].split("/"))


class FakeResponse:
    def __init__(self, content, content_type="image/png", status=200):
        self.content = content
        self.headers = {"Content-Type": content_type}
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")


class FakeHttp:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        resp = self.responses[url]
        if isinstance(resp, Exception):
            raise resp
        return resp


def test_upload_without_sizes(bucket):
    result = ImageUploadService(bucket).upload_optimized_image(png_file(2000, 1000), "owner-1", generate_sizes=False)
    assert list(result) == ["original"]
    url = result["original"]
    assert url.startswith("http://testserver/storage/products/owner-1/")
    assert url.endswith(".webp")
    with Image.open(_local_path(bucket, url)) as img:
        assert img.size == (1200, 600)


def test_upload_with_sizes_shares_base_name(bucket):
    result = ImageUploadService(bucket).upload_optimized_image(png_file(900, 900), "owner-1")
    assert set(result) == {"original", "thumbnail", "medium", "large"}
    base = result["original"][: -len(".webp")]
    for size in ("thumbnail", "medium", "large"):
        assert result[size] == f"{base}-{size}.webp"
        assert _local_path(bucket, result[size]).exists()
    with Image.open(_local_path(bucket, result["thumbnail"])) as img:
        assert img.size == (150, 150)


def test_failed_size_is_left_out(bucket, monkeypatch):
    real_upload = bucket.upload

    def flaky(path, content, content_type):
        if path.endswith("-medium.webp"):
            raise StorageError("quota exceeded")
        return real_upload(path, content, content_type)

    monkeypatch.setattr(bucket, "upload", flaky)
    result = ImageUploadService(bucket).upload_optimized_image(png_file(700, 500), "owner-1")
    assert set(result) == {"original", "thumbnail", "large"}


def test_canonical_failure_raises(bucket):
    bad = ImageFile(name="x.png", content=b"garbage", content_type="image/png")
    with pytest.raises(ImageUploadError):
        ImageUploadService(bucket).upload_optimized_image(bad, "owner-1")


def test_delete_from_any_rendition_removes_all(bucket):
    svc = ImageUploadService(bucket)
    result = svc.upload_optimized_image(png_file(400, 400), "owner-1")
    paths = svc.delete_image_with_variants(result["medium"])
    assert len(paths) == 4
    stem = result["original"].rsplit("/", 1)[1][: -len(".webp")]
    assert paths[0] == f"owner-1/{stem}.webp"
    for url in result.values():
        assert not _local_path(bucket, url).exists()


def test_delete_non_webp_targets_single_object(bucket):
    svc = ImageUploadService(bucket)
    paths = svc.delete_image_with_variants("http://testserver/storage/products/owner-1/legacy.jpg")
    assert paths == ["owner-1/legacy.jpg"]


def test_delete_rejects_url_without_owner(bucket):
    with pytest.raises(ImageDeleteError):
        ImageUploadService(bucket).delete_image_with_variants("http://cdn/file.webp")


def test_delete_storage_failure(bucket, monkeypatch):
    def broken(paths):
        raise StorageError("unavailable")

    monkeypatch.setattr(bucket, "remove", broken)
    with pytest.raises(ImageDeleteError):
        ImageUploadService(bucket).delete_image_with_variants("http://cdn/owner-1/abc.webp")


def test_process_existing_image(bucket):
    url = "https://old-cdn.example/p/1.png"
    http = FakeHttp({url: FakeResponse(png_file(1600, 800).content)})
    result = ImageUploadService(bucket, fetch_timeout=5, http=http).process_existing_image(url, "owner-1")
    assert set(result) == {"original", "thumbnail", "medium", "large"}
    assert http.calls == [(url, 5)]


@pytest.mark.parametrize(
    "response",
    [
        requests.ConnectionError("unreachable"),
        FakeResponse(b"", status=404),
        FakeResponse(b"<html>", content_type="text/html"),
    ],
)
def test_process_existing_image_falls_back_to_url(bucket, response):
    url = "https://old-cdn.example/p/2.png"
    result = ImageUploadService(bucket, http=FakeHttp({url: response})).process_existing_image(url, "owner-1")
    assert result == {"original": url}


def test_batch_keeps_input_order(bucket):
    url = "https://old-cdn.example/p/gone.png"
    svc = ImageUploadService(bucket, http=FakeHttp({url: requests.Timeout("slow")}))
    results = svc.batch_process_images([png_file(300, 300), url], "owner-1")
    assert len(results) == 2
    assert set(results[0]) == {"original", "thumbnail", "medium", "large"}
    assert results[1] == {"original": url}


@pytest.mark.parametrize(
    "url, size, expected",
    [
        ("https://cdn/o/abc.webp", "thumbnail", "https://cdn/o/abc-thumbnail.webp"),
        ("https://cdn/o/abc-large.webp", "medium", "https://cdn/o/abc-medium.webp"),
        ("https://cdn/o/abc.webp", "original", "https://cdn/o/abc.webp"),
        ("", "medium", ""),
        ("abc", "medium", "abc"),
    ],
)
def test_get_responsive_image_url(url, size, expected):
    assert get_responsive_image_url(url, size) == expected


def test_upload_and_delete_endpoints(client, bucket):
    res = client.post(
        "/api/images",
        files={"file": ("p.png", png_file(500, 250).content, "image/png")},
        data={"owner_id": "owner-1", "generate_sizes": "false"},
    )
    assert res.status_code == 200
    url = res.json()["original"]

    served = client.get(url)
    assert served.status_code == 200
    assert served.content[:4] == b"RIFF"

    res = client.delete("/api/images", params={"url": url})
    assert res.status_code == 200
    assert res.json()["ok"] is True
    assert not _local_path(bucket, url).exists()


def test_upload_endpoint_rejects_garbage(client):
    res = client.post(
        "/api/images",
        files={"file": ("p.png", b"garbage", "image/png")},
        data={"owner_id": "owner-1"},
    )
    assert res.status_code == 400


def test_delete_endpoint_rejects_url_without_owner(client):
    res = client.delete("/api/images", params={"url": "http://cdn/file.webp"})
    assert res.status_code == 400


def test_upload_endpoint_uses_app_quality(backend, bucket):
    low = TestClient(create_app(Settings(IMAGE_QUALITY=0.1), backend=backend))
    high = TestClient(create_app(Settings(IMAGE_QUALITY=0.95), backend=backend))
    photo = noisy_png(200, 200)
    sizes = []
    for c in (low, high):
        res = c.post(
            "/api/images",
            files={"file": ("p.png", photo, "image/png")},
            data={"owner_id": "owner-1", "generate_sizes": "false"},
        )
        sizes.append(_local_path(bucket, res.json()["original"]).stat().st_size)
    assert sizes[0] < sizes[1]
