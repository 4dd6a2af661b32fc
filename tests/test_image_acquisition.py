"""
Image Acquisition Tests

Input discrimination (data URI, URL, bare path, upload) and cleanup of
files written before a decode failure.
Run with: pytest tests/test_image_acquisition.py -v
"""
import asyncio
import base64
import pytest
import sys
import time
from pathlib import Path

import requests

sys.path.insert(0, str(Path(__file__).parent.parent))

from services import image_acquisition
from services.image_acquisition import (
    ORIGIN_BASE64,
    ORIGIN_REMOTE_URL,
    ORIGIN_UPLOAD,
    acquire_image,
    classify_image_value,
    decode_data_uri,
)
from services.temp_files import TempImage, TempImageGuard
from utils.exceptions import ImageAcquisitionError


class TestClassification:

    @pytest.mark.parametrize("value,expected", [
        ("data:image/png;base64,AAAA", ORIGIN_BASE64),
        ("https://storage.example.com/doc.jpg", ORIGIN_REMOTE_URL),
        ("http://storage.example.com/doc", ORIGIN_REMOTE_URL),
        ("uploads/identity/doc.JPG", "invalid"),
        ("doc.png", "invalid"),
        (None, None),
        ("", None),
        ("undefined", None),
    ])
    def test_classify(self, value, expected):
        assert classify_image_value(value) == expected

    def test_decode_data_uri(self):
        data, ext = decode_data_uri("data:image/png;base64," + base64.b64encode(b"abc").decode())
        assert data == b"abc"
        assert ext == "png"

    def test_decode_data_uri_rejects_garbage(self):
        with pytest.raises(ValueError):
            decode_data_uri("data:image/png;base64,***")


class TestAcquireImage:

    def test_base64(self, upload_dir, png_data_uri):
        with TempImageGuard() as guard:
            acquired = asyncio.run(acquire_image(png_data_uri, None, upload_dir, guard))
            assert acquired.origin == ORIGIN_BASE64
            assert acquired.image.shape == (40, 60, 3)
            assert acquired.temp_file.filename.startswith("temp_")
            assert acquired.temp_file.path.exists()
            assert guard.current == acquired.temp_file
        assert list(upload_dir.iterdir()) == []

    def test_base64_decode_failure_leaves_nothing(self, upload_dir):
        not_an_image = "data:image/png;base64," + base64.b64encode(b"hello").decode()
        with TempImageGuard() as guard:
            with pytest.raises(ImageAcquisitionError) as exc_info:
                asyncio.run(acquire_image(not_an_image, None, upload_dir, guard))
        assert exc_info.value.message == "Failed to load base64 image"
        assert list(upload_dir.iterdir()) == []

    def test_remote_url(self, upload_dir, png_bytes, monkeypatch):
        monkeypatch.setattr(image_acquisition, "_download", lambda url: png_bytes)
        with TempImageGuard() as guard:
            acquired = asyncio.run(acquire_image("https://cdn.example.com/p.png", None, upload_dir, guard))
            assert acquired.origin == ORIGIN_REMOTE_URL
            assert acquired.temp_file.filename.startswith("temp_http_")

    def test_remote_url_failure(self, upload_dir, monkeypatch):
        def fail(url):
            raise requests.ConnectionError("unreachable")

        monkeypatch.setattr(image_acquisition, "_download", fail)
        with TempImageGuard() as guard:
            with pytest.raises(ImageAcquisitionError) as exc_info:
                asyncio.run(acquire_image("https://cdn.example.com/p.png", None, upload_dir, guard))
        assert exc_info.value.message == "Failed to load image from HTTP URL"
        assert exc_info.value.error == "unreachable"
        assert list(upload_dir.iterdir()) == []

    def test_slow_download_is_bounded(self, upload_dir, png_bytes, monkeypatch):
        def trickle(url):
            time.sleep(0.5)
            return png_bytes

        monkeypatch.setattr(image_acquisition, "_download", trickle)
        monkeypatch.setattr(image_acquisition, "REMOTE_IMAGE_TIMEOUT_SECONDS", 0.05)
        with TempImageGuard() as guard:
            with pytest.raises(ImageAcquisitionError) as exc_info:
                asyncio.run(acquire_image("https://cdn.example.com/p.png", None, upload_dir, guard))
        assert exc_info.value.message == "Failed to load image from HTTP URL"
        assert "timed out" in exc_info.value.error
        assert list(upload_dir.iterdir()) == []

    def test_bare_path_rejected(self, upload_dir):
        with pytest.raises(ImageAcquisitionError) as exc_info:
            asyncio.run(acquire_image("passport.jpg", None, upload_dir, TempImageGuard()))
        assert exc_info.value.message == "Invalid image format or path"

    def test_upload(self, upload_dir, png_bytes):
        path = upload_dir / "image-1.png"
        path.write_bytes(png_bytes)
        with TempImageGuard() as guard:
            uploaded = guard.track(path)
            acquired = asyncio.run(acquire_image(None, uploaded, upload_dir, guard))
            assert acquired.origin == ORIGIN_UPLOAD
            assert acquired.temp_file is uploaded

    def test_missing_upload(self, upload_dir):
        with pytest.raises(ImageAcquisitionError) as exc_info:
            asyncio.run(acquire_image(None, None, upload_dir, TempImageGuard()))
        assert exc_info.value.message == "Failed to load uploaded image"
        assert exc_info.value.error == "No file uploaded"

    def test_upload_file_vanished(self, upload_dir):
        ghost = TempImage.from_path(upload_dir / "image-2.png")
        with pytest.raises(ImageAcquisitionError):
            asyncio.run(acquire_image(None, ghost, upload_dir, TempImageGuard()))
