"""
MRZ Pipeline Tests

End-to-end stage composition with the locator and OCR stubbed out. The
focus is on the file invariant: whatever happens, at most the renamed
image is left in the upload directory.
Run with: pytest tests/test_mrz_pipeline.py -v
"""
import asyncio
import pytest
import sys
from io import BytesIO
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent))

from starlette.datastructures import Headers, UploadFile

from services import image_acquisition, mrz_pipeline
from services.mrz_locator import CroppedRegion
from services.mrz_parser import parse_mrz
from services.mrz_pipeline import read_mrz
from services.mrz_result import build_mrz_record
from utils.exceptions import MrzCropError, MrzParseError, MrzRecognitionError


def _crop_ok(image):
    return CroppedRegion(image=np.zeros((10, 100), dtype=np.uint8), box=(0, 0, 100, 10))


@pytest.fixture
def stub_stages(monkeypatch):
    """Replace locate/recognize; returns a dict to tweak their behaviour."""
    behaviour = {"locate": _crop_ok, "text": ""}

    def fake_locate(image):
        return behaviour["locate"](image)

    def fake_recognize(region):
        if isinstance(behaviour["text"], Exception):
            raise behaviour["text"]
        return behaviour["text"]

    monkeypatch.setattr(mrz_pipeline, "locate_mrz", fake_locate)
    monkeypatch.setattr(mrz_pipeline, "recognize_mrz", fake_recognize)
    return behaviour


class TestReadMrz:

    def test_success_keeps_renamed_image_only(self, stub_stages, upload_dir, png_data_uri, td3_lines):
        stub_stages["text"] = "\n".join(td3_lines)

        data = asyncio.run(read_mrz(png_data_uri, None, upload_dir))

        assert data["mrz"] == "\n".join(td3_lines)
        passport = data["passport"]
        assert passport["documentNumber"] == "L898902C3"
        assert passport["valid"] is True
        assert passport["imageInfo"]["renamed"] is True
        assert [p.name for p in upload_dir.iterdir()] == [passport["imageInfo"]["newFilename"]]

    def test_noisy_ocr_output_still_parses(self, stub_stages, upload_dir, png_data_uri, td1_lines):
        stub_stages["text"] = "\n".join(["UTOPIA", "IDENTITY CARD"] + td1_lines)
        data = asyncio.run(read_mrz(png_data_uri, None, upload_dir))
        assert data["passport"]["format"] == "TD1"

    def test_crop_failure_cleans_up(self, stub_stages, upload_dir, png_data_uri):
        def fail(image):
            raise MrzCropError(error="nothing found")

        stub_stages["locate"] = fail
        with pytest.raises(MrzCropError):
            asyncio.run(read_mrz(png_data_uri, None, upload_dir))
        assert list(upload_dir.iterdir()) == []

    def test_recognition_failure_cleans_up(self, stub_stages, upload_dir, png_data_uri):
        stub_stages["text"] = MrzRecognitionError("No MRZ data found in image")
        with pytest.raises(MrzRecognitionError):
            asyncio.run(read_mrz(png_data_uri, None, upload_dir))
        assert list(upload_dir.iterdir()) == []

    def test_parse_failure_cleans_up(self, stub_stages, upload_dir, png_data_uri):
        stub_stages["text"] = "NOT AN MRZ"
        with pytest.raises(MrzParseError):
            asyncio.run(read_mrz(png_data_uri, None, upload_dir))
        assert list(upload_dir.iterdir()) == []

    def test_checksum_failure_is_a_result(self, stub_stages, upload_dir, png_data_uri, td3_lines):
        stub_stages["text"] = "\n".join([td3_lines[0], td3_lines[1][:9] + "5" + td3_lines[1][10:]])
        data = asyncio.run(read_mrz(png_data_uri, None, upload_dir))
        assert data["passport"]["valid"] is False

    def test_stage_timeout(self, stub_stages, upload_dir, png_data_uri):
        def slow(image):
            import time
            time.sleep(0.5)
            return _crop_ok(image)

        stub_stages["locate"] = slow
        with pytest.raises(MrzCropError) as exc_info:
            asyncio.run(read_mrz(png_data_uri, None, upload_dir, timeout=0.05))
        assert "Timed out" in exc_info.value.error
        assert list(upload_dir.iterdir()) == []


INPUT_SHAPES = ["base64", "url", "upload"]


@pytest.fixture
def remote_image(monkeypatch, png_bytes):
    monkeypatch.setattr(image_acquisition, "_download", lambda url: png_bytes)


def _request_inputs(shape, png_bytes, png_data_uri):
    """(image field, upload) for one input shape carrying the same picture."""
    if shape == "base64":
        return png_data_uri, None
    if shape == "url":
        return "https://cdn.example.com/documents/scan.png", None
    upload = UploadFile(
        file=BytesIO(png_bytes),
        filename="scan.png",
        headers=Headers({"content-type": "image/png"}),
    )
    return None, upload


def _without_image_info(passport):
    return {key: value for key, value in passport.items() if key != "imageInfo"}


class TestInputShapes:
    """Base64, URL and upload requests differ only in imageInfo."""

    @pytest.mark.parametrize("shape", INPUT_SHAPES)
    def test_one_file_left(self, shape, stub_stages, remote_image, upload_dir, png_bytes, png_data_uri, td3_lines):
        stub_stages["text"] = "\n".join(td3_lines)
        value, upload = _request_inputs(shape, png_bytes, png_data_uri)

        passport = asyncio.run(read_mrz(value, upload, upload_dir))["passport"]

        assert _without_image_info(passport) == build_mrz_record(parse_mrz(td3_lines))
        assert [p.name for p in upload_dir.iterdir()] == [passport["imageInfo"]["newFilename"]]

    @pytest.mark.parametrize("shape", INPUT_SHAPES)
    def test_failure_leaves_nothing(self, shape, stub_stages, remote_image, upload_dir, png_bytes, png_data_uri):
        stub_stages["text"] = "NOT AN MRZ"
        value, upload = _request_inputs(shape, png_bytes, png_data_uri)

        with pytest.raises(MrzParseError):
            asyncio.run(read_mrz(value, upload, upload_dir))
        assert list(upload_dir.iterdir()) == []

    def test_same_record_for_every_shape(self, stub_stages, remote_image, upload_dir, png_bytes, png_data_uri, td3_lines):
        stub_stages["text"] = "\n".join(td3_lines)

        records = {}
        for shape in INPUT_SHAPES:
            directory = upload_dir / shape
            directory.mkdir()
            value, upload = _request_inputs(shape, png_bytes, png_data_uri)
            passport = asyncio.run(read_mrz(value, upload, directory))["passport"]
            records[shape] = _without_image_info(passport)
            assert len(list(directory.iterdir())) == 1

        assert records["base64"] == records["url"] == records["upload"]
