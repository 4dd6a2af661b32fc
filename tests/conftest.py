"""
Pytest Configuration and Fixtures

Shared fixtures for the identity verification test suite.
Run with: pytest -v
"""
import base64
import pytest
import sys
from pathlib import Path

import cv2
import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


# ICAO 9303 specimen documents (all check digits valid)
TD3_LINES = [
    "P<UTOERIKSSON<<ANNA<MARIA".ljust(44, "<"),
    "L898902C36UTO7408122F1204159ZE184226B<<<<<10",
]
TD2_LINES = [
    "I<UTOERIKSSON<<ANNA<MARIA".ljust(36, "<"),
    "D231458907UTO7408122F1204159".ljust(35, "<") + "6",
]
TD1_LINES = [
    "I<UTOD231458907".ljust(30, "<"),
    "7408122F1204159UTO".ljust(29, "<") + "6",
    "ERIKSSON<<ANNA<MARIA".ljust(30, "<"),
]
# Well-formed TD3 without a name or document number
TD3_ANONYMOUS_LINES = [
    "P<UTO".ljust(44, "<"),
    "<" * 10 + "UTO7408122F1204159" + "<" * 15 + "0",
]


def make_document_image(width: int = 1000, height: int = 700) -> np.ndarray:
    """
    White page with two rows of small dark glyph-like blocks near the
    bottom, shaped like an MRZ band.
    """
    image = np.full((height, width, 3), 255, dtype=np.uint8)
    for row_top in (height - 140, height - 100):
        x = 60
        for _ in range(44):
            cv2.rectangle(image, (x, row_top), (x + 10, row_top + 20), (20, 20, 20), -1)
            x += 18
    return image


def encode_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()


@pytest.fixture
def td3_lines():
    return list(TD3_LINES)


@pytest.fixture
def td2_lines():
    return list(TD2_LINES)


@pytest.fixture
def td1_lines():
    return list(TD1_LINES)


@pytest.fixture
def anonymous_lines():
    return list(TD3_ANONYMOUS_LINES)


@pytest.fixture
def document_image():
    """Synthetic document image with an MRZ-like band."""
    return make_document_image()


@pytest.fixture
def png_bytes():
    """Small valid PNG file contents."""
    return encode_png(np.full((40, 60, 3), 200, dtype=np.uint8))


@pytest.fixture
def png_data_uri(png_bytes):
    """The same PNG as a base64 data URI."""
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def upload_dir(tmp_path):
    """Empty identity upload directory."""
    directory = tmp_path / "identity"
    directory.mkdir()
    return directory


class FakeFaceExtractor:
    """
    Stand-in for the dlib extractor.

    Descriptors are looked up by image height so tests control what each
    photo "contains" through the size of the image they write.
    """

    name = "fake"

    def __init__(self, descriptors_by_height=None):
        self.descriptors_by_height = descriptors_by_height or {}
        self.load_calls = 0

    def load(self):
        self.load_calls += 1

    def get_descriptors(self, image):
        return self.descriptors_by_height.get(image.shape[0], [])


@pytest.fixture
def fake_extractor():
    return FakeFaceExtractor()


@pytest.fixture
def model_context(fake_extractor):
    from services.model_context import ModelContext
    return ModelContext(extractor=fake_extractor)


def write_photo(path: Path, height: int) -> Path:
    """Write a plain image of the given height (see FakeFaceExtractor)."""
    path.write_bytes(encode_png(np.full((height, 50, 3), 128, dtype=np.uint8)))
    return path
