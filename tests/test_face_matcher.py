"""
Face Matcher Tests

The dlib extractor is replaced by FakeFaceExtractor (see conftest), which
hands out descriptors by image height.
Run with: pytest tests/test_face_matcher.py -v
"""
import asyncio
import pytest
import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import FakeFaceExtractor, write_photo
from services.face_extractor import FaceExtractor
from services.face_matcher import compare_faces, euclidean_distance, match_level
from services.model_context import ModelContext
from utils.exceptions import ModelLoadError

PERSONAL_HEIGHT = 40
PASSPORT_HEIGHT = 60


def _descriptor(offset: float = 0.0) -> np.ndarray:
    descriptor = np.zeros(128)
    descriptor[0] = offset
    return descriptor


@pytest.fixture
def photos(tmp_path):
    personal = write_photo(tmp_path / "personal.png", PERSONAL_HEIGHT)
    passport = write_photo(tmp_path / "passport.png", PASSPORT_HEIGHT)
    return personal, passport


class TestMatchLevel:

    @pytest.mark.parametrize("distance,expected", [
        (0.0, "Excellent Match"),
        (0.39, "Excellent Match"),
        (0.4, "Good Match"),
        (0.49, "Good Match"),
        (0.5, "Moderate Match"),
        (0.59, "Moderate Match"),
        (0.6, "Poor Match"),
        (1.2, "Poor Match"),
    ])
    def test_buckets(self, distance, expected):
        assert match_level(distance) == expected

    def test_euclidean_distance(self):
        assert euclidean_distance(np.array([0.0, 0.0]), np.array([3.0, 4.0])) == pytest.approx(5.0)


class TestCompareFaces:

    def test_match(self, photos):
        extractor = FakeFaceExtractor({
            PERSONAL_HEIGHT: [_descriptor()],
            PASSPORT_HEIGHT: [_descriptor(0.45), _descriptor(0.9)],
        })
        result = asyncio.run(compare_faces(*photos, ModelContext(extractor=extractor)))

        assert result == {
            "success": True,
            "similarity": "0.5500",
            "distance": "0.4500",
            "isMatch": True,
            "matchLevel": "Good Match",
            "tensorflowBackend": "fake",
        }

    def test_no_match(self, photos):
        extractor = FakeFaceExtractor({
            PERSONAL_HEIGHT: [_descriptor()],
            PASSPORT_HEIGHT: [_descriptor(0.75)],
        })
        result = asyncio.run(compare_faces(*photos, ModelContext(extractor=extractor)))
        assert result["isMatch"] is False
        assert result["matchLevel"] == "Poor Match"

    def test_no_face_in_personal_photo(self, photos):
        extractor = FakeFaceExtractor({PASSPORT_HEIGHT: [_descriptor()]})
        result = asyncio.run(compare_faces(*photos, ModelContext(extractor=extractor)))
        assert result == {"success": False, "message": "No face in personal photo"}

    def test_no_face_in_passport_photo(self, photos):
        extractor = FakeFaceExtractor({PERSONAL_HEIGHT: [_descriptor()]})
        result = asyncio.run(compare_faces(*photos, ModelContext(extractor=extractor)))
        assert result == {"success": False, "message": "No face in passport photo"}

    def test_unreadable_image(self, tmp_path, photos):
        broken = tmp_path / "broken.png"
        broken.write_bytes(b"not an image")
        with pytest.raises(ValueError):
            asyncio.run(compare_faces(broken, photos[1], ModelContext(extractor=FakeFaceExtractor())))


class TestModelContext:

    def test_models_load_once(self, photos):
        extractor = FakeFaceExtractor()
        context = ModelContext(extractor=extractor)

        async def run():
            await asyncio.gather(*(context.ensure_initialized() for _ in range(5)))
            await compare_faces(*photos, context)

        asyncio.run(run())
        assert extractor.load_calls == 1
        assert context.ready is True

    def test_failed_load_is_retried(self):
        class FlakyExtractor(FakeFaceExtractor):
            def load(self):
                self.load_calls += 1
                if self.load_calls == 1:
                    raise ModelLoadError("face_recognition", reason="weights missing")

        extractor = FlakyExtractor()
        context = ModelContext(extractor=extractor)

        with pytest.raises(ModelLoadError):
            asyncio.run(context.ensure_initialized())
        assert context.ready is False

        asyncio.run(context.ensure_initialized())
        assert context.ready is True
        assert extractor.load_calls == 2


def test_extractor_requires_load():
    with pytest.raises(RuntimeError):
        FaceExtractor().get_descriptors(np.zeros((10, 10, 3), dtype=np.uint8))
