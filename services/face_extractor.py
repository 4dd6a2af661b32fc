"""
Face Extractor Service using dlib (via the face_recognition package).

Detects faces, their 68-point landmarks and 128-d descriptors. The model
weights are loaded once per application by ``load()``; instances are owned
by the application's ``ModelContext`` rather than by module globals.
"""
import logging
from typing import List, Optional

import numpy as np

from utils.config import FACE_DETECTION_MODEL
from utils.exceptions import ModelLoadError
from utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)


class FaceExtractor:
    """Face detection + descriptor extraction."""

    name = "dlib"

    def __init__(self, detection_model: str = FACE_DETECTION_MODEL, upsample: int = 1):
        self.detection_model = detection_model
        self.upsample = upsample
        self._api = None

    @property
    def loaded(self) -> bool:
        return self._api is not None

    def load(self) -> None:
        """
        Load the detector, landmark and recognition models.

        Raises:
            ModelLoadError: If the models cannot be loaded
        """
        if self._api is not None:
            return
        try:
            # Importing face_recognition loads the dlib model files; it calls
            # quit() when the face_recognition_models package is missing
            import face_recognition
        except (ImportError, RuntimeError, OSError, SystemExit) as e:
            raise ModelLoadError("face_recognition", reason=str(e))
        self._api = face_recognition
        logger.info(f"Face models loaded (detector: {self.detection_model})")

    @log_execution_time
    def get_descriptors(self, image: np.ndarray) -> List[np.ndarray]:
        """
        Describe every face found in an RGB image.

        Args:
            image: RGB image array

        Returns:
            One 128-d descriptor per detected face (empty if none)
        """
        if self._api is None:
            raise RuntimeError("Face models are not loaded")

        locations = self._api.face_locations(
            image,
            number_of_times_to_upsample=self.upsample,
            model=self.detection_model,
        )
        if not locations:
            logger.debug("No faces detected in image")
            return []
        return self._api.face_encodings(image, known_face_locations=locations)

    def get_descriptor(self, image: np.ndarray) -> Optional[np.ndarray]:
        """First face descriptor in the image, or None."""
        descriptors = self.get_descriptors(image)
        return descriptors[0] if descriptors else None
