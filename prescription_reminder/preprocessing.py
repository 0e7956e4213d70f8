"""
Image preprocessing for prescription OCR
Cleans up photographed and scanned prescriptions before recognition
"""

import os
import time
import logging
import tempfile
from contextlib import contextmanager

import cv2
import numpy as np

from .config import PREPROCESSING, TEMP_CLEANUP
from .exceptions import DocumentFormatError

logger = logging.getLogger(__name__)


class ImagePreprocessor:
    """Preprocess prescription images for better OCR accuracy"""

    def __init__(self, config=None):
        self.config = dict(PREPROCESSING)
        self.config.update(config or {})

    def decode(self, content: bytes) -> np.ndarray:
        """Decode raw image bytes into a BGR array"""
        if not content:
            raise DocumentFormatError("Empty image content")
        buffer = np.frombuffer(content, dtype=np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
        if image is None:
            raise DocumentFormatError("Could not decode image bytes")
        return image

    def preprocess(self, image: np.ndarray) -> np.ndarray:
        """
        Complete preprocessing pipeline

        Args:
            image: Numpy array (BGR or grayscale)

        Returns:
            preprocessed_image: Binarised grayscale numpy array
        """
        logger.info(f"Original image shape: {image.shape}")

        image = self.to_grayscale(image)
        image = self.upscale(image)
        image = self.normalize_brightness(image)
        image = self.enhance_contrast(image)
        image = self.sharpen(image)
        image = self.denoise(image)
        image = self.binarize(image)

        logger.info(f"Preprocessed image shape: {image.shape}")
        return image

    def to_grayscale(self, image):
        if len(image.shape) == 3:
            return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        return image

    def upscale(self, image):
        """
        Upscale small images with Lanczos
        Tesseract needs roughly 300 DPI worth of pixels per glyph
        """
        min_side = self.config['min_side']
        height, width = image.shape[:2]
        if width >= min_side and height >= min_side:
            return image

        scale = min_side / min(width, height)
        new_width = int(round(width * scale))
        new_height = int(round(height * scale))
        image = cv2.resize(image, (new_width, new_height), interpolation=cv2.INTER_LANCZOS4)
        logger.info(f"Upscaled image to {new_width}x{new_height}")
        return image

    def normalize_brightness(self, image):
        """Stretch intensities to the full 0-255 range"""
        return cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX)

    def enhance_contrast(self, image):
        return cv2.convertScaleAbs(
            image,
            alpha=self.config['contrast_alpha'],
            beta=self.config['contrast_beta']
        )

    def sharpen(self, image):
        """Unsharp mask"""
        blurred = cv2.GaussianBlur(image, (0, 0), self.config['sharpen_sigma'])
        return cv2.addWeighted(image, 1.5, blurred, -0.5, 0)

    def denoise(self, image):
        return cv2.medianBlur(image, self.config['median_kernel'])

    def binarize(self, image):
        _, binary = cv2.threshold(
            image, self.config['binary_threshold'], 255, cv2.THRESH_BINARY
        )
        return binary

    def preprocess_bytes(self, content: bytes) -> bytes:
        """Decode, preprocess and re-encode as PNG"""
        image = self.preprocess(self.decode(content))
        ok, encoded = cv2.imencode('.png', image)
        if not ok:
            raise DocumentFormatError("Could not encode preprocessed image")
        return encoded.tobytes()


def remove_temp_file(path, max_retries=None, delay_seconds=None) -> bool:
    """
    Delete a temporary file, retrying while another process holds it

    Returns:
        True when the file is gone
    """
    max_retries = max_retries or TEMP_CLEANUP['max_retries']
    delay_seconds = TEMP_CLEANUP['delay_seconds'] if delay_seconds is None else delay_seconds

    for attempt in range(1, max_retries + 1):
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return True
        except PermissionError as e:
            if attempt == max_retries:
                logger.warning(f"⚠️  Could not delete temp file {path}: {e}")
                return False
            time.sleep(delay_seconds * attempt)

    return False


@contextmanager
def scoped_temp_image(content: bytes, preprocessor=None):
    """
    Write the preprocessed image to a temporary PNG for the duration of the block
    Falls back to the original bytes when preprocessing fails
    """
    preprocessor = preprocessor or ImagePreprocessor()

    try:
        payload = preprocessor.preprocess_bytes(content)
    except Exception as e:
        logger.warning(f"⚠️  Preprocessing failed, using original image: {e}")
        payload = content

    handle = tempfile.NamedTemporaryFile(prefix='prescription_', suffix='.png', delete=False)
    path = handle.name
    try:
        with handle:
            handle.write(payload)
        yield path
    finally:
        remove_temp_file(path)
