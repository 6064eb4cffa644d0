import logging
import os
from enum import Enum
from typing import Dict, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from .models import Match, Rect
from .utils import pil_to_bgr

logger = logging.getLogger(__name__)


class RecognitionMode(Enum):
    EXACT = "exact"
    COLOR = "color"
    TOLERANT = "tolerant"


# Lowest normalised score at which each mode still reports a match at all.
MODE_FLOORS: Dict[RecognitionMode, float] = {
    RecognitionMode.EXACT: 0.90,
    RecognitionMode.COLOR: 0.80,
    RecognitionMode.TOLERANT: 0.60,
}


def as_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


class ImageMatcher:
    """Template matcher over BGR numpy frames with a switchable recognition mode."""

    def __init__(self, mode: RecognitionMode = RecognitionMode.EXACT) -> None:
        self._mode = mode

    @property
    def mode(self) -> RecognitionMode:
        return self._mode

    def set_mode(self, mode: RecognitionMode) -> None:
        self._mode = mode

    def find_image(self, screenshot: Optional[np.ndarray], template: Optional[np.ndarray]) -> Optional[Match]:
        if screenshot is None or template is None:
            return None
        screen = as_bgr(screenshot)
        needle = as_bgr(template)
        screen_h, screen_w = screen.shape[:2]
        needle_h, needle_w = needle.shape[:2]
        if needle_h == 0 or needle_w == 0 or needle_h > screen_h or needle_w > screen_w:
            return None
        try:
            score, top_left = self._best_score(screen, needle)
        except cv2.error as exc:
            logger.warning("Template match failed in %s mode: %s", self._mode.name, exc)
            return None
        if score < MODE_FLOORS[self._mode]:
            return None
        percent = int(round(max(0.0, min(1.0, score)) * 100))
        return Match(int(top_left[0]), int(top_left[1]), needle_w, needle_h, percent)

    def _best_score(self, screen: np.ndarray, needle: np.ndarray) -> Tuple[float, Tuple[int, int]]:
        if self._mode is RecognitionMode.EXACT:
            result = cv2.matchTemplate(screen, needle, cv2.TM_SQDIFF_NORMED)
            result = np.nan_to_num(result, nan=1.0, posinf=1.0, neginf=1.0)
            min_val, _, min_loc, _ = cv2.minMaxLoc(result)
            return 1.0 - min_val, min_loc
        if self._mode is RecognitionMode.COLOR:
            result = cv2.matchTemplate(screen, needle, cv2.TM_CCOEFF_NORMED)
        else:
            screen_gray = cv2.GaussianBlur(cv2.cvtColor(screen, cv2.COLOR_BGR2GRAY), (3, 3), 0)
            needle_gray = cv2.GaussianBlur(cv2.cvtColor(needle, cv2.COLOR_BGR2GRAY), (3, 3), 0)
            result = cv2.matchTemplate(screen_gray, needle_gray, cv2.TM_CCOEFF_NORMED)
        result = np.nan_to_num(result, nan=0.0, posinf=0.0, neginf=0.0)
        _, max_val, _, max_loc = cv2.minMaxLoc(result)
        return max_val, max_loc

    def load_image(self, path: Optional[str]) -> Optional[np.ndarray]:
        if not path or not os.path.isfile(path):
            return None
        try:
            with Image.open(path) as img:
                return pil_to_bgr(img)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load image %s: %s", path, exc)
            return None

    def subimage(self, image: Optional[np.ndarray], rect: Rect) -> Optional[np.ndarray]:
        if image is None:
            return None
        height, width = image.shape[:2]
        left = max(0, rect.x)
        top = max(0, rect.y)
        right = min(width, rect.x + rect.width)
        bottom = min(height, rect.y + rect.height)
        if right <= left or bottom <= top:
            return None
        return image[top:bottom, left:right].copy()

    def save_png_image(self, image: np.ndarray, path: str) -> None:
        rgb = cv2.cvtColor(as_bgr(image), cv2.COLOR_BGR2RGB)
        Image.fromarray(rgb).save(path, format="PNG")
