import logging
import os
import time
from typing import Optional

import numpy as np

from .matcher import ImageMatcher

logger = logging.getLogger(__name__)


class TemplateStore:
    """Template images of a product, kept as ``<millis>.png`` under ``<data_dir>/<product>/images``."""

    def __init__(self, matcher: ImageMatcher, data_dir: str = "./data", product: str = "default") -> None:
        self.matcher = matcher
        self.images_dir = os.path.join(data_dir, product, "images")

    def path_for(self, file_name: str) -> Optional[str]:
        if ".." in file_name or os.path.isabs(file_name):
            logger.error("Refusing template name that leaves the image directory: %s", file_name)
            return None
        try:
            os.makedirs(self.images_dir, exist_ok=True)
        except OSError as exc:
            logger.warning("Could not access/create %s: %s", self.images_dir, exc)
            return None
        return os.path.join(self.images_dir, file_name)

    def load(self, file_name: Optional[str]) -> Optional[np.ndarray]:
        if not file_name:
            return None
        path = self.path_for(file_name)
        if path is None:
            return None
        return self.matcher.load_image(path)

    def save(self, image: np.ndarray) -> str:
        stamp = int(time.time() * 1000)
        file_name = f"{stamp}.png"
        path = self.path_for(file_name)
        while path is not None and os.path.exists(path):
            stamp += 1
            file_name = f"{stamp}.png"
            path = self.path_for(file_name)
        if path is None:
            raise OSError(f"Cannot write templates to {self.images_dir}")
        self.matcher.save_png_image(image, path)
        return file_name

    def delete(self, file_name: Optional[str]) -> bool:
        if not file_name:
            return False
        path = self.path_for(file_name)
        if path is None:
            return False
        try:
            os.remove(path)
        except OSError as exc:
            logger.warning("Failed to delete file with path - %s (%s)", path, exc)
            return False
        logger.debug("Deleted file with path - %s", path)
        return True
