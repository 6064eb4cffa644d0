import threading
import time
from typing import Any, Optional

import cv2
import numpy as np


def parse_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def sleep_ms(amount_ms: int, stop_event: Optional[threading.Event] = None) -> None:
    """Block for ``amount_ms`` milliseconds.

    The wait is taken in short slices up to a fixed deadline, so a slice that
    wakes early simply resumes the remainder. A set ``stop_event`` ends the
    wait immediately.
    """
    if amount_ms <= 0:
        return
    end_time = time.monotonic() + amount_ms / 1000.0
    while True:
        if stop_event is not None and stop_event.is_set():
            return
        remaining = end_time - time.monotonic()
        if remaining <= 0:
            return
        time.sleep(min(remaining, 0.01))


def pil_to_bgr(pil_img: Any) -> np.ndarray:
    rgb_image = pil_img.convert("RGB")
    return cv2.cvtColor(np.array(rgb_image), cv2.COLOR_RGB2BGR)


def elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
