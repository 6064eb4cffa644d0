import logging
import time
from typing import Callable, Optional, Tuple

import numpy as np

from .matcher import ImageMatcher, RecognitionMode
from .models import Match, Widget, WidgetStatus, WidgetType
from .settings import Settings
from .storage import TemplateStore
from .utils import elapsed_ms

logger = logging.getLogger(__name__)

RECOGNITION_ORDER: Tuple[RecognitionMode, ...] = (
    RecognitionMode.EXACT,
    RecognitionMode.COLOR,
    RecognitionMode.TOLERANT,
)


class RecognitionStrategy:
    """Runs the matcher over the recognition modes, cheapest first.

    A later mode is only tried when the previous one found nothing at all; a
    low-confidence EXACT hit is returned as is and judged by the caller.
    """

    def __init__(self, matcher: ImageMatcher, store: TemplateStore, settings: Settings) -> None:
        self.matcher = matcher
        self.store = store
        self.settings = settings

    def locate(self, widget: Widget, screenshot: Optional[np.ndarray]) -> Optional[Match]:
        template = self.store.load(widget.image_name)
        if template is None:
            logger.info("Stored file [%s] returned no image.", widget.image_name)
            return None
        saved_mode = self.matcher.mode
        try:
            for mode in RECOGNITION_ORDER:
                self.matcher.set_mode(mode)
                match = self.matcher.find_image(screenshot, template)
                if match is None:
                    continue
                if match.percent < self.settings.min_match_percent:
                    logger.info(
                        "Match was %s%% in %s mode instead of the minimum %s%%",
                        match.percent,
                        mode.name,
                        self.settings.min_match_percent,
                    )
                return match
            return None
        finally:
            self.matcher.set_mode(saved_mode)


class WidgetLocator:
    def __init__(
        self,
        strategy: RecognitionStrategy,
        settings: Settings,
        capture: Callable[[], Optional[np.ndarray]],
    ) -> None:
        self.strategy = strategy
        self.settings = settings
        self.capture = capture

    def resolve(self, widget: Widget, screenshot: Optional[np.ndarray] = None) -> bool:
        start = time.perf_counter()
        if screenshot is None:
            screenshot = self.capture()
        match = self.strategy.locate(widget, screenshot)
        found = match is not None and match.meets(self.settings.min_match_percent)
        if found:
            logger.info("Match %s%% for %s", match.percent, widget.describe())
            widget.record_match(match)
            if widget.widget_type is WidgetType.CHECK:
                widget.status = WidgetStatus.VALID
            else:
                widget.status = WidgetStatus.LOCATED
        else:
            logger.debug("Didn't find match for widget with image: %s", widget.image_name)
            widget.status = WidgetStatus.UNLOCATED
        logger.debug("TIME: [%.1f ms]", elapsed_ms(start))
        return found
