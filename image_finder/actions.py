import logging
import time
from typing import Callable, Optional

import numpy as np

from .errors import CollaboratorFailure
from .matcher import ImageMatcher, RecognitionMode
from .models import (
    Check,
    DoubleClick,
    LeftClick,
    Point,
    Rect,
    RightClick,
    TwoStepMenu,
    TypeText,
    Widget,
)
from .settings import Settings
from .storage import TemplateStore
from .utils import pil_to_bgr, sleep_ms

try:
    import pyautogui
except (ImportError, KeyError):  # KeyError: no DISPLAY for Xlib on Linux
    pyautogui = None

logger = logging.getLogger(__name__)


class InputInjector:
    """Mouse, keyboard and screen capture on the primary display through pyautogui."""

    def __init__(self) -> None:
        if pyautogui is None:
            raise CollaboratorFailure("Install 'pyautogui' (and a display) to capture the screen and inject input.")
        pyautogui.FAILSAFE = False
        pyautogui.PAUSE = 0

    def mouse_position(self) -> Point:
        pos = pyautogui.position()
        return int(pos.x), int(pos.y)

    def move_mouse_to(self, point: Point) -> None:
        pyautogui.moveTo(point[0], point[1])

    def press_button(self, button: str = "left") -> None:
        pyautogui.mouseDown(button=button)

    def release_button(self, button: str = "left") -> None:
        pyautogui.mouseUp(button=button)

    def press_key(self, key: str) -> None:
        pyautogui.keyDown(key)

    def release_key(self, key: str) -> None:
        pyautogui.keyUp(key)

    def can_type(self, char: str) -> bool:
        return pyautogui.isValidKey(char)

    def capture_screen(self, region: Optional[Rect] = None) -> np.ndarray:
        try:
            if region is not None:
                screenshot = pyautogui.screenshot(region=(region.x, region.y, region.width, region.height))
            else:
                screenshot = pyautogui.screenshot()
        except Exception as exc:
            raise CollaboratorFailure(f"Screenshot error: {exc}") from exc
        return pil_to_bgr(screenshot)


class ActionExecutor:
    """Performs a located widget's action at its centre, then puts the pointer back."""

    def __init__(
        self,
        injector: InputInjector,
        matcher: ImageMatcher,
        store: TemplateStore,
        settings: Settings,
        capture: Callable[[], Optional[np.ndarray]],
        sleep: Callable[[int], None] = sleep_ms,
    ) -> None:
        self.injector = injector
        self.matcher = matcher
        self.store = store
        self.settings = settings
        self.capture = capture
        self.sleep = sleep
        self.origin: Point = (0, 0)
        self.last_injection = float("-inf")

    def absolute(self, point: Point) -> Point:
        return point[0] + self.origin[0], point[1] + self.origin[1]

    def perform(self, widget: Widget, point: Optional[Point] = None) -> bool:
        kind = widget.kind
        if isinstance(kind, Check):
            logger.warning("Check widgets carry no action: %s", widget.describe())
            return False
        if point is None:
            if widget.location is None:
                logger.warning("Widget has no known location: %s", widget.describe())
                return False
            point = widget.location.center
        original_position = self.injector.mouse_position()
        self.injector.move_mouse_to(self.absolute(point))
        try:
            if isinstance(kind, LeftClick):
                logger.info("Action & Left click")
                self.left_click()
            elif isinstance(kind, RightClick):
                logger.info("Action & Right click")
                self.right_click()
            elif isinstance(kind, DoubleClick):
                logger.info("Action & Double click")
                self.double_click()
            elif isinstance(kind, TypeText):
                logger.info("Action & Type action")
                self.click_times(kind.clicks)
                self.type_text(kind.text)
            elif isinstance(kind, TwoStepMenu):
                logger.info("Action & Menu action")
                self.two_step_click(kind)
            else:
                logger.warning("Could not handle widget kind: %r", kind)
                return False
        finally:
            self.injector.move_mouse_to(original_position)
            self.last_injection = time.monotonic()
        return True

    def injected_after(self, timestamp: float) -> bool:
        """True when an action was being injected at or after ``timestamp``."""
        return timestamp <= self.last_injection

    def left_click(self) -> None:
        self.injector.press_button("left")
        self.injector.release_button("left")

    def right_click(self) -> None:
        self.injector.press_button("right")
        self.injector.release_button("right")

    def double_click(self) -> None:
        self.click_times(2)

    def click_times(self, clicks: int) -> None:
        if clicks not in (1, 2, 3):
            logger.warning("Failed to get the amount of clicks (%s), clicking once.", clicks)
            clicks = 1
        for index in range(clicks):
            if index:
                self.sleep(self.settings.double_click_gap_ms)
            self.left_click()

    def type_text(self, text: Optional[str]) -> None:
        if not text:
            logger.warning("Type widget has no text to type.")
            return
        for char in text:
            if not self.injector.can_type(char):
                logger.info("Failed to type the char [%s]", char)
                continue
            self.injector.press_key(char)
            self.sleep(self.settings.key_press_ms)
            self.injector.release_key(char)

    def two_step_click(self, kind: TwoStepMenu) -> None:
        self.left_click()
        self.sleep(self.settings.second_click_delay_ms)
        if not kind.second_image:
            logger.info("Menu action has no second image associated yet.")
            return
        template = self.store.load(kind.second_image)
        if template is None:
            logger.info("Failed to load second image [%s] of the menu action.", kind.second_image)
            return
        screenshot = self.capture()
        saved_mode = self.matcher.mode
        self.matcher.set_mode(RecognitionMode.EXACT)
        try:
            match = self.matcher.find_image(screenshot, template)
        finally:
            self.matcher.set_mode(saved_mode)
        if match is None:
            logger.info("Failed to find second image of the menu action.")
            return
        self.injector.move_mouse_to(self.absolute(match.center))
        self.left_click()
