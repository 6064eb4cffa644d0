import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .errors import CollaboratorFailure
from .models import Point, Rect

try:
    import keyboard as keyboard_module
except ImportError:
    keyboard_module = None

try:
    from pynput import mouse as pynput_mouse
except ImportError:
    pynput_mouse = None

logger = logging.getLogger(__name__)

DRAG_THRESHOLD = 5
CANCEL_KEYS = ("esc", "escape")


class ModifierKey(Enum):
    CONTROL = "control"
    SHIFT = "shift"


MODIFIER_NAMES: Dict[str, ModifierKey] = {
    "ctrl": ModifierKey.CONTROL,
    "control": ModifierKey.CONTROL,
    "left ctrl": ModifierKey.CONTROL,
    "right ctrl": ModifierKey.CONTROL,
    "shift": ModifierKey.SHIFT,
    "left shift": ModifierKey.SHIFT,
    "right shift": ModifierKey.SHIFT,
}


@dataclass(frozen=True)
class ModifierEvent:
    key: ModifierKey
    pressed: bool


@dataclass(frozen=True)
class KeyEvent:
    name: str
    timestamp: float = field(default_factory=time.monotonic, compare=False)


@dataclass(frozen=True)
class ClickEvent:
    point: Point
    button: str = "left"
    timestamp: float = field(default_factory=time.monotonic, compare=False)


@dataclass(frozen=True)
class DragEvent:
    phase: str  # start, move or drop
    point: Point
    timestamp: float = field(default_factory=time.monotonic, compare=False)


@dataclass(frozen=True)
class ScrollEvent:
    rotation: int


@dataclass
class ModifierState:
    control: bool = False
    shift: bool = False

    def apply(self, event: ModifierEvent) -> None:
        if event.key is ModifierKey.CONTROL:
            self.control = event.pressed
        else:
            self.shift = event.pressed

    @property
    def freeze_capture(self) -> bool:
        return self.control and self.shift


class GlobalKeyboardHook:
    """Publishes global key presses onto a queue; modifiers become ModifierEvents.

    Escape also sets ``stop_event`` straight from the hook thread, so a
    running auto-replay notices it before the queue is drained.
    """

    def __init__(self, events: "queue.Queue[Any]", stop_event: Optional[threading.Event] = None) -> None:
        self.events = events
        self.stop_event = stop_event
        self._handle: Any = None

    def start(self) -> None:
        if keyboard_module is None:
            raise CollaboratorFailure("Install 'keyboard' package to enable the global key hook.")
        try:
            self._handle = keyboard_module.hook(self._on_key)
        except Exception as exc:
            raise CollaboratorFailure(f"Failed to register global hook: {exc}") from exc

    def stop(self) -> None:
        if keyboard_module is None or self._handle is None:
            return
        try:
            keyboard_module.unhook(self._handle)
        except (KeyError, ValueError):
            pass
        self._handle = None

    def _on_key(self, event: Any) -> None:
        name = (event.name or "").lower()
        pressed = event.event_type == keyboard_module.KEY_DOWN
        modifier = MODIFIER_NAMES.get(name)
        if modifier is not None:
            self.events.put(ModifierEvent(modifier, pressed))
        elif pressed and name:
            if name in CANCEL_KEYS and self.stop_event is not None:
                self.stop_event.set()
            self.events.put(KeyEvent(name))


class GlobalMouseHook:
    """Turns global left-button gestures into click and drag events."""

    def __init__(self, events: "queue.Queue[Any]") -> None:
        self.events = events
        self._listener: Any = None
        self._press_point: Optional[Point] = None
        self._dragging = False

    def start(self) -> None:
        if pynput_mouse is None:
            raise CollaboratorFailure("Install 'pynput' to listen to the mouse.")
        try:
            self._listener = pynput_mouse.Listener(
                on_click=self._on_click,
                on_move=self._on_move,
                on_scroll=self._on_scroll,
            )
            self._listener.start()
        except Exception as exc:
            raise CollaboratorFailure(f"Failed to start mouse listener: {exc}") from exc

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None

    def _on_click(self, x: int, y: int, button: Any, pressed: bool) -> None:
        point = (int(x), int(y))
        if button != pynput_mouse.Button.left:
            return
        if pressed:
            self._press_point = point
            self._dragging = False
            return
        if self._dragging:
            self.events.put(DragEvent("drop", point))
        else:
            self.events.put(ClickEvent(point))
        self._press_point = None
        self._dragging = False

    def _on_move(self, x: int, y: int) -> None:
        if self._press_point is None:
            return
        point = (int(x), int(y))
        if not self._dragging:
            dx = abs(point[0] - self._press_point[0])
            dy = abs(point[1] - self._press_point[1])
            if max(dx, dy) < DRAG_THRESHOLD:
                return
            self._dragging = True
            self.events.put(DragEvent("start", self._press_point))
        self.events.put(DragEvent("move", point))

    def _on_scroll(self, x: int, y: int, dx: int, dy: int) -> None:
        if dy:
            self.events.put(ScrollEvent(-int(dy)))


def select_region(min_size: int = 10) -> Optional[Rect]:
    """Block until the user drags out a screen region with the left button."""
    if pynput_mouse is None:
        raise CollaboratorFailure("Install 'pynput' to enable region selection.")
    coords: Dict[str, Tuple[int, int]] = {}

    def on_click(x, y, button, pressed):
        if button == pynput_mouse.Button.left:
            if pressed:
                coords["start"] = (int(x), int(y))
            else:
                coords["end"] = (int(x), int(y))
                return False
        return True

    try:
        with pynput_mouse.Listener(on_click=on_click) as listener:
            listener.join()
    except Exception as exc:
        raise CollaboratorFailure(f"Region selection failed: {exc}") from exc
    start = coords.get("start")
    end = coords.get("end")
    if not start or not end:
        logger.info("Region selection cancelled.")
        return None
    region = Rect.from_points(start, end)
    if region.width < min_size or region.height < min_size:
        logger.info("Region too small. Using full screen.")
        return None
    logger.info("Region set to (%s, %s) size %sx%s.", region.x, region.y, region.width, region.height)
    return region
