import copy
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

import numpy as np

from .actions import ActionExecutor, InputInjector
from .editor import SubtreeEditor
from .errors import CollaboratorFailure
from .graph import StateGraph
from .hooks import ClickEvent, DragEvent, KeyEvent, ModifierEvent, ModifierState, ScrollEvent
from .matcher import ImageMatcher
from .models import (
    KIND_NAMES,
    AppState,
    DoubleClick,
    LeftClick,
    Match,
    Point,
    Rect,
    TwoStepMenu,
    TypeText,
    Widget,
    WidgetKind,
    WidgetStatus,
    kind_from_name,
)
from .recognition import RecognitionStrategy, WidgetLocator
from .settings import Settings
from .storage import TemplateStore
from .traversal import TraversalEngine
from .utils import elapsed_ms, sleep_ms

logger = logging.getLogger(__name__)

ENTER_MARK = "[ENTER]"
TYPE_CLICK_KEYS = ("1", "2", "3")


@dataclass
class Idle:
    pass


@dataclass
class Repairing:
    widget: Widget


@dataclass
class AwaitingSecondClick:
    widget: Widget
    created: bool = True


EditMode = Union[Idle, Repairing, AwaitingSecondClick]


class Session:
    """Everything one recording session shares: graph, collaborators and edit mode.

    All graph mutation, matching and input injection happen on the thread
    that calls into the session. Listener threads only put events on
    ``events``, which ``process_events`` drains.
    """

    def __init__(
        self,
        settings: Settings,
        injector: InputInjector,
        matcher: Optional[ImageMatcher] = None,
        store: Optional[TemplateStore] = None,
        graph: Optional[StateGraph] = None,
        region: Optional[Rect] = None,
        sleep: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.settings = settings
        self.injector = injector
        self.matcher = matcher or ImageMatcher()
        self.store = store or TemplateStore(self.matcher)
        self.graph = graph or StateGraph()
        self.region = region
        self.stop_event = threading.Event()
        self.sleep = sleep or (lambda amount_ms: sleep_ms(amount_ms, self.stop_event))

        self.strategy = RecognitionStrategy(self.matcher, self.store, settings)
        self.locator = WidgetLocator(self.strategy, settings, self.capture)
        self.executor = ActionExecutor(injector, self.matcher, self.store, settings, self.capture, sleep=self.sleep)
        self.executor.origin = (region.x, region.y) if region else (0, 0)
        self.engine = TraversalEngine(
            self.graph, self.locator, self.executor, settings, sleep=self.sleep, stop_event=self.stop_event
        )
        self.editor = SubtreeEditor(self.graph, self.store, settings.max_depth)

        self.mode: EditMode = Idle()
        self.selected_kind: WidgetKind = DoubleClick()
        self.modifiers = ModifierState()
        self.events: "queue.Queue[Any]" = queue.Queue()
        self.keyboard_input = ""
        self.type_clicks = 1
        self.pending_type_widget: Optional[Widget] = None
        self.selected_widget_no = 0
        self.screenshot: Optional[np.ndarray] = None
        self.status_message = "Idle"
        self.running = False
        self._drag_start: Optional[Point] = None
        self._drag_current: Optional[Point] = None
        self._last_drag_insert = float("-inf")

    def set_status(self, message: str) -> None:
        self.status_message = message
        logger.info(message)

    def start(self) -> None:
        self.running = True
        self.stop_event.clear()
        self.set_status(f"Session started at {self.graph.current_state()!r}.")

    def stop(self) -> None:
        self.running = False
        self.stop_event.set()

    def capture(self) -> Optional[np.ndarray]:
        if self.modifiers.freeze_capture and self.screenshot is not None:
            return self.screenshot
        self.screenshot = self.injector.capture_screen(self.region)
        return self.screenshot

    def to_relative(self, point: Point) -> Point:
        if self.region is None:
            return point
        return point[0] - self.region.x, point[1] - self.region.y

    def process_events(self) -> None:
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                break
            self.handle_event(event)
            if not self.running:
                break

    def handle_event(self, event: Any) -> None:
        try:
            self._dispatch(event)
        except CollaboratorFailure as exc:
            logger.error("Collaborator failure, stopping session: %s", exc)
            self.set_status(f"{exc} Session stopped.")
            self.stop()

    def _dispatch(self, event: Any) -> None:
        if isinstance(event, ModifierEvent):
            self.modifiers.apply(event)
        elif isinstance(event, (KeyEvent, ClickEvent, DragEvent)) and self.executor.injected_after(event.timestamp):
            logger.debug("Ignored input sent while actions were injected: %r", event)
        elif isinstance(event, KeyEvent):
            self.handle_key(event.name, self.to_relative(self.injector.mouse_position()))
        elif isinstance(event, ClickEvent):
            point = self.to_relative(event.point)
            if self.modifiers.control:
                self.record_widget_at(point, delivered=True)
            else:
                self.click_at(point, delivered=True)
        elif isinstance(event, DragEvent):
            self._handle_drag(event)
        elif isinstance(event, ScrollEvent):
            self.selected_widget_no += event.rotation
        else:
            logger.debug("Error in handling event [%r]", event)

    def _handle_drag(self, event: DragEvent) -> None:
        point = self.to_relative(event.point)
        if not self.modifiers.control:
            self._drag_start = None
            self._drag_current = None
            return
        if event.phase == "start":
            if self._drag_start is None:
                self._drag_start = point
            else:
                logger.info("Drag start point was already set.")
        elif event.phase == "move":
            self._drag_current = point
        elif event.phase == "drop":
            self._drag_current = point
            if self._drag_start is not None:
                self.record_widget_in_area(self._drag_start, point)
            self._drag_start = None
            self._drag_current = None

    # Keyboard commands

    def handle_key(self, name: str, point: Point) -> None:
        name = name.lower()
        control = self.modifiers.control
        if name == "enter":
            self.keyboard_input += ENTER_MARK
            self.finish_type_action(point)
        elif name in ("esc", "escape"):
            self.cancel()
        elif name == "backspace" and not control:
            self.keyboard_input = self.keyboard_input[:-1]
        elif name == "space" and not control:
            self.keyboard_input += " "
        elif name == "backspace":
            self.delete_widget_at(point)
        elif control and name in TYPE_CLICK_KEYS:
            self.select_type_clicks(int(name))
        elif control:
            command = self.settings.command_for_key(name)
            if command is not None:
                self.run_command(command, point)
        elif len(name) == 1 and name.isalnum():
            self.keyboard_input += name

    def run_command(self, command: str, point: Point) -> None:
        if command in KIND_NAMES:
            self.select_kind(command)
        elif command == "performwidgets":
            logger.info("Performing every widget automatically from the current app state.")
            self.auto_run()
        elif command == "home":
            self.go_home()
        elif command == "previousstate":
            self.go_back()
        elif command == "nextstate":
            self.go_forward()
        elif command == "forcerepair":
            self.force_repair_at(point)
        else:
            logger.warning("Unknown command [%s]", command)

    def select_type_clicks(self, clicks: int) -> None:
        """Number of clicks the next finished type action makes before typing."""
        self.type_clicks = clicks
        self.set_status(f"Type action will click {clicks} time(s) before typing.")

    def select_kind(self, name: str) -> None:
        self.selected_kind = kind_from_name(name)
        self.announce_kind()

    def announce_kind(self) -> None:
        sample = Widget(kind=self.selected_kind, image_name="")
        subtype = sample.subtype.name if sample.subtype else None
        self.set_status(f"Currently performing: MAIN TYPE: [{sample.widget_type.name}] SUBTYPE: [{subtype}]")

    def cancel(self) -> None:
        self.keyboard_input = ""
        self.stop_event.clear()
        mode = self.mode
        if isinstance(mode, Repairing):
            self.mode = Idle()
            self.set_status("Repair cancelled.")
        elif isinstance(mode, AwaitingSecondClick):
            self.mode = Idle()
            if mode.created:
                self.editor.delete(mode.widget)
            self.set_status("Menu action cancelled.")
        elif self.pending_type_widget is not None:
            self._discard_pending_type()
            self.set_status("Type action cancelled.")

    # Navigation

    def change_state(self, state: AppState) -> None:
        self.graph.push_history(self.graph.current_state())
        self._enter(state)

    def _enter(self, state: AppState) -> None:
        logger.debug("Changed state to %r", state)
        self.graph.set_current_state(state)
        for widget in state.widgets:
            widget.status = WidgetStatus.UNLOCATED
        self.engine.run(state, perform=False)

    def go_home(self) -> None:
        root = self.graph.go_home()
        self._enter(root)
        self.set_status("Went to Home node.")

    def go_back(self) -> None:
        state = self.graph.go_back()
        if state is not None:
            self._enter(state)
            self.set_status("Went to previous node.")

    def go_forward(self) -> None:
        state = self.graph.go_forward()
        if state is not None:
            self._enter(state)
            self.set_status("Went to next node.")

    def auto_run(self, state: Optional[AppState] = None) -> bool:
        self.stop_event.clear()
        start = state or self.graph.current_state()
        result = self.engine.run(start, perform=True)
        if result:
            self.set_status("Performed every widget.")
        else:
            self.set_status("Auto-run stopped, a widget could not be located or performed.")
        return result

    # Replay and repair

    def click_at(self, point: Point, delivered: bool = False) -> None:
        for widget in self.graph.widgets_at(point):
            if widget.status is WidgetStatus.LOCATED and widget.is_action:
                self.replay_widget(widget, delivered)
                break
            if widget.status is WidgetStatus.UNLOCATED:
                self.begin_repair(widget)
                break

    def replay_widget(self, widget: Widget, delivered: bool = False) -> bool:
        self.stop_event.clear()
        # The user's own click already was the left click.
        skip_perform = delivered and isinstance(widget.kind, LeftClick)
        for _ in range(max(self.settings.widget_find_retries, 1)):
            if self.stop_event.is_set():
                self.set_status("Replay cancelled.")
                return False
            if self.locator.resolve(widget) and (skip_perform or self.executor.perform(widget)):
                widget.status = WidgetStatus.VALID
                if widget.next_state is not None:
                    self.change_state(widget.next_state)
                return True
            logger.info("Fail, retry after sleep.")
            self.sleep(self.settings.retry_delay_ms)
        self.set_status(f"Could not locate {widget.describe()}.")
        return False

    def begin_repair(self, widget: Widget) -> None:
        self.mode = Repairing(widget)
        self.selected_kind = copy.deepcopy(widget.kind)
        self.set_status("Perform widget action as intended. Action type switched.")

    def force_repair_at(self, point: Point) -> None:
        logger.info("Force repair widget")
        for widget in self.graph.widgets_at(point):
            if widget.status is WidgetStatus.LOCATED:
                self.begin_repair(widget)
                return

    # Deletion

    def delete_widget_at(self, point: Point) -> bool:
        widgets = self.graph.widgets_at(point)
        if not widgets:
            logger.debug("Failed to locate widgets to delete at point: %s", point)
            return False
        index = min(max(self.selected_widget_no, 0), len(widgets) - 1)
        return self.delete_widget(widgets[index])

    def delete_widget(self, widget: Widget) -> bool:
        if widget is self.pending_type_widget:
            self.pending_type_widget = None
        if isinstance(self.mode, (Repairing, AwaitingSecondClick)) and self.mode.widget is widget:
            self.mode = Idle()
        return self.editor.delete(widget)

    # Recording

    def record_widget_at(self, point: Point, delivered: bool = False) -> bool:
        start = time.perf_counter()
        rect = Rect.centered(point, self.settings.default_widget_width, self.settings.default_widget_height)
        screenshot = self.screenshot if self.screenshot is not None else self.capture()
        image = self.matcher.subimage(screenshot, rect)
        if image is None:
            self.set_status("ERROR: Widget image was empty. Check logs.")
            logger.warning("Widget image was empty on capture. Rectangle: %s", rect)
            return False
        match = self.matcher.find_image(screenshot, image)
        if match is None:
            logger.info("CLICK: Match is null!")
            return False
        if not self.create_and_add_widget(match, image, delivered):
            return False
        logger.info("Inserted widget, it took [%.1f ms]", elapsed_ms(start))
        return True

    def record_widget_in_area(self, start_point: Point, end_point: Point) -> bool:
        now = time.monotonic()
        if (now - self._last_drag_insert) * 1000.0 < self.settings.drag_insert_block_ms:
            return False
        self._last_drag_insert = now
        rect = Rect.from_points(start_point, end_point)
        screenshot = self.screenshot if self.screenshot is not None else self.capture()
        image = self.matcher.subimage(screenshot, rect)
        if image is None:
            self.set_status("ERROR: Widget image was empty. Check logs.")
            return False
        match = self.matcher.find_image(screenshot, image)
        if match is None:
            logger.info("DragDrop: Match was null on rectangle!")
            return False
        if not match.meets(self.settings.min_match_percent):
            logger.info("DragDrop: Match was not null, but match percent was [%s]", match.percent)
            return False
        return self.create_and_add_widget(match, image)

    def create_and_add_widget(self, match: Match, image: np.ndarray, delivered: bool = False) -> bool:
        """Store the capture as a new widget, or as the template of the widget being edited.

        ``delivered`` means the user's own left click already reached the
        application at the match, so a left click is not sent a second time.
        """
        try:
            file_name = self.store.save(image)
        except OSError as exc:
            logger.warning("Failed to add widget: %s", exc)
            self.set_status("Failed to add widget.")
            return False

        mode = self.mode
        if isinstance(mode, Repairing):
            widget = mode.widget
            self.editor.repair(widget, match, file_name, kind=copy.deepcopy(self.selected_kind))
            if isinstance(widget.kind, TwoStepMenu):
                self.mode = AwaitingSecondClick(widget, created=False)
            else:
                self.mode = Idle()
            self.set_status("Repaired widget.")
            return True
        if isinstance(mode, AwaitingSecondClick):
            widget = mode.widget
            widget.kind.second_image = file_name
            self.mode = Idle()
            if not delivered and self.locator.resolve(widget):
                self.executor.perform(widget)
            return True

        widget = Widget(kind=copy.deepcopy(self.selected_kind), image_name=file_name, status=WidgetStatus.LOCATED)
        widget.record_match(match)
        if isinstance(widget.kind, TypeText):
            if self.pending_type_widget is not None:
                self.store.delete(file_name)
                self.set_status("There already is a Type action in progress, finish that first.")
                return False
            self.pending_type_widget = widget
        elif self.pending_type_widget is not None:
            self._discard_pending_type()

        next_state = self.graph.insert_widget(self.graph.current_state(), widget)
        if isinstance(widget.kind, TwoStepMenu):
            self.mode = AwaitingSecondClick(widget)
        if widget.is_action and not isinstance(widget.kind, TypeText):
            # A two-step action starts with a left click too.
            if not (delivered and isinstance(widget.kind, (LeftClick, TwoStepMenu))):
                self.executor.perform(widget, match.center)
            self.change_state(next_state)
        self.set_status(f"Inserted {widget.describe()}.")
        return True

    def _discard_pending_type(self) -> None:
        widget = self.pending_type_widget
        self.pending_type_widget = None
        if widget is not None:
            self.editor.delete(widget)

    def finish_type_action(self, point: Point) -> bool:
        text = self.keyboard_input
        if text.endswith(ENTER_MARK):
            text = text[: -len(ENTER_MARK)]
        widget = self._type_widget_at(point)
        if widget is None or not text.strip():
            self.keyboard_input = text
            self.set_status("Couldn't perform typeAction")
            logger.warning("Failed to perform Type action at %s", point)
            return False
        widget.comment = text.strip()
        widget.kind.clicks = self.type_clicks
        self.type_clicks = 1
        self.keyboard_input = ""
        if widget is self.pending_type_widget:
            self.pending_type_widget = None
        if self.locator.resolve(widget):
            self.executor.perform(widget)
        if widget.next_state is not None:
            self.change_state(widget.next_state)
        return True

    def _type_widget_at(self, point: Point) -> Optional[Widget]:
        for widget in self.graph.widgets_at(point):
            if isinstance(widget.kind, TypeText):
                return widget
        return None
