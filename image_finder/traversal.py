import logging
import threading
from typing import Callable, List, Optional

from .actions import ActionExecutor
from .errors import DepthLimitExceeded
from .graph import StateGraph
from .models import AppState, Widget, WidgetStatus
from .recognition import WidgetLocator
from .settings import Settings
from .utils import sleep_ms

logger = logging.getLogger(__name__)


class TraversalEngine:
    """Walks the state graph from a state, locating and optionally performing widgets.

    Every widget of a state has to be located before any of them is
    performed, so no click or typed input lands on a half-rendered screen.
    """

    def __init__(
        self,
        graph: StateGraph,
        locator: WidgetLocator,
        executor: ActionExecutor,
        settings: Settings,
        sleep: Optional[Callable[[int], None]] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.graph = graph
        self.locator = locator
        self.executor = executor
        self.settings = settings
        self.stop_event = stop_event or threading.Event()
        self.sleep = sleep or (lambda amount_ms: sleep_ms(amount_ms, self.stop_event))

    def run(self, state: AppState, perform: bool = False, depth: int = 0) -> bool:
        try:
            return self._walk(state, depth, perform)
        except DepthLimitExceeded as exc:
            logger.warning("Traversal aborted: %s", exc)
            return False

    def cancel(self) -> None:
        self.stop_event.set()

    def _cancelled(self) -> bool:
        if self.stop_event.is_set():
            logger.info("Traversal cancelled.")
            return True
        return False

    def _walk(self, state: AppState, depth: int, perform: bool) -> bool:
        if depth > self.settings.max_depth:
            raise DepthLimitExceeded(depth, self.settings.max_depth)

        self.graph.set_current_state(state)
        widgets = list(state.widgets)
        if not widgets:
            return True
        if depth > 0:
            # Entering a state forces a fresh check of everything recorded there.
            for widget in widgets:
                widget.status = WidgetStatus.UNLOCATED

        all_located = self.locate_all(widgets)
        if not perform:
            return all_located
        if not all_located:
            logger.info("Not every widget of %r was located, nothing performed.", state)
            return False

        for widget in widgets:
            if not widget.is_action:
                continue
            if self._cancelled():
                return False
            if not (self.locator.resolve(widget) and self.executor.perform(widget)):
                logger.info("Failed to locate widget, stopping.")
                return False
            widget.status = WidgetStatus.VALID
            self.sleep(self.settings.action_settle_ms)
            if widget.next_state is None:
                continue
            if not self._walk(widget.next_state, depth + 1, True):
                return False
        return True

    def locate_all(self, widgets: List[Widget]) -> bool:
        """Resolve every unlocated widget, retrying the misses after a settle delay."""
        pending = [w for w in widgets if w.status is WidgetStatus.UNLOCATED]
        tries_left = max(self.settings.widget_find_retries, 1)
        while pending and tries_left > 0:
            tries_left -= 1
            logger.info("%s tries left to find a Widget.", tries_left)
            pending = [w for w in pending if not self.locator.resolve(w)]
            if not pending:
                break
            if tries_left == 0 or self._cancelled():
                break
            logger.info("Fail, retry after sleep.")
            self.sleep(self.settings.retry_delay_ms)
        return not pending
