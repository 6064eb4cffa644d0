import logging
from collections import deque
from typing import Deque, List, Optional

from .models import AppState, Point, Widget

logger = logging.getLogger(__name__)


class StateGraph:
    """Tree of recorded application states linked by widgets.

    Besides the tree edges the graph keeps a most-recent-first history of
    visited states for single-step "go back". The two notions of previous and
    next are independent and can disagree after manual back/forward moves
    combined with new recording.
    """

    def __init__(self, root: Optional[AppState] = None) -> None:
        self.root = root or AppState()
        self._current = self.root
        self.history: Deque[AppState] = deque()

    def current_state(self) -> AppState:
        return self._current

    def set_current_state(self, state: AppState) -> None:
        self._current = state

    def insert_widget(
        self,
        parent: AppState,
        widget: Widget,
        existing_next_state: Optional[AppState] = None,
    ) -> AppState:
        # No de-duplication: callers verify the widget by a fresh match first.
        next_state = existing_next_state or widget.next_state or AppState()
        widget.next_state = next_state
        parent.add_widget(widget)
        logger.debug("Inserted %s into %r, next state %r", widget.describe(), parent, next_state)
        return next_state

    def remove_widget(self, state: AppState, widget: Widget) -> bool:
        removed = state.remove_widget(widget)
        if not removed:
            logger.warning("%s is not part of %r", widget.describe(), state)
        return removed

    def widgets_at(self, point: Point, visible_only: bool = True) -> List[Widget]:
        found = self._current.widgets_at(point)
        if visible_only:
            found = [w for w in found if w.is_visible]
        return found

    def push_history(self, state: AppState) -> None:
        self.history.appendleft(state)

    def go_back(self) -> Optional[AppState]:
        if not self.history:
            logger.info("previousState was empty, going back failed.")
            return None
        state = self.history.popleft()
        self._current = state
        return state

    def go_forward(self) -> Optional[AppState]:
        if not self._current.widgets or self._current.widgets[0].next_state is None:
            logger.info("nextState was empty, going forward failed.")
            return None
        self._current = self._current.widgets[0].next_state
        return self._current

    def go_home(self) -> AppState:
        self.history.clear()
        self._current = self.root
        return self.root
