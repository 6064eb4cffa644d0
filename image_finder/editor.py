import logging
from typing import Optional

from .errors import DepthLimitExceeded
from .graph import StateGraph
from .models import AppState, Match, Widget, WidgetKind, WidgetStatus, WidgetVisibility
from .settings import MAX_DEPTH
from .storage import TemplateStore

logger = logging.getLogger(__name__)


class SubtreeEditor:
    def __init__(self, graph: StateGraph, store: TemplateStore, max_depth: int = MAX_DEPTH) -> None:
        self.graph = graph
        self.store = store
        self.max_depth = max_depth

    def repair(
        self,
        widget: Widget,
        match: Match,
        image_name: str,
        kind: Optional[WidgetKind] = None,
    ) -> None:
        """Swap in a freshly captured template without touching the graph topology."""
        old_image = widget.image_name
        widget.image_name = image_name
        if kind is not None:
            widget.kind = kind
        widget.record_match(match)
        widget.visibility = WidgetVisibility.VISIBLE
        widget.status = WidgetStatus.LOCATED
        logger.info("Repaired %s (was %s)", widget.describe(), old_image)

    def delete(self, widget: Widget) -> bool:
        """Delete ``widget`` and everything reachable only through it.

        Returns False when the subtree is deeper than the sanity bound; the
        part already visited is gone by then.
        """
        owner = widget.owner or self.graph.current_state()
        try:
            if widget.next_state is not None:
                self._delete_from(widget.next_state, 0)
        except DepthLimitExceeded as exc:
            logger.warning("Stopped deleting below %s: %s", widget.describe(), exc)
            return False
        self.store.delete(widget.image_name)
        self.graph.remove_widget(owner, widget)
        logger.info("Deleted %s", widget.describe())
        return True

    def _delete_from(self, state: AppState, depth: int) -> None:
        if depth > self.max_depth:
            raise DepthLimitExceeded(depth, self.max_depth)
        for child in list(state.widgets):
            if child.next_state is not None and child.next_state.widgets:
                self._delete_from(child.next_state, depth + 1)
            self.store.delete(child.image_name)
            state.remove_widget(child)
