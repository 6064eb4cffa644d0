from .actions import ActionExecutor, InputInjector
from .editor import SubtreeEditor
from .errors import CollaboratorFailure, DepthLimitExceeded, ImageFinderError
from .graph import StateGraph
from .matcher import ImageMatcher, RecognitionMode
from .models import (
    ActionSubtype,
    AppState,
    Check,
    DoubleClick,
    LeftClick,
    Match,
    Rect,
    RightClick,
    TwoStepMenu,
    TypeText,
    Widget,
    WidgetStatus,
    WidgetType,
    WidgetVisibility,
)
from .recognition import RecognitionStrategy, WidgetLocator
from .session import AwaitingSecondClick, Idle, Repairing, Session
from .settings import Settings, load_settings
from .storage import TemplateStore
from .traversal import TraversalEngine

__all__ = [
    "ActionExecutor",
    "ActionSubtype",
    "AppState",
    "AwaitingSecondClick",
    "Check",
    "CollaboratorFailure",
    "DepthLimitExceeded",
    "DoubleClick",
    "Idle",
    "ImageFinderError",
    "ImageMatcher",
    "InputInjector",
    "LeftClick",
    "Match",
    "RecognitionMode",
    "RecognitionStrategy",
    "Rect",
    "Repairing",
    "RightClick",
    "Session",
    "Settings",
    "StateGraph",
    "SubtreeEditor",
    "TemplateStore",
    "TraversalEngine",
    "TwoStepMenu",
    "TypeText",
    "Widget",
    "WidgetLocator",
    "WidgetStatus",
    "WidgetType",
    "WidgetVisibility",
    "load_settings",
]
