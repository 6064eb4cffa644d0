import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

Point = Tuple[int, int]


class WidgetType(Enum):
    ACTION = "action"
    CHECK = "check"


class ActionSubtype(Enum):
    LEFT_CLICK = "left_click"
    RIGHT_CLICK = "right_click"
    DOUBLE_CLICK = "double_click"
    TYPE = "type"
    PASTE = "paste"


class WidgetVisibility(Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"


class WidgetStatus(Enum):
    UNLOCATED = "unlocated"
    LOCATED = "located"
    VALID = "valid"


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def center(self) -> Point:
        return self.x + self.width // 2, self.y + self.height // 2

    def contains(self, point: Point) -> bool:
        px, py = point
        return self.x <= px < self.x + self.width and self.y <= py < self.y + self.height

    @classmethod
    def from_points(cls, p1: Point, p2: Point) -> "Rect":
        left = min(p1[0], p2[0])
        top = min(p1[1], p2[1])
        width = abs(p1[0] - p2[0]) or 1
        height = abs(p1[1] - p2[1]) or 1
        return cls(left, top, width, height)

    @classmethod
    def centered(cls, point: Point, width: int, height: int) -> "Rect":
        left = max(int(point[0] - width / 2.0), 0)
        top = max(int(point[1] - height / 2.0), 0)
        return cls(left, top, width, height)


@dataclass(frozen=True)
class Match:
    x: int
    y: int
    width: int
    height: int
    percent: int

    @property
    def center(self) -> Point:
        return self.x + self.width // 2, self.y + self.height // 2

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    def meets(self, threshold: int) -> bool:
        return self.percent >= threshold


@dataclass
class LeftClick:
    pass


@dataclass
class RightClick:
    pass


@dataclass
class DoubleClick:
    pass


@dataclass
class TypeText:
    text: str = ""
    clicks: int = 1


@dataclass
class TwoStepMenu:
    second_image: Optional[str] = None


@dataclass
class Check:
    pass


WidgetKind = Union[LeftClick, RightClick, DoubleClick, TypeText, TwoStepMenu, Check]

SUBTYPES: Dict[type, ActionSubtype] = {
    LeftClick: ActionSubtype.LEFT_CLICK,
    RightClick: ActionSubtype.RIGHT_CLICK,
    DoubleClick: ActionSubtype.DOUBLE_CLICK,
    TypeText: ActionSubtype.TYPE,
    TwoStepMenu: ActionSubtype.PASTE,
}

KIND_NAMES: Dict[str, type] = {
    "leftclick": LeftClick,
    "rightclick": RightClick,
    "doubleclick": DoubleClick,
    "type": TypeText,
    "menuaction": TwoStepMenu,
    "check": Check,
}


def kind_from_name(name: str) -> WidgetKind:
    try:
        return KIND_NAMES[name]()
    except KeyError:
        raise ValueError(f"Unknown widget kind '{name}'.") from None


_state_ids = itertools.count(1)
_widget_ids = itertools.count(1)


@dataclass(eq=False)
class Widget:
    kind: WidgetKind
    image_name: str
    location: Optional[Rect] = None
    status: WidgetStatus = WidgetStatus.UNLOCATED
    visibility: WidgetVisibility = WidgetVisibility.VISIBLE
    next_state: Optional["AppState"] = None
    owner: Optional["AppState"] = field(default=None, repr=False)
    metadata: Dict[str, Any] = field(default_factory=dict, repr=False)
    widget_id: int = field(default_factory=lambda: next(_widget_ids))

    @property
    def widget_type(self) -> WidgetType:
        if isinstance(self.kind, Check):
            return WidgetType.CHECK
        return WidgetType.ACTION

    @property
    def subtype(self) -> Optional[ActionSubtype]:
        return SUBTYPES.get(type(self.kind))

    @property
    def is_action(self) -> bool:
        return self.widget_type is WidgetType.ACTION

    @property
    def is_visible(self) -> bool:
        return self.visibility is WidgetVisibility.VISIBLE

    @property
    def comment(self) -> Optional[str]:
        if isinstance(self.kind, TypeText):
            return self.kind.text
        return None

    @comment.setter
    def comment(self, text: str) -> None:
        if not isinstance(self.kind, TypeText):
            raise ValueError("Only Type widgets carry a comment.")
        self.kind.text = text

    def record_match(self, match: Match) -> None:
        self.location = match.rect
        center_x, center_y = match.center
        self.metadata.update({
            "x": match.x,
            "y": match.y,
            "width": match.width,
            "height": match.height,
            "center_x": center_x,
            "center_y": center_y,
        })

    def describe(self) -> str:
        subtype = self.subtype.name if self.subtype else "-"
        return f"Widget#{self.widget_id} [{self.widget_type.name}/{subtype}] {self.image_name}"


@dataclass(eq=False)
class AppState:
    widgets: List[Widget] = field(default_factory=list)
    state_id: int = field(default_factory=lambda: next(_state_ids))

    def add_widget(self, widget: Widget) -> None:
        widget.owner = self
        self.widgets.append(widget)

    def remove_widget(self, widget: Widget) -> bool:
        for index, existing in enumerate(self.widgets):
            if existing is widget:
                del self.widgets[index]
                widget.owner = None
                return True
        return False

    def widgets_at(self, point: Point) -> List[Widget]:
        return [w for w in self.widgets if w.location is not None and w.location.contains(point)]

    def __repr__(self) -> str:
        return f"AppState#{self.state_id}({len(self.widgets)} widgets)"
