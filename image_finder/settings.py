import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .utils import parse_int

logger = logging.getLogger(__name__)

DEFAULT_KEY_BINDINGS: Dict[str, str] = {
    "leftclick": "c",
    "rightclick": "v",
    "doubleclick": "b",
    "type": "n",
    "check": "m",
    "performwidgets": "r",
    "home": "h",
    "previousstate": "q",
    "nextstate": "e",
    "menuaction": "x",
    "forcerepair": "a",
}

DEFAULT_MIN_MATCH_PERCENT = 100
DEFAULT_WIDGET_FIND_RETRIES = 5
DEFAULT_WIDGET_WIDTH = 150
DEFAULT_WIDGET_HEIGHT = 150
MAX_DEPTH = 100


@dataclass
class Settings:
    min_match_percent: int = DEFAULT_MIN_MATCH_PERCENT
    widget_find_retries: int = DEFAULT_WIDGET_FIND_RETRIES
    default_widget_width: int = DEFAULT_WIDGET_WIDTH
    default_widget_height: int = DEFAULT_WIDGET_HEIGHT
    retry_delay_ms: int = 400
    action_settle_ms: int = 500
    second_click_delay_ms: int = 1500
    double_click_gap_ms: int = 100
    key_press_ms: int = 50
    drag_insert_block_ms: int = 500
    max_depth: int = MAX_DEPTH
    key_bindings: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_KEY_BINDINGS))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "Settings":
        key_bindings = dict(DEFAULT_KEY_BINDINGS)
        for name in DEFAULT_KEY_BINDINGS:
            value = values.get(name)
            if isinstance(value, str) and value.strip():
                key_bindings[name] = value.strip()[0].lower()
        settings = cls(
            min_match_percent=read_int(values, "minmatchpercent", DEFAULT_MIN_MATCH_PERCENT),
            widget_find_retries=read_int(values, "widgetfindretries", DEFAULT_WIDGET_FIND_RETRIES),
            default_widget_width=read_int(values, "defaultwidgetwidth", DEFAULT_WIDGET_WIDTH),
            default_widget_height=read_int(values, "defaultwidgetheight", DEFAULT_WIDGET_HEIGHT),
            key_bindings=key_bindings,
        )
        logger.info(
            "Minimum match = %s%% | Default widget size = [w=%s,h=%s]",
            settings.min_match_percent,
            settings.default_widget_width,
            settings.default_widget_height,
        )
        return settings

    def binding_for(self, command: str) -> Optional[str]:
        key = self.key_bindings.get(command)
        if key is None:
            logger.warning("Failed to get key binding with the name: [%s]", command)
        return key

    def command_for_key(self, key: str) -> Optional[str]:
        lowered = key.lower()
        for command, bound in self.key_bindings.items():
            if bound == lowered:
                return command
        return None


def read_int(values: Mapping[str, Any], key: str, default: int) -> int:
    raw = values.get(key)
    if raw is None:
        return default
    number = parse_int(raw)
    if number is None:
        logger.warning("Failed to parse the key [%s] with value %r, using %s.", key, raw, default)
        return default
    return number


def load_settings(path: Optional[str]) -> Settings:
    if not path:
        return Settings()
    if not os.path.isfile(path):
        logger.warning("Settings file %s not found, using defaults.", path)
        return Settings()
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to load settings from %s: %s", path, exc)
        return Settings()
    if not isinstance(payload, dict):
        logger.warning("Settings file %s does not hold an object, using defaults.", path)
        return Settings()
    return Settings.from_mapping(payload)
