import importlib.util
import os
import sys
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import numpy as np
import pytest

import image_finder
from image_finder.matcher import RecognitionMode
from image_finder.models import Match
from image_finder.settings import Settings


class FakeMatcher:
    """Matcher double answering from a per-mode table and recording the modes it was asked in."""

    def __init__(self, results: Optional[Dict[RecognitionMode, Optional[Match]]] = None) -> None:
        self.mode = RecognitionMode.EXACT
        self.results: Dict[RecognitionMode, Optional[Match]] = results or {}
        self.calls: List[RecognitionMode] = []

    def set_mode(self, mode: RecognitionMode) -> None:
        self.mode = mode

    def find_image(self, screenshot: Any, template: Any) -> Optional[Match]:
        self.calls.append(self.mode)
        return self.results.get(self.mode)


@pytest.fixture
def fake_matcher():
    return FakeMatcher()


@pytest.fixture
def template():
    return np.zeros((4, 4, 3), dtype=np.uint8)


@pytest.fixture
def store(template):
    store = Mock()
    store.load.return_value = template
    store.delete.return_value = True
    return store


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def injector():
    injector = Mock()
    injector.mouse_position.return_value = (5, 5)
    injector.can_type.return_value = True
    return injector


@pytest.fixture
def screen():
    return np.random.RandomState(7).randint(0, 256, size=(120, 160, 3)).astype(np.uint8)


@pytest.fixture
def fresh_import():
    """Execute a fresh copy of an ``image_finder`` module, e.g. with a library hidden from ``sys.modules``."""

    def load(name):
        path = os.path.join(os.path.dirname(image_finder.__file__), f"{name}.py")
        spec = importlib.util.spec_from_file_location(f"image_finder._fresh_{name}", path)
        module = importlib.util.module_from_spec(spec)
        sys.modules[spec.name] = module
        spec.loader.exec_module(module)
        return module

    return load
