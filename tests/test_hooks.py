"""
Global hook tests, with the OS listeners patched out
"""
import queue
import sys
import threading
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest

from image_finder import hooks
from image_finder.errors import CollaboratorFailure
from image_finder.hooks import (
    ClickEvent,
    DragEvent,
    GlobalKeyboardHook,
    GlobalMouseHook,
    KeyEvent,
    ModifierEvent,
    ModifierKey,
    ModifierState,
    ScrollEvent,
)


def drain(events):
    items = []
    while not events.empty():
        items.append(events.get_nowait())
    return items


class TestModifierState:
    def test_freeze_needs_both_modifiers(self):
        """Capture is frozen only while control and shift are held"""
        state = ModifierState()
        state.apply(ModifierEvent(ModifierKey.CONTROL, True))
        assert not state.freeze_capture

        state.apply(ModifierEvent(ModifierKey.SHIFT, True))
        assert state.freeze_capture

        state.apply(ModifierEvent(ModifierKey.CONTROL, False))
        assert not state.freeze_capture


class TestKeyboardHook:
    """Key events from the keyboard package"""

    @pytest.fixture
    def keyboard_module(self):
        module = Mock(KEY_DOWN="down", KEY_UP="up")
        with patch.object(hooks, "keyboard_module", module):
            yield module

    def test_modifiers_and_keys(self, keyboard_module):
        """Modifiers report both edges, other keys only presses"""
        events = queue.Queue()
        hook = GlobalKeyboardHook(events)

        hook._on_key(SimpleNamespace(name="left ctrl", event_type="down"))
        hook._on_key(SimpleNamespace(name="A", event_type="down"))
        hook._on_key(SimpleNamespace(name="a", event_type="up"))
        hook._on_key(SimpleNamespace(name="ctrl", event_type="up"))

        assert drain(events) == [
            ModifierEvent(ModifierKey.CONTROL, True),
            KeyEvent("a"),
            ModifierEvent(ModifierKey.CONTROL, False),
        ]

    def test_escape_sets_stop_event(self, keyboard_module):
        """Escape cancels a running replay straight from the hook thread"""
        events = queue.Queue()
        stop_event = threading.Event()
        hook = GlobalKeyboardHook(events, stop_event=stop_event)

        hook._on_key(SimpleNamespace(name="esc", event_type="down"))

        assert stop_event.is_set()
        assert drain(events) == [KeyEvent("esc")]

    def test_start_and_stop(self, keyboard_module):
        """The hook handle is released on stop"""
        hook = GlobalKeyboardHook(queue.Queue())

        hook.start()
        hook.stop()

        keyboard_module.hook.assert_called_once_with(hook._on_key)
        keyboard_module.unhook.assert_called_once_with(keyboard_module.hook.return_value)

    def test_registration_failure(self, keyboard_module):
        """OS refusals surface as collaborator failures"""
        keyboard_module.hook.side_effect = ImportError("You must be root to use this library on linux.")

        with pytest.raises(CollaboratorFailure):
            GlobalKeyboardHook(queue.Queue()).start()

    def test_missing_package(self):
        """No keyboard package, no hook"""
        with patch.object(hooks, "keyboard_module", None):
            with pytest.raises(CollaboratorFailure):
                GlobalKeyboardHook(queue.Queue()).start()


class TestMouseHook:
    """Click, drag and scroll gestures"""

    @pytest.fixture
    def left(self):
        module = Mock()
        module.Button.left = "left"
        with patch.object(hooks, "pynput_mouse", module):
            yield "left"

    def test_click(self, left):
        """Press and release without movement is a click"""
        events = queue.Queue()
        hook = GlobalMouseHook(events)

        hook._on_click(10, 20, left, True)
        hook._on_move(12, 21)
        hook._on_click(12, 21, left, False)

        assert drain(events) == [ClickEvent((12, 21))]

    def test_drag(self, left):
        """Moving past the threshold turns the gesture into a drag"""
        events = queue.Queue()
        hook = GlobalMouseHook(events)

        hook._on_click(10, 20, left, True)
        hook._on_move(30, 40)
        hook._on_click(35, 45, left, False)

        assert drain(events) == [
            DragEvent("start", (10, 20)),
            DragEvent("move", (30, 40)),
            DragEvent("drop", (35, 45)),
        ]

    def test_other_buttons_are_ignored(self, left):
        """Only the left button records"""
        events = queue.Queue()
        hook = GlobalMouseHook(events)

        hook._on_click(10, 20, "right", True)
        hook._on_click(10, 20, "right", False)

        assert events.empty()

    def test_scroll(self, left):
        """Scrolling down moves the selection forward"""
        events = queue.Queue()
        GlobalMouseHook(events)._on_scroll(0, 0, 0, -1)

        assert drain(events) == [ScrollEvent(1)]


class TestOptionalImports:
    def test_import_without_hook_packages(self, fresh_import):
        """Missing keyboard and pynput packages disable the hooks instead of breaking the import"""
        with patch.dict(sys.modules, {"keyboard": None, "pynput": None}):
            module = fresh_import("hooks")

            assert module.keyboard_module is None
            assert module.pynput_mouse is None
            with pytest.raises(CollaboratorFailure):
                module.GlobalMouseHook(queue.Queue()).start()
