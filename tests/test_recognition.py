"""
Recognition strategy and widget locator tests
"""
from unittest.mock import Mock

import pytest

from image_finder.matcher import RecognitionMode
from image_finder.models import Check, LeftClick, Match, Rect, Widget, WidgetStatus
from image_finder.recognition import RecognitionStrategy, WidgetLocator
from image_finder.settings import Settings


def make_strategy(matcher, store, threshold=100):
    return RecognitionStrategy(matcher, store, Settings(min_match_percent=threshold))


class TestRecognitionStrategy:
    """Mode fallback order"""

    def test_confident_exact_match_skips_other_modes(self, fake_matcher, store):
        """A good EXACT match never consults COLOR or TOLERANT"""
        fake_matcher.results = {RecognitionMode.EXACT: Match(1, 2, 10, 10, 95)}
        strategy = make_strategy(fake_matcher, store, threshold=90)

        match = strategy.locate(Widget(LeftClick(), "a.png"), screenshot=object())

        assert match.percent == 95
        assert fake_matcher.calls == [RecognitionMode.EXACT]

    def test_low_confidence_exact_match_is_returned(self, fake_matcher, store):
        """Fallback happens on no match only, not on a weak one"""
        fake_matcher.results = {
            RecognitionMode.EXACT: Match(0, 0, 10, 10, 40),
            RecognitionMode.COLOR: Match(5, 5, 10, 10, 100),
        }
        strategy = make_strategy(fake_matcher, store, threshold=90)

        match = strategy.locate(Widget(LeftClick(), "a.png"), screenshot=object())

        assert match.percent == 40
        assert fake_matcher.calls == [RecognitionMode.EXACT]

    def test_falls_through_to_color_then_tolerant(self, fake_matcher, store):
        """Modes are tried EXACT, COLOR, TOLERANT"""
        fake_matcher.results = {RecognitionMode.TOLERANT: Match(3, 3, 10, 10, 88)}
        strategy = make_strategy(fake_matcher, store)

        match = strategy.locate(Widget(LeftClick(), "a.png"), screenshot=object())

        assert match == Match(3, 3, 10, 10, 88)
        assert fake_matcher.calls == [RecognitionMode.EXACT, RecognitionMode.COLOR, RecognitionMode.TOLERANT]

    def test_no_match_in_any_mode(self, fake_matcher, store):
        """None when every mode comes back empty"""
        strategy = make_strategy(fake_matcher, store)

        assert strategy.locate(Widget(LeftClick(), "a.png"), screenshot=object()) is None
        assert len(fake_matcher.calls) == 3

    def test_restores_previous_mode(self, fake_matcher, store):
        """The shared matcher is left in the mode it had before"""
        fake_matcher.mode = RecognitionMode.TOLERANT
        fake_matcher.results = {RecognitionMode.COLOR: Match(0, 0, 1, 1, 100)}
        strategy = make_strategy(fake_matcher, store)

        strategy.locate(Widget(LeftClick(), "a.png"), screenshot=object())

        assert fake_matcher.mode is RecognitionMode.TOLERANT

    def test_restores_mode_when_matcher_raises(self, store):
        """Mode is restored even if matching blows up"""
        matcher = Mock()
        matcher.mode = RecognitionMode.COLOR
        matcher.find_image.side_effect = RuntimeError("boom")
        strategy = make_strategy(matcher, store)

        with pytest.raises(RuntimeError):
            strategy.locate(Widget(LeftClick(), "a.png"), screenshot=object())

        matcher.set_mode.assert_called_with(RecognitionMode.COLOR)

    def test_missing_template_image(self, fake_matcher, store):
        """No template on disk means no match and no matching work"""
        store.load.return_value = None
        strategy = make_strategy(fake_matcher, store)

        assert strategy.locate(Widget(LeftClick(), "gone.png"), screenshot=object()) is None
        assert fake_matcher.calls == []


class TestWidgetLocator:
    """Single location attempt"""

    def make_locator(self, match, threshold=90):
        strategy = Mock()
        strategy.locate.return_value = match
        capture = Mock(return_value="frame")
        return WidgetLocator(strategy, Settings(min_match_percent=threshold), capture), strategy, capture

    def test_match_above_threshold_locates_widget(self):
        """95% against a 90% threshold is LOCATED"""
        locator, _, _ = self.make_locator(Match(10, 20, 30, 40, 95))
        widget = Widget(LeftClick(), "a.png")

        assert locator.resolve(widget) is True
        assert widget.status is WidgetStatus.LOCATED
        assert widget.location == Rect(10, 20, 30, 40)
        assert widget.metadata["center_x"] == 25
        assert widget.metadata["center_y"] == 40

    def test_check_widget_becomes_valid(self):
        """Check widgets are validated by presence alone"""
        locator, _, _ = self.make_locator(Match(0, 0, 10, 10, 100))
        widget = Widget(Check(), "c.png")

        assert locator.resolve(widget) is True
        assert widget.status is WidgetStatus.VALID

    def test_match_below_threshold(self):
        """A weak match leaves the widget UNLOCATED"""
        locator, _, _ = self.make_locator(Match(0, 0, 10, 10, 80))
        widget = Widget(LeftClick(), "a.png", status=WidgetStatus.LOCATED)

        assert locator.resolve(widget) is False
        assert widget.status is WidgetStatus.UNLOCATED

    def test_no_match(self):
        """No match at all is UNLOCATED"""
        locator, _, _ = self.make_locator(None)
        widget = Widget(LeftClick(), "a.png")

        assert locator.resolve(widget) is False
        assert widget.status is WidgetStatus.UNLOCATED
        assert widget.location is None

    def test_captures_when_no_screenshot_given(self):
        """The live screen is captured for each attempt"""
        locator, strategy, capture = self.make_locator(None)
        widget = Widget(LeftClick(), "a.png")

        locator.resolve(widget)
        locator.resolve(widget, screenshot="given")

        assert capture.call_count == 1
        assert strategy.locate.call_args_list[0].args == (widget, "frame")
        assert strategy.locate.call_args_list[1].args == (widget, "given")
