import argparse
import logging
import sys
import time
from typing import List, Optional

from .actions import InputInjector
from .errors import CollaboratorFailure
from .hooks import GlobalKeyboardHook, GlobalMouseHook, select_region
from .matcher import ImageMatcher
from .models import Rect
from .session import Session
from .settings import Settings, load_settings
from .storage import TemplateStore

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = "./settings/image_finder.json"
CAPTURE_INTERVAL = 0.5
LOOP_DELAY = 1.0 / 60


class Recorder:
    def __init__(
        self,
        settings: Settings,
        data_dir: str = "./data",
        product: str = "default",
        region: Optional[Rect] = None,
    ) -> None:
        self.injector = InputInjector()
        matcher = ImageMatcher()
        store = TemplateStore(matcher, data_dir=data_dir, product=product)
        self.session = Session(settings, self.injector, matcher=matcher, store=store, region=region)
        self.keyboard_hook = GlobalKeyboardHook(self.session.events, stop_event=self.session.stop_event)
        self.mouse_hook = GlobalMouseHook(self.session.events)

    def run(self) -> int:
        try:
            self.keyboard_hook.start()
            self.mouse_hook.start()
        except CollaboratorFailure as exc:
            logger.error("Failed to register global hook, stopping session. | %s", exc)
            self.shutdown()
            return 1
        self.session.start()
        last_capture = 0.0
        try:
            while self.session.running:
                now = time.monotonic()
                if now - last_capture > CAPTURE_INTERVAL:
                    last_capture = now
                    self.refresh_capture()
                self.session.process_events()
                time.sleep(LOOP_DELAY)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping session.")
        finally:
            self.shutdown()
        return 0

    def refresh_capture(self) -> None:
        try:
            self.session.capture()
        except CollaboratorFailure as exc:
            logger.error("Failed to capture the screen, stopping session. | %s", exc)
            self.session.stop()

    def shutdown(self) -> None:
        self.session.stop()
        self.keyboard_hook.stop()
        self.mouse_hook.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-finder",
        description="Record and replay image-based UI interactions as a state graph.",
    )
    parser.add_argument("--settings", default=DEFAULT_SETTINGS_PATH, help="JSON file with key bindings and limits")
    parser.add_argument("--data-dir", default="./data", help="directory that holds template images")
    parser.add_argument("--product", default="default", help="name of the application under test")
    parser.add_argument("--region", action="store_true", help="drag-select the screen region to work against")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    settings = load_settings(args.settings)
    try:
        region = select_region() if args.region else None
        recorder = Recorder(settings, data_dir=args.data_dir, product=args.product, region=region)
    except CollaboratorFailure as exc:
        logger.error("Session terminated: %s", exc)
        return 1
    return recorder.run()


if __name__ == "__main__":
    sys.exit(main())
