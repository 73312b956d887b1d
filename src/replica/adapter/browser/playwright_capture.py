"""Screenshot capture via Playwright (sync API).

Each capture launches its own Chromium, renders the URL or markup at the
requested viewport, waits for the page to settle and closes the browser
in a finally block. Nothing is held open between captures.
"""

from __future__ import annotations

import logging

from replica.core.errors import CaptureFailure
from replica.models.types import Viewport
from replica.providers.base import CaptureSource, ScreenshotterBase

logger = logging.getLogger(__name__)

DEFAULT_NAVIGATION_TIMEOUT_MS = 30000

DISABLE_ANIMATIONS_CSS = """
*, *::before, *::after {
  animation-duration: 0s !important;
  animation-delay: 0s !important;
  transition-duration: 0s !important;
  transition-delay: 0s !important;
  caret-color: transparent !important;
}
"""


def check_available() -> bool:
    """Check whether Playwright and its Chromium build are installed."""
    try:
        from playwright.sync_api import sync_playwright
    except ImportError:
        return False

    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            browser.close()
        return True
    except Exception:
        return False


class PlaywrightScreenshotter(ScreenshotterBase):
    """Headless Chromium screenshotter.

    Usage:
        screenshotter = PlaywrightScreenshotter()
        png = screenshotter.capture(CaptureSource.from_url(url), Viewport(), wait_ms=1000)
    """

    def __init__(
        self,
        timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        disable_animations: bool = True,
        selector: str | None = None,
        headless: bool = True,
    ):
        """Initialize screenshotter.

        Args:
            timeout_ms: Navigation/load timeout per capture.
            disable_animations: Freeze CSS animations and transitions.
            selector: Optional CSS selector; only that element is captured.
            headless: Run Chromium without a window.
        """
        self.timeout_ms = timeout_ms
        self.disable_animations = disable_animations
        self.selector = selector
        self.headless = headless

    def capture(self, source: CaptureSource, viewport: Viewport, wait_ms: int) -> bytes:
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
        from playwright.sync_api import sync_playwright

        label = source.describe()
        logger.debug(f"Capturing {label} at {viewport.width}x{viewport.height}")

        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=self.headless)
                try:
                    context = browser.new_context(
                        viewport={"width": viewport.width, "height": viewport.height}
                    )
                    page = context.new_page()
                    page.set_default_timeout(self.timeout_ms)

                    if source.url is not None:
                        page.goto(source.url, wait_until="networkidle")
                    else:
                        page.set_content(source.markup or "", wait_until="load")

                    if self.disable_animations:
                        page.add_style_tag(content=DISABLE_ANIMATIONS_CSS)

                    if wait_ms > 0:
                        page.wait_for_timeout(wait_ms)

                    if self.selector:
                        element = page.query_selector(self.selector)
                        if element is None:
                            raise CaptureFailure(
                                f"Element not found: {self.selector}", reason="element-not-found"
                            )
                        return element.screenshot(type="png")

                    return page.screenshot(type="png", full_page=False)
                finally:
                    browser.close()

        except CaptureFailure:
            raise
        except PlaywrightTimeoutError as e:
            raise CaptureFailure(f"Timed out capturing {label}: {e}", reason="timeout") from e
        except PlaywrightError as e:
            reason = "unreachable" if source.is_url else "browser"
            raise CaptureFailure(f"Failed to capture {label}: {e}", reason=reason) from e
