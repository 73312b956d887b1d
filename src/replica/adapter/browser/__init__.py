"""Browser automation adapters.

- playwright_capture: one headless Chromium per screenshot
"""

from replica.adapter.browser.playwright_capture import (
    DISABLE_ANIMATIONS_CSS,
    PlaywrightScreenshotter,
    check_available,
)

__all__ = [
    "DISABLE_ANIMATIONS_CSS",
    "PlaywrightScreenshotter",
    "check_available",
]
