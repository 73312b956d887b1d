"""Input validation for targets, viewports and wait times."""

from __future__ import annotations

import re
from urllib.parse import urlparse

VIEWPORT_MIN_WIDTH = 320
VIEWPORT_MAX_WIDTH = 7680
VIEWPORT_MIN_HEIGHT = 240
VIEWPORT_MAX_HEIGHT = 4320
MAX_WAIT_MS = 60000

_VIEWPORT_RE = re.compile(r"^(\d+)x(\d+)$")


def normalize_url(url: str) -> str:
    """Validate a target URL, adding https:// when no scheme is given.

    Args:
        url: Raw URL as entered by the user.

    Returns:
        Normalized URL.

    Raises:
        ValueError: If the URL is empty or has no host.
    """
    if not url or not url.strip():
        raise ValueError("URL cannot be empty")

    candidate = url.strip()
    if not re.match(r"^https?://", candidate, re.IGNORECASE):
        candidate = f"https://{candidate}"

    parsed = urlparse(candidate)
    if not parsed.hostname or " " in parsed.netloc:
        raise ValueError(f"Invalid URL: {url}")
    return candidate


def check_viewport(width: int, height: int) -> tuple[int, int]:
    """Check viewport bounds.

    Raises:
        ValueError: If width or height is outside the supported range.
    """
    if not VIEWPORT_MIN_WIDTH <= width <= VIEWPORT_MAX_WIDTH:
        raise ValueError(
            f"Invalid viewport width: {width}. "
            f"Must be between {VIEWPORT_MIN_WIDTH} and {VIEWPORT_MAX_WIDTH} pixels"
        )
    if not VIEWPORT_MIN_HEIGHT <= height <= VIEWPORT_MAX_HEIGHT:
        raise ValueError(
            f"Invalid viewport height: {height}. "
            f"Must be between {VIEWPORT_MIN_HEIGHT} and {VIEWPORT_MAX_HEIGHT} pixels"
        )
    return width, height


def parse_viewport(value: str) -> tuple[int, int]:
    """Parse a WIDTHxHEIGHT string (e.g. "1440x900").

    Raises:
        ValueError: On bad format or out-of-range dimensions.
    """
    match = _VIEWPORT_RE.match(value.strip())
    if match is None:
        raise ValueError(
            f'Invalid viewport format: "{value}". Use format: WIDTHxHEIGHT (e.g., 1440x900)'
        )
    return check_viewport(int(match.group(1)), int(match.group(2)))


def check_wait_ms(wait_ms: int) -> int:
    """Check the post-load settle time.

    Raises:
        ValueError: If negative or above MAX_WAIT_MS.
    """
    if wait_ms < 0:
        raise ValueError(f"Invalid wait time: {wait_ms}ms. Cannot be negative")
    if wait_ms > MAX_WAIT_MS:
        raise ValueError(f"Invalid wait time: {wait_ms}ms. Maximum is {MAX_WAIT_MS}ms")
    return wait_ms
