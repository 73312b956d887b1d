"""Pixel-level comparison of a candidate screenshot against its target.

Deterministic, objective pass/fail signal for the recreation loop:
- per-pixel perceptual colour delta in YIQ space against a fixed threshold
- anti-aliasing detection (neighbourhood brightness extremes + sibling test);
  anti-aliased pixels still count as mismatches but get their own colour
- diff image: hard mismatches in DIFF_COLOR, anti-aliasing in AA_COLOR,
  everything else as the target's luminance faded against white

The math runs on whole-image numpy arrays; neighbour tests are evaluated
for all pixels with shifted views and then masked to the mismatches.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from replica.adapter.image import ImageSource, image_size, load_rgba, write_png
from replica.core.errors import DimensionMismatchError, PersistenceFailure
from replica.core.identity import artifact_timestamp
from replica.models.types import DEFAULT_PIXEL_THRESHOLD, ComparisonResult

logger = logging.getLogger(__name__)

# Fixed comparison constants
PIXEL_THRESHOLD = 0.1  # Perceptual sensitivity (0.0 = strict, 1.0 = loose)
MAX_YIQ_DELTA = 35215.0  # Largest possible YIQ delta between two colours
DIFF_ALPHA = 0.1  # Opacity of unchanged pixels in the diff image
DIFF_COLOR = (255, 0, 0)  # Hard mismatches
AA_COLOR = (255, 255, 0)  # Anti-aliasing differences

DEFAULT_DIFF_DIR = Path("images/diffs")

# Neighbour scan order: x outer, y inner. Ties in the brightness extremes
# keep the first neighbour in this order.
_NEIGHBOUR_OFFSETS: tuple[tuple[int, int], ...] = tuple(
    (dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0)
)


@dataclass
class PixelMatch:
    """Raw outcome of a pixel comparison, before scoring."""

    mismatch_mask: np.ndarray  # (h, w) bool, every counted mismatch
    aa_mask: np.ndarray  # (h, w) bool, subset of mismatch_mask
    diff_image: np.ndarray  # (h, w, 4) uint8 RGBA

    @property
    def mismatch_pixels(self) -> int:
        return int(self.mismatch_mask.sum())

    @property
    def total_pixels(self) -> int:
        return int(self.mismatch_mask.size)


# ============================================================================
# Colour math
# ============================================================================


def _rgb2y(rgb: np.ndarray) -> np.ndarray:
    return rgb[..., 0] * 0.29889531 + rgb[..., 1] * 0.58662247 + rgb[..., 2] * 0.11448223


def _rgb2i(rgb: np.ndarray) -> np.ndarray:
    return rgb[..., 0] * 0.59597799 - rgb[..., 1] * 0.27417610 - rgb[..., 2] * 0.32180189


def _rgb2q(rgb: np.ndarray) -> np.ndarray:
    return rgb[..., 0] * 0.21147017 - rgb[..., 1] * 0.52261711 + rgb[..., 2] * 0.31114694


def _blend_on_white(rgba: np.ndarray) -> np.ndarray:
    """Composite RGBA over white, returning float RGB."""
    alpha = rgba[..., 3:4].astype(np.float64) / 255.0
    return 255.0 + (rgba[..., :3].astype(np.float64) - 255.0) * alpha


def color_delta(img1: np.ndarray, img2: np.ndarray) -> np.ndarray:
    """Signed perceptual colour delta between two RGBA images.

    Magnitude is the weighted YIQ distance; the sign is negative where
    img1 is brighter than img2.

    Returns:
        (h, w) float array; 0 where pixels are identical.
    """
    rgb1 = _blend_on_white(img1)
    rgb2 = _blend_on_white(img2)

    y1 = _rgb2y(rgb1)
    y2 = _rgb2y(rgb2)
    y = y1 - y2
    i = _rgb2i(rgb1) - _rgb2i(rgb2)
    q = _rgb2q(rgb1) - _rgb2q(rgb2)

    delta = 0.5053 * y * y + 0.299 * i * i + 0.1957 * q * q
    return np.where(y1 > y2, -delta, delta)


def brightness(rgba: np.ndarray) -> np.ndarray:
    """Luma of each pixel after compositing over white."""
    return _rgb2y(_blend_on_white(rgba))


# ============================================================================
# Neighbourhood tests
# ============================================================================


def _neighbour(arr: np.ndarray, dx: int, dy: int) -> tuple[np.ndarray, np.ndarray]:
    """Return arr shifted so out[y, x] == arr[y + dy, x + dx], with validity mask."""
    h, w = arr.shape[:2]
    out = np.zeros_like(arr)
    valid = np.zeros((h, w), dtype=bool)

    dst = (slice(max(0, -dy), h - max(0, dy)), slice(max(0, -dx), w - max(0, dx)))
    src = (slice(max(0, dy), h - max(0, -dy)), slice(max(0, dx), w - max(0, -dx)))
    out[dst] = arr[src]
    valid[dst] = True
    return out, valid


def _edge_mask(h: int, w: int) -> np.ndarray:
    """True for pixels on the image border."""
    edge = np.zeros((h, w), dtype=bool)
    edge[0, :] = edge[-1, :] = True
    edge[:, 0] = edge[:, -1] = True
    return edge


def has_many_siblings(rgba: np.ndarray) -> np.ndarray:
    """Pixels with more than two identical neighbours (border counts as one)."""
    h, w = rgba.shape[:2]
    zeroes = _edge_mask(h, w).astype(np.int32)

    for dx, dy in _NEIGHBOUR_OFFSETS:
        shifted, valid = _neighbour(rgba, dx, dy)
        zeroes += valid & np.all(shifted == rgba, axis=2)

    return zeroes > 2


def detect_antialiased(
    img: np.ndarray,
    other: np.ndarray,
    img_siblings: np.ndarray | None = None,
    other_siblings: np.ndarray | None = None,
) -> np.ndarray:
    """Anti-aliasing test for every pixel of img.

    A pixel is anti-aliased when at most two of its neighbours share its
    brightness, it has both a darker and a brighter neighbour, and the
    darkest or the brightest of those neighbours sits inside a flat region
    in both images.

    Args:
        img: Image whose pixels are tested.
        other: The image it is compared with.
        img_siblings: Precomputed has_many_siblings(img).
        other_siblings: Precomputed has_many_siblings(other).

    Returns:
        (h, w) bool array.
    """
    h, w = img.shape[:2]
    if img_siblings is None:
        img_siblings = has_many_siblings(img)
    if other_siblings is None:
        other_siblings = has_many_siblings(other)

    center = brightness(img)
    ys, xs = np.indices((h, w))

    zeroes = _edge_mask(h, w).astype(np.int32)
    min_delta = np.zeros((h, w))
    max_delta = np.zeros((h, w))
    min_y, min_x = ys.copy(), xs.copy()
    max_y, max_x = ys.copy(), xs.copy()

    for dx, dy in _NEIGHBOUR_OFFSETS:
        shifted, valid = _neighbour(center, dx, dy)
        delta = center - shifted

        zeroes += valid & (delta == 0)

        new_min = valid & (delta < min_delta)
        min_delta = np.where(new_min, delta, min_delta)
        min_y = np.where(new_min, ys + dy, min_y)
        min_x = np.where(new_min, xs + dx, min_x)

        new_max = valid & (delta > max_delta)
        max_delta = np.where(new_max, delta, max_delta)
        max_y = np.where(new_max, ys + dy, max_y)
        max_x = np.where(new_max, xs + dx, max_x)

    darkest_flat = img_siblings[min_y, min_x] & other_siblings[min_y, min_x]
    brightest_flat = img_siblings[max_y, max_x] & other_siblings[max_y, max_x]

    return (
        (zeroes <= 2)
        & (min_delta != 0)
        & (max_delta != 0)
        & (darkest_flat | brightest_flat)
    )


def render_diff(
    target: np.ndarray, mismatch_mask: np.ndarray, aa_mask: np.ndarray
) -> np.ndarray:
    """Render the diff image for a comparison."""
    h, w = target.shape[:2]
    alpha = DIFF_ALPHA * target[..., 3].astype(np.float64) / 255.0
    faded = 255.0 + (_rgb2y(target.astype(np.float64)) - 255.0) * alpha
    gray = np.clip(faded, 0, 255).astype(np.uint8)

    diff = np.empty((h, w, 4), dtype=np.uint8)
    diff[..., 0] = gray
    diff[..., 1] = gray
    diff[..., 2] = gray
    diff[..., 3] = 255

    diff[mismatch_mask & ~aa_mask] = (*DIFF_COLOR, 255)
    diff[aa_mask] = (*AA_COLOR, 255)
    return diff


def compute_pixel_match(target: np.ndarray, candidate: np.ndarray) -> PixelMatch:
    """Classify every pixel of two equal-size RGBA images.

    Args:
        target: Reference RGBA array.
        candidate: Candidate RGBA array.

    Returns:
        PixelMatch with masks and diff image.

    Raises:
        DimensionMismatchError: If the images differ in width or height.
        ValueError: If the images are empty.
    """
    if target.shape[:2] != candidate.shape[:2]:
        raise DimensionMismatchError(image_size(target), image_size(candidate))
    if target.size == 0:
        raise ValueError("Cannot compare empty images")

    h, w = target.shape[:2]

    if np.array_equal(target, candidate):
        mismatch = np.zeros((h, w), dtype=bool)
        aa = np.zeros((h, w), dtype=bool)
    else:
        max_delta = MAX_YIQ_DELTA * PIXEL_THRESHOLD * PIXEL_THRESHOLD
        mismatch = np.abs(color_delta(target, candidate)) > max_delta

        if mismatch.any():
            target_siblings = has_many_siblings(target)
            candidate_siblings = has_many_siblings(candidate)
            aa = mismatch & (
                detect_antialiased(target, candidate, target_siblings, candidate_siblings)
                | detect_antialiased(candidate, target, candidate_siblings, target_siblings)
            )
        else:
            aa = np.zeros((h, w), dtype=bool)

    return PixelMatch(
        mismatch_mask=mismatch,
        aa_mask=aa,
        diff_image=render_diff(target, mismatch, aa),
    )


# ============================================================================
# Scoring and notes
# ============================================================================


def round2(value: float) -> float:
    """Round half up to 2 decimal places."""
    return math.floor(value * 100 + 0.5) / 100


def generate_notes(mismatch_percent: float, score: float, passed: bool, threshold: float) -> str:
    """Human-readable notes for a mismatch level.

    Tiers (on the unrounded percent): 0 perfect, <1 excellent, <5 good,
    <15 moderate, <40 significant, otherwise very high mismatch.
    """
    if mismatch_percent == 0:
        notes = "✅ Perfect match! The images are pixel-identical."
    elif mismatch_percent < 1:
        notes = (
            f"✅ Excellent match ({mismatch_percent:.2f}% difference). "
            "Minor differences detected, likely due to:\n"
            "  • Slight anti-aliasing variations\n"
            "  • Sub-pixel rendering differences\n"
            "  • Negligible color variations"
        )
    elif mismatch_percent < 5:
        notes = (
            f"{'✅' if passed else '⚠️'} Good match ({mismatch_percent:.2f}% difference). "
            "Some differences detected, possibly from:\n"
            "  • Font rendering variations\n"
            "  • Minor spacing adjustments\n"
            "  • Small color or contrast differences"
        )
    elif mismatch_percent < 15:
        notes = (
            f"⚠️ Moderate differences ({mismatch_percent:.2f}% difference). "
            "Notable variations likely caused by:\n"
            "  • Layout shifts or spacing changes\n"
            "  • Different font weights or sizes\n"
            "  • Color scheme variations\n"
            "  • Missing or added UI elements"
        )
    elif mismatch_percent < 40:
        notes = (
            f"❌ Significant differences ({mismatch_percent:.2f}% difference). "
            "Major variations detected:\n"
            "  • Structural layout changes\n"
            "  • Different content or elements\n"
            "  • Major styling differences\n"
            "  • Possible incorrect screenshot"
        )
    else:
        notes = (
            f"❌ Very high mismatch ({mismatch_percent:.2f}% difference). "
            "The images appear substantially different:\n"
            "  • Completely different layouts or content\n"
            "  • Wrong page or screenshot captured\n"
            "  • Major rendering failure\n"
            "  • Images may be from different sources"
        )

    notes += f"\n\n**Objective Score:** {score:.2f}/100"
    notes += f"\n**Pass Threshold:** {threshold:g}"
    notes += f"\n**Status:** {'PASS ✅' if passed else 'FAIL ❌'}"
    return notes


def _check_threshold(threshold: float) -> float:
    if not 0 <= threshold <= 100:
        raise ValueError("Pass threshold must be between 0 and 100")
    return float(threshold)


class ComparisonEngine:
    """Compares candidate screenshots against a target.

    Scores are rounded half up to 2 decimals before the threshold check,
    so a raw score of 91.996 reports 92.00 and passes a threshold of 92.

    Usage:
        engine = ComparisonEngine(pass_threshold=92, diff_output_dir=run_dir / "diffs")
        result = engine.compare(target_png, candidate_png, slug="iteration_1")
    """

    def __init__(
        self,
        pass_threshold: float = DEFAULT_PIXEL_THRESHOLD,
        diff_output_dir: Path = DEFAULT_DIFF_DIR,
    ):
        """Initialize engine.

        Args:
            pass_threshold: Minimum score (0-100) for a pass.
            diff_output_dir: Directory that receives diff images.

        Raises:
            ValueError: If the threshold is outside 0-100.
        """
        self._pass_threshold = _check_threshold(pass_threshold)
        self.diff_output_dir = Path(diff_output_dir)

    @property
    def pass_threshold(self) -> float:
        return self._pass_threshold

    def set_pass_threshold(self, threshold: float) -> None:
        """Update the pass threshold (0-100)."""
        self._pass_threshold = _check_threshold(threshold)

    def compare(
        self,
        target: ImageSource,
        candidate: ImageSource,
        slug: str | None = None,
    ) -> ComparisonResult:
        """Compare two images and write the diff image.

        Args:
            target: Reference image (path, PNG bytes or RGBA array).
            candidate: Candidate image, same dimensions as target.
            slug: Optional suffix for the diff image name.

        Returns:
            ComparisonResult with rounded score/percent and diff path.

        Raises:
            DimensionMismatchError: If dimensions differ (nothing is written).
            PersistenceFailure: If the diff image cannot be written.
        """
        target_rgba = load_rgba(target)
        candidate_rgba = load_rgba(candidate)

        match = compute_pixel_match(target_rgba, candidate_rgba)

        total = match.total_pixels
        mismatch_percent = match.mismatch_pixels / total * 100
        score = max(0.0, min(100.0, 100.0 - mismatch_percent))
        rounded_score = round2(score)
        passed = rounded_score >= self._pass_threshold

        diff_path = self._save_diff_image(match.diff_image, slug)

        logger.debug(
            f"Pixel diff {slug or ''}: {match.mismatch_pixels}/{total} mismatched "
            f"({match.aa_mask.sum()} anti-aliased), score={rounded_score:.2f}"
        )

        return ComparisonResult(
            passed=passed,
            score=rounded_score,
            mismatch_percent=round2(mismatch_percent),
            mismatch_pixels=match.mismatch_pixels,
            total_pixels=total,
            diff_image_path=str(diff_path),
            notes=generate_notes(mismatch_percent, score, passed, self._pass_threshold),
        )

    def _save_diff_image(self, diff_image: np.ndarray, slug: str | None) -> Path:
        """Write the diff image as <timestamp>__diff[__<slug>].png."""
        slug_part = f"__{slug}" if slug else ""
        diff_path = self.diff_output_dir / f"{artifact_timestamp()}__diff{slug_part}.png"
        try:
            return write_png(diff_path, diff_image)
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Failed to write diff image {diff_path}: {e}") from e
