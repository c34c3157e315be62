"""Dominant color sampling for image assets."""

from __future__ import annotations

from collections import Counter
import io
import logging

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_SAMPLE_SIDE = 200
SAMPLE_STEP = 10
QUANTUM = 16


def _quantize(channel: int) -> int:
    return min(255, int(channel / QUANTUM + 0.5) * QUANTUM)


def dominant_color(data: bytes) -> str | None:
    """Return the most common opaque color as ``#RRGGBB``, or None when it cannot be read."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.thumbnail((MAX_SAMPLE_SIDE, MAX_SAMPLE_SIDE))
            pixels = image.convert("RGBA").tobytes()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.info("colors.unreadable_image error=%s", type(exc).__name__)
        return None

    counts: Counter[tuple[int, int, int]] = Counter()
    for offset in range(0, len(pixels), 4 * SAMPLE_STEP):
        red, green, blue, alpha = pixels[offset : offset + 4]
        if alpha < 128:
            continue
        counts[(_quantize(red), _quantize(green), _quantize(blue))] += 1

    if not counts:
        return None
    (red, green, blue), _ = counts.most_common(1)[0]
    return f"#{red:02X}{green:02X}{blue:02X}"


__all__ = ["dominant_color"]
