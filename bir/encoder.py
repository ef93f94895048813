"""
In-memory encoding.

Two entry points:

- ``encode`` writes one buffer at a fixed quality.
- ``encode_to_target`` binary-searches quality so the buffer fits a byte
  budget. The search assumes encoded size grows with quality, caps quality
  at 95 and gives up after 10 probes. If nothing fits, the quality-1 buffer
  is returned anyway: the budget is best effort, never a reason to fail.

Both are pure: image in, bytes out. Writing to disk is the caller's job.
"""

from __future__ import annotations

import io
import logging

from PIL import Image

from .settings import (
    JPEG_BACKGROUND,
    JPEG_OPTIMIZE,
    JPEG_PROGRESSIVE,
    PNG_COMPRESS_LEVEL,
    WEBP_METHOD,
    OutputFormat,
)

logger = logging.getLogger(__name__)

SEARCH_MIN_QUALITY = 1
SEARCH_MAX_QUALITY = 95
SEARCH_MAX_ITERATIONS = 10


class EncodeError(RuntimeError):
    """The codec refused the image, or no encoder exists for the format."""


def encoder_available(fmt: OutputFormat) -> bool:
    Image.init()
    return fmt.pillow_format in Image.SAVE


def encode(im: Image.Image, fmt: OutputFormat, quality: int) -> bytes:
    if not encoder_available(fmt):
        raise EncodeError(f"No {fmt.name} encoder available in this Pillow build")

    im = _prepare_for_format(im, fmt)
    kwargs = _build_save_kwargs(fmt, quality)

    buf = io.BytesIO()
    try:
        im.save(buf, format=fmt.pillow_format, **kwargs)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeError(f"Failed to encode {fmt.name} at quality {quality}: {exc}") from exc
    return buf.getvalue()


def encode_to_target(im: Image.Image, fmt: OutputFormat, max_bytes: int) -> bytes:
    if fmt.lossless:
        raise EncodeError(f"Target size not supported for {fmt.name} format")

    # Convert once instead of on every probe.
    im = _prepare_for_format(im, fmt)

    lo, hi = SEARCH_MIN_QUALITY, SEARCH_MAX_QUALITY
    best: bytes | None = None
    best_quality = None

    for _ in range(SEARCH_MAX_ITERATIONS):
        if lo > hi:
            break
        mid = (lo + hi) // 2
        data = encode(im, fmt, mid)
        logger.debug("quality %d -> %d bytes (budget %d)", mid, len(data), max_bytes)

        if len(data) <= max_bytes:
            best, best_quality = data, mid
            lo = mid + 1
        else:
            hi = mid - 1

    if best is None:
        logger.debug("budget %d not reachable, falling back to quality %d", max_bytes, SEARCH_MIN_QUALITY)
        return encode(im, fmt, SEARCH_MIN_QUALITY)

    logger.debug("settled on quality %d (%d bytes)", best_quality, len(best))
    return best


def _build_save_kwargs(fmt: OutputFormat, quality: int) -> dict:
    kwargs: dict = {}

    if fmt is OutputFormat.JPEG:
        kwargs["quality"] = int(quality)
        kwargs["optimize"] = JPEG_OPTIMIZE
        kwargs["progressive"] = JPEG_PROGRESSIVE

    elif fmt is OutputFormat.PNG:
        # Lossless: quality has no meaning here.
        kwargs["compress_level"] = PNG_COMPRESS_LEVEL

    elif fmt is OutputFormat.WEBP:
        kwargs["quality"] = int(quality)
        kwargs["lossless"] = False
        kwargs["method"] = WEBP_METHOD

    elif fmt is OutputFormat.AVIF:
        kwargs["quality"] = int(quality)

    return kwargs


def _prepare_for_format(im: Image.Image, fmt: OutputFormat) -> Image.Image:
    if fmt is OutputFormat.JPEG:
        if _has_alpha(im):
            return _flatten_alpha(im, JPEG_BACKGROUND)
        if im.mode not in ("RGB", "L"):
            return im.convert("RGB")
        return im

    if fmt is OutputFormat.PNG:
        if im.mode not in ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"):
            return im.convert("RGBA" if _has_alpha(im) else "RGB")
        return im

    # WebP and AVIF
    if im.mode not in ("RGB", "RGBA"):
        return im.convert("RGBA" if _has_alpha(im) else "RGB")
    return im


def _flatten_alpha(im: Image.Image, background_rgb: tuple[int, int, int]) -> Image.Image:
    rgba = im.convert("RGBA")
    bg = Image.new("RGBA", rgba.size, background_rgb + (255,))
    comp = Image.alpha_composite(bg, rgba)
    return comp.convert("RGB")


def _has_alpha(im: Image.Image) -> bool:
    if im.mode in ("RGBA", "LA", "PA"):
        return True
    if im.mode == "P" and "transparency" in im.info:
        return True
    return False
