from __future__ import annotations

from PIL import Image

from .settings import FitBoundingBox, FitHeight, FitWidth, NoResize, Percentage, ResizeSpec


def target_size(width: int, height: int, spec: ResizeSpec) -> tuple[int, int]:
    """
    Compute output dimensions for a width x height raster.

    Every branch clamps to at least 1px so very thin images survive a
    heavy downscale.
    """
    if isinstance(spec, Percentage):
        pct = int(spec.percent)
        return max(1, (width * pct) // 100), max(1, (height * pct) // 100)

    if isinstance(spec, FitWidth):
        new_w = int(spec.width)
        return new_w, max(1, round(height * new_w / width))

    if isinstance(spec, FitHeight):
        new_h = int(spec.height)
        return max(1, round(width * new_h / height)), new_h

    if isinstance(spec, FitBoundingBox):
        box_w, box_h = int(spec.width), int(spec.height)
        # Try filling the box height first; fall back to filling its width.
        scaled_w = (box_h * width) // height
        if scaled_w <= box_w:
            return max(1, scaled_w), box_h
        return box_w, max(1, (box_w * height) // width)

    if isinstance(spec, NoResize):
        return width, height

    raise TypeError(f"Unknown resize spec: {spec!r}")


def resize(im: Image.Image, spec: ResizeSpec) -> Image.Image:
    w, h = im.size
    new_w, new_h = target_size(w, h, spec)

    if (new_w, new_h) == (w, h):
        return im

    # Palette and 1-bit images would be resampled with NEAREST.
    if im.mode in ("P", "1"):
        im = im.convert("RGBA" if "transparency" in im.info else "RGB")

    return im.resize((new_w, new_h), Image.Resampling.LANCZOS)
