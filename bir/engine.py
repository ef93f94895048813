from __future__ import annotations

import io
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

import rawpy
from PIL import Image, ImageOps, UnidentifiedImageError

from .encoder import EncodeError, encode, encode_to_target
from .jobs import Job
from .results import Result, ResultStatus
from .transform import resize

logger = logging.getLogger(__name__)

# Allow large camera and panorama images.
Image.MAX_IMAGE_PIXELS = None

RAW_EXTS = {
    ".cr2", ".cr3", ".nef", ".nrw", ".arw", ".dng", ".raf", ".orf", ".rw2", ".pef", ".srw",
}

STANDARD_EXTS = {
    ".png", ".jpg", ".jpeg", ".bmp", ".gif", ".tiff", ".tif", ".webp", ".avif",
}

SUPPORTED_EXTS = STANDARD_EXTS | RAW_EXTS

# mkstemp creates files as 0600; outputs get the usual umask-based mode.
_UMASK = os.umask(0)
os.umask(_UMASK)
OUTPUT_FILE_MODE = 0o666 & ~_UMASK


class ImageLoadError(OSError):
    """The input could not be read or decoded."""


def load_image(src_path: Path, data: Optional[bytes] = None) -> Image.Image:
    """
    Decode an image file.

    Pillow gets the first try regardless of extension. Camera RAW files it
    cannot read are developed with LibRaw to 8-bit RGB using automatic
    white balance. Animated files yield their first frame.
    """
    src_path = Path(src_path)
    if data is None:
        try:
            data = src_path.read_bytes()
        except OSError as exc:
            raise ImageLoadError(f"Failed to load image: {src_path} ({exc})") from exc

    try:
        return _load_standard(data)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        if src_path.suffix.lower() not in RAW_EXTS:
            raise ImageLoadError(f"Failed to load image: {src_path} ({exc})") from exc
        logger.debug("Pillow could not decode %s (%s), trying RAW decoder", src_path, exc)

    try:
        return _load_raw(data)
    except (rawpy.LibRawError, OSError, ValueError) as exc:
        raise ImageLoadError(f"Failed to load image: {src_path} ({exc})") from exc


def _load_standard(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as im:
        im.load()
        # Orientation lives in EXIF, which is not written back out.
        im = ImageOps.exif_transpose(im)
    return _normalize_mode(im)


def _load_raw(data: bytes) -> Image.Image:
    with rawpy.imread(io.BytesIO(data)) as raw:
        rgb = raw.postprocess(use_auto_wb=True, output_bps=8)
    return Image.fromarray(rgb)


def _normalize_mode(im: Image.Image) -> Image.Image:
    if im.mode in ("RGB", "RGBA", "L", "LA"):
        return im
    if im.mode == "F" or im.mode.startswith("I"):
        return _deep_gray_to_l(im)
    has_alpha = im.mode in ("PA",) or (im.mode == "P" and "transparency" in im.info)
    return im.convert("RGBA" if has_alpha else "RGB")


def _deep_gray_to_l(im: Image.Image) -> Image.Image:
    # 16-bit and float rasters: convert() would clip everything above 255.
    if im.mode == "F":
        _, hi = im.getextrema()
        scale = 255.0 if hi <= 1.0 else 1 / 256
    else:
        im = im.convert("I")
        scale = 1 / 256
    return im.point(lambda v: v * scale).convert("L")


def run_job(job: Job, cancel_event: Optional[threading.Event] = None) -> Result:
    """
    Run one job end to end: load, resize, encode, write.

    Never raises for per-file problems; every outcome is a Result.
    """
    if cancel_event is not None and cancel_event.is_set():
        return Result.cancelled(job)

    src_path = job.input_path

    try:
        data = src_path.read_bytes()
    except OSError as exc:
        logger.debug("job %d: read failed: %s", job.id, exc)
        return _failed(job, ResultStatus.FAILED_TO_LOAD, f"Failed to load image: {src_path}")

    src_bytes = len(data)

    try:
        im = load_image(src_path, data)
    except ImageLoadError as exc:
        logger.debug("job %d: %s", job.id, exc)
        return _failed(job, ResultStatus.FAILED_TO_LOAD, f"Failed to load image: {src_path}", src_bytes)

    original_size = im.size
    im = resize(im, job.resize)
    new_size = im.size

    message = ""
    spec = job.encode
    try:
        if spec.size_target is not None:
            out = encode_to_target(im, spec.format, spec.size_target)
            if len(out) > spec.size_target:
                message = f"size target of {spec.size_target} bytes not reached"
                logger.warning("%s: size target %d bytes not reached (%d bytes)", src_path, spec.size_target, len(out))
        else:
            out = encode(im, spec.format, spec.quality)
    except EncodeError as exc:
        return _failed(job, ResultStatus.FAILED_TO_SAVE, str(exc), src_bytes, original_size, new_size)

    try:
        _write_output(out, job.output_path)
    except OSError as exc:
        return _failed(
            job,
            ResultStatus.FAILED_TO_SAVE,
            f"Failed to save: {job.output_path} ({exc})",
            src_bytes,
            original_size,
            new_size,
        )

    logger.debug("job %d: %s %sx%s -> %sx%s, %d -> %d bytes", job.id, src_path.name, *original_size, *new_size, src_bytes, len(out))

    return Result(
        job_id=job.id,
        input_path=src_path,
        output_path=job.output_path,
        original_bytes=src_bytes,
        new_bytes=len(out),
        original_size=original_size,
        new_size=new_size,
        status=ResultStatus.SUCCESS,
        message=message,
    )


def _failed(
    job: Job,
    status: ResultStatus,
    message: str,
    src_bytes: int = 0,
    original_size: tuple[int, int] = (0, 0),
    new_size: tuple[int, int] = (0, 0),
) -> Result:
    return Result(
        job_id=job.id,
        input_path=job.input_path,
        output_path=None,
        original_bytes=src_bytes,
        new_bytes=0,
        original_size=original_size,
        new_size=new_size,
        status=status,
        message=message,
    )


def _write_output(data: bytes, out_path: Path) -> None:
    # Temp file in the same folder so the final rename is atomic and a
    # failed write never leaves a truncated image behind.
    fd, tmp_name = tempfile.mkstemp(prefix="bir_", suffix=out_path.suffix, dir=str(out_path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp_path, OUTPUT_FILE_MODE)
        tmp_path.replace(out_path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
