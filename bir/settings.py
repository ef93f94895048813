from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class OutputFormat(Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    AVIF = "avif"

    @property
    def extension(self) -> str:
        return FORMAT_TO_EXT[self]

    @property
    def pillow_format(self) -> str:
        return self.value.upper()

    @property
    def lossless(self) -> bool:
        return self is OutputFormat.PNG

    @classmethod
    def parse(cls, text: str) -> "OutputFormat":
        t = text.strip().lower()
        if t == "jpg":
            t = "jpeg"
        try:
            return cls(t)
        except ValueError:
            raise ValueError(f"Unknown output format: {text}") from None


FORMAT_TO_EXT = {
    OutputFormat.JPEG: ".jpg",
    OutputFormat.PNG: ".png",
    OutputFormat.WEBP: ".webp",
    OutputFormat.AVIF: ".avif",
}


# Encoder knobs that are not exposed per job.
JPEG_OPTIMIZE = True
JPEG_PROGRESSIVE = True
PNG_COMPRESS_LEVEL = 6
WEBP_METHOD = 4
JPEG_BACKGROUND = (255, 255, 255)

DEFAULT_QUALITY = 85


# ----- Resize specs -----

@dataclass(frozen=True)
class Percentage:
    """Scale both dimensions by percent / 100 (values above 100 enlarge)."""
    percent: int

    def __post_init__(self) -> None:
        if int(self.percent) < 1:
            raise ValueError(f"percent must be >= 1, got {self.percent}")


@dataclass(frozen=True)
class FitWidth:
    width: int

    def __post_init__(self) -> None:
        if int(self.width) < 1:
            raise ValueError(f"width must be >= 1, got {self.width}")


@dataclass(frozen=True)
class FitHeight:
    height: int

    def __post_init__(self) -> None:
        if int(self.height) < 1:
            raise ValueError(f"height must be >= 1, got {self.height}")


@dataclass(frozen=True)
class FitBoundingBox:
    """Largest size with the source aspect ratio that fits inside width x height."""
    width: int
    height: int

    def __post_init__(self) -> None:
        if int(self.width) < 1 or int(self.height) < 1:
            raise ValueError(f"bounding box must be at least 1x1, got {self.width}x{self.height}")


@dataclass(frozen=True)
class NoResize:
    pass


ResizeSpec = Union[Percentage, FitWidth, FitHeight, FitBoundingBox, NoResize]


# ----- Encode spec -----

@dataclass(frozen=True)
class EncodeSpec:
    """
    Output format and compression for one job.

    size_target is a byte budget. When set, quality is found by search and
    the quality field is ignored. PNG has no quality axis, so a size target
    on PNG is rejected here rather than silently dropped later.
    """
    format: OutputFormat = OutputFormat.JPEG
    quality: int = DEFAULT_QUALITY
    size_target: Optional[int] = None

    def __post_init__(self) -> None:
        if not isinstance(self.format, OutputFormat):
            raise ValueError(f"format must be an OutputFormat, got {self.format!r}")
        if not 1 <= int(self.quality) <= 100:
            raise ValueError(f"quality must be in 1..100, got {self.quality}")
        if self.size_target is not None:
            if self.format.lossless:
                raise ValueError(f"size target is not supported for {self.format.name} (lossless)")
            if int(self.size_target) <= 0:
                raise ValueError(f"size target must be positive, got {self.size_target}")


def default_concurrency() -> int:
    return max(1, (os.cpu_count() or 1) - 1)


@dataclass(frozen=True)
class BatchSettings:
    """
    Everything one batch needs, resolved from the CLI (or any other front end).

    The engine never persists these; a front end that wants "remember last
    settings" does it on its own side.
    """

    # ----- Output handling -----
    # None means a "resized" folder next to each input file.
    output_dir: Optional[Path] = None

    # ----- Encoding -----
    encode: EncodeSpec = field(default_factory=EncodeSpec)

    # ----- Resize -----
    resize: ResizeSpec = field(default_factory=NoResize)

    # ----- Execution -----
    concurrency: int = field(default_factory=default_concurrency)
    recursive: bool = True

    def __post_init__(self) -> None:
        if int(self.concurrency) < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
