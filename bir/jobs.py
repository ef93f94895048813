from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .paths import OutputPathResolver
from .settings import EncodeSpec, ResizeSpec

logger = logging.getLogger(__name__)

# Folder created next to each input when no output directory is given.
PER_FILE_OUTPUT_DIR = "resized"


class OutputDirectoryError(OSError):
    """An output directory could not be created; nothing in the batch can be written."""


@dataclass(frozen=True)
class Job:
    """
    One unit of work: a single input file and everything needed to convert it.

    output_path is fixed before dispatch so that concurrent workers never
    pick file names themselves.
    """
    id: int
    input_path: Path
    output_path: Path
    resize: ResizeSpec
    encode: EncodeSpec


def _ensure_dir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputDirectoryError(f"Could not create output directory: {path} ({exc})") from exc


def build_jobs(
    inputs: Sequence[Path],
    output_dir: Optional[Path],
    resize: ResizeSpec,
    encode: EncodeSpec,
) -> List[Job]:
    """
    Turn an ordered list of input files into Jobs with resolved output paths.

    Runs entirely on the calling thread. With output_dir=None each input
    gets a "resized" folder beside it. Raises OutputDirectoryError before
    any Job exists if a folder cannot be created.
    """
    ext = encode.format.extension
    resolver = OutputPathResolver()

    if output_dir is not None:
        output_dir = Path(output_dir)
        _ensure_dir(output_dir)

    jobs: List[Job] = []
    for idx, src in enumerate(inputs):
        src = Path(src)
        target_dir = output_dir if output_dir is not None else src.parent / PER_FILE_OUTPUT_DIR
        if output_dir is None:
            _ensure_dir(target_dir)

        out_path = resolver.assign(src, target_dir, ext)
        logger.debug("job %d: %s -> %s", idx, src, out_path)
        jobs.append(Job(id=idx, input_path=src, output_path=out_path, resize=resize, encode=encode))

    return jobs
