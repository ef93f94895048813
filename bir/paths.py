from __future__ import annotations

import logging
from pathlib import Path
from typing import Set

logger = logging.getLogger(__name__)

# Give up looking for a free name after this many numbered attempts.
MAX_SUFFIX = 10000


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return False


def resolve_output_path(
    input_path: Path,
    output_dir: Path,
    ext: str,
    already_assigned: Set[Path],
) -> Path:
    """
    Pick an output path for input_path inside output_dir.

    photo.png -> photo.jpg
    photo.jpg -> photo_resized.jpg   (would overwrite the input)
    photo.jpg -> photo_1.jpg, photo_2.jpg, ...   (taken on disk or in this batch)

    Paths in already_assigned count as taken. The caller adds the returned
    path to that set before resolving the next job.
    """
    input_path = Path(input_path)
    output_dir = Path(output_dir).resolve()

    base = input_path.stem
    candidate = output_dir / f"{base}{ext}"

    if _same_file(candidate, input_path):
        base = f"{base}_resized"
        candidate = output_dir / f"{base}{ext}"

    n = 0
    while candidate in already_assigned or candidate.exists():
        n += 1
        if n > MAX_SUFFIX:
            logger.warning("No free output name for %s after %d attempts, using %s", input_path, MAX_SUFFIX, candidate)
            break
        candidate = output_dir / f"{base}_{n}{ext}"

    return candidate


class OutputPathResolver:
    """Resolves output paths for a whole batch, remembering what it handed out."""

    def __init__(self) -> None:
        self.assigned: Set[Path] = set()

    def assign(self, input_path: Path, output_dir: Path, ext: str) -> Path:
        path = resolve_output_path(input_path, output_dir, ext, self.assigned)
        self.assigned.add(path)
        return path
