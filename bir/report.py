from __future__ import annotations

import csv
import json
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .batch import BatchSummary
from .results import Result


@dataclass(frozen=True)
class FileReport:
    input_path: str
    output_path: Optional[str]
    status: str
    message: str
    original_bytes: int
    new_bytes: int
    original_width: int
    original_height: int
    new_width: int
    new_height: int
    reduction_percent: float


@dataclass(frozen=True)
class BatchReport:
    created_utc: str
    summary: dict
    files: List[FileReport]


def format_size(size: int) -> str:
    """Human readable size, as shown in the results table: 512.0 KB, 2.35 MB."""
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):.2f} MB"
    return f"{size / 1024:.1f} KB"


def build_report(results: List[Result], summary: BatchSummary) -> BatchReport:
    created_utc = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")

    files: List[FileReport] = []
    for r in results:
        files.append(
            FileReport(
                input_path=str(r.input_path),
                output_path=str(r.output_path) if r.output_path else None,
                status=r.status.value,
                message=r.message,
                original_bytes=r.original_bytes,
                new_bytes=r.new_bytes,
                original_width=r.original_size[0],
                original_height=r.original_size[1],
                new_width=r.new_size[0],
                new_height=r.new_size[1],
                reduction_percent=round(r.reduction_percent, 2),
            )
        )

    summary_dict = {
        "total_files": summary.total_files,
        "succeeded": summary.succeeded,
        "failed": summary.failed,
        "cancelled": summary.cancelled,
        "was_cancelled": summary.was_cancelled,
        "total_src_bytes": summary.total_src_bytes,
        "total_out_bytes": summary.total_out_bytes,
        "saved_bytes": summary.saved_bytes,
        "saved_percent": round(summary.saved_percent, 2),
    }

    return BatchReport(created_utc=created_utc, summary=summary_dict, files=files)


def save_report_json(report: BatchReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        json.dump(asdict(report), f, indent=2, ensure_ascii=False)


def save_report_csv(report: BatchReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    columns = [f.name for f in fields(FileReport)]
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        for row in report.files:
            writer.writerow(asdict(row))


def results_table(results: List[Result]) -> str:
    """
    Tab-separated results, one row per file, ready to paste into a spreadsheet.

    Columns: File, Original, New, Reduction, Status.
    """
    lines = ["File\tOriginal\tNew\tReduction\tStatus"]
    for r in results:
        if r.ok:
            original = format_size(r.original_bytes)
            new = format_size(r.new_bytes)
            reduction = f"{r.reduction_percent:.1f}%"
        else:
            original = new = reduction = "-"
        lines.append("\t".join([r.input_path.name, original, new, reduction, r.status_text]))
    return "\n".join(lines) + "\n"
