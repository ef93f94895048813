from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Tuple

if TYPE_CHECKING:
    from .jobs import Job


Size = Tuple[int, int]


class ResultStatus(Enum):
    SUCCESS = "success"
    FAILED_TO_LOAD = "failed_to_load"
    FAILED_TO_SAVE = "failed_to_save"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Result:
    """
    Outcome of running a single job.

    Written once by the worker that ran the job (or synthesized by the
    aggregator for jobs that never ran) and never changed afterwards.
    """
    job_id: int
    input_path: Path
    output_path: Optional[Path]  # None unless something was written
    original_bytes: int = 0
    new_bytes: int = 0
    original_size: Size = (0, 0)
    new_size: Size = (0, 0)
    status: ResultStatus = ResultStatus.SUCCESS
    message: str = ""

    @classmethod
    def cancelled(cls, job: "Job") -> "Result":
        return cls(
            job_id=job.id,
            input_path=job.input_path,
            output_path=None,
            status=ResultStatus.CANCELLED,
            message="Cancelled",
        )

    @property
    def ok(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    @property
    def failed(self) -> bool:
        return self.status in (ResultStatus.FAILED_TO_LOAD, ResultStatus.FAILED_TO_SAVE)

    @property
    def reduction_percent(self) -> float:
        if self.original_bytes <= 0:
            return 0.0
        return (1.0 - self.new_bytes / self.original_bytes) * 100.0

    @property
    def status_text(self) -> str:
        # Success may still carry a note, e.g. a missed size target.
        if self.ok:
            return f"OK ({self.message})" if self.message else "OK"
        if self.status is ResultStatus.CANCELLED:
            return "Cancelled"
        return self.message or self.status.value
