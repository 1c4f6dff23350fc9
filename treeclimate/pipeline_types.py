"""
Typed result dataclasses for pipeline step tracking.

Every step returns a StepResult; the runner collects them into a
PipelineRunResult that is saved as JSON for provenance.
"""

import subprocess
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class StepStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _get_git_sha():
    """Short SHA of HEAD, or None outside a git checkout."""
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],
            stderr=subprocess.DEVNULL,
            text=True,
        ).strip()
    except (subprocess.SubprocessError, FileNotFoundError):
        return None


@dataclass
class StepResult:
    """Outcome of one pipeline step, as recorded in pipeline_run.json."""

    step_name: str
    status: str  # StepStatus value
    input_summary: dict = field(default_factory=dict)
    output_summary: dict = field(default_factory=dict)
    timing_seconds: float = 0.0
    warnings: list = field(default_factory=list)
    error: Optional[str] = None
    started_at: str = field(default_factory=_now_iso)
    completed_at: Optional[str] = None
    nan_summary: Optional[dict] = None

    @property
    def ok(self):
        return self.status == StepStatus.SUCCESS.value

    def to_dict(self):
        return asdict(self)


@dataclass
class ClimateLayerSet:
    """The twelve monthly WorldClim layers of one variable, January first."""

    variable: str  # "tavg" | "prec"
    resolution: float
    paths: list = field(default_factory=list)
    downloaded: bool = False


@dataclass
class PipelineRunResult:
    """Provenance of one run: counts, step results, files written."""

    output_dir: str = ""
    resolution: float = 0.0
    species_processed: int = 0
    occurrences_loaded: int = 0
    step_results: list = field(default_factory=list)
    total_time_seconds: float = 0.0
    output_files: list = field(default_factory=list)
    git_sha: Optional[str] = field(default_factory=_get_git_sha)
    started_at: str = field(default_factory=_now_iso)

    @property
    def all_ok(self):
        return all(s.ok for s in self.step_results)

    @property
    def failed_steps(self):
        return [s for s in self.step_results if not s.ok]

    def to_dict(self):
        return {
            "output_dir": self.output_dir,
            "resolution": self.resolution,
            "species_processed": self.species_processed,
            "occurrences_loaded": self.occurrences_loaded,
            "steps": [s.to_dict() for s in self.step_results],
            "total_time_seconds": self.total_time_seconds,
            "output_files": self.output_files,
            "all_ok": self.all_ok,
            "git_sha": self.git_sha,
            "started_at": self.started_at,
        }
