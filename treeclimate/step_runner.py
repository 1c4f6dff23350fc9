"""
Generic step executor for pipeline steps.

Each step supplies its work function and metadata; ``run_step()``
handles timing, exception capture, structured logging and StepResult
construction. A failed step never raises: the runner inspects
``StepResult.ok`` and decides to abort.
"""

import traceback
import zipfile
from datetime import datetime, timezone
from typing import Callable, TypeVar

import pandas as pd
import requests

from treeclimate.logging_config import StepTimer, get_pipeline_logger, log_step_summary
from treeclimate.pipeline_types import StepResult, StepStatus

T = TypeVar("T")

log = get_pipeline_logger(__name__)

_DEFAULT_EXPECTED = (
    FileNotFoundError,
    ValueError,
    KeyError,
    zipfile.BadZipFile,
    requests.RequestException,
    pd.errors.EmptyDataError,
    pd.errors.ParserError,
    pd.errors.MergeError,
)


def run_step(
    step_name: str,
    fn: Callable[..., T],
    *args,
    input_summary: dict | None = None,
    output_summary_fn: Callable[[T], dict] | None = None,
    expected_exceptions: tuple[type[Exception], ...] = _DEFAULT_EXPECTED,
    **kwargs,
) -> tuple[StepResult, T | None]:
    """Execute a pipeline step with standardised error handling and timing.

    Parameters
    ----------
    step_name : str
        Name stored in the StepResult.
    fn : Callable
        The work function, called as ``fn(*args, **kwargs)``.
    input_summary : dict, optional
        Metadata about inputs.
    output_summary_fn : callable, optional
        Builds an output-summary dict from *fn*'s return value. Skipped
        when *fn* raises or returns None.
    expected_exceptions : tuple
        Exception types logged as known failures (input files missing,
        unparsable tables, unreachable climate source).

    Returns
    -------
    tuple[StepResult, T | None]
    """
    result_data = None
    error_tb = None

    with StepTimer() as timer:
        try:
            result_data = fn(*args, **kwargs)
        except expected_exceptions as exc:
            error_tb = traceback.format_exc()
            log.error("%s failed: %s", step_name, exc, exc_info=True)
        except Exception:
            error_tb = traceback.format_exc()
            log.error("%s failed unexpectedly", step_name, exc_info=True)

    completed_at = datetime.now(timezone.utc).isoformat()

    if error_tb:
        log_step_summary(log, step_name, "error", timing_seconds=timer.elapsed)
        return StepResult(
            step_name=step_name,
            status=StepStatus.ERROR.value,
            input_summary=input_summary or {},
            error=error_tb,
            timing_seconds=timer.elapsed,
            completed_at=completed_at,
        ), None

    out_summary = {}
    if output_summary_fn is not None and result_data is not None:
        out_summary = output_summary_fn(result_data)

    log_step_summary(
        log, step_name, "success",
        input_summary=input_summary or {},
        output_summary=out_summary,
        timing_seconds=timer.elapsed,
    )
    return StepResult(
        step_name=step_name,
        status=StepStatus.SUCCESS.value,
        input_summary=input_summary or {},
        output_summary=out_summary,
        timing_seconds=timer.elapsed,
        completed_at=completed_at,
    ), result_data
