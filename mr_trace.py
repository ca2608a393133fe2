"""
Request-scoped tracing for MindRoute queries.

Provides a thread-local TraceContext that records:
  - Per-stage timing (catalogue, query, recommend, routes, load, ...)
    with the number of programs or routes each stage produced
  - Outbound fetches (the remote catalogue download)
  - End-of-request summary (total elapsed, outcome)

Usage:
    from mr_trace import TraceContext, get_trace, set_trace, clear_trace

    # In the request handler (app.py):
    ctx = TraceContext(trace_id=request_id)
    set_trace(ctx)
    ...
    ctx.log_summary()
    clear_trace()

    # In the engine (via the traced_stage context manager):
    with traced_stage("routes") as stage:
        ...
        stage.items = len(routes)
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Data classes for trace records
# =============================================================================

@dataclass
class FetchRecord:
    """One outbound HTTP call."""
    service: str          # "arcgis"
    endpoint: str         # "catalogue"
    elapsed_ms: int
    status_code: int
    stage: str = ""


@dataclass
class StageRecord:
    """One engine stage."""
    stage_name: str
    start_ts: float = 0.0
    end_ts: float = 0.0
    elapsed_ms: int = 0
    items: int = 0
    error_class: str = ""
    error_message: str = ""


# =============================================================================
# Trace context
# =============================================================================

@dataclass
class TraceContext:
    """Accumulates timing data for a single request."""
    trace_id: str
    request_start: float = field(default_factory=time.time)
    stages: List[StageRecord] = field(default_factory=list)
    fetches: List[FetchRecord] = field(default_factory=list)
    model_version: str = ""
    _current_stage: str = ""

    def record_stage(self, rec: StageRecord):
        rec.elapsed_ms = int((rec.end_ts - rec.start_ts) * 1000)
        self.stages.append(rec)
        status = "ERR" if rec.error_class else "OK"
        err_info = f" err={rec.error_class}: {rec.error_message}" if rec.error_class else ""
        logger.info(
            "  [stage] trace=%s %s %s %dms items=%d%s",
            self.trace_id,
            rec.stage_name,
            status,
            rec.elapsed_ms,
            rec.items,
            err_info,
        )

    def record_fetch(self, service: str, endpoint: str, elapsed_ms: int, status_code: int):
        rec = FetchRecord(
            service=service,
            endpoint=endpoint,
            elapsed_ms=elapsed_ms,
            status_code=status_code,
            stage=self._current_stage,
        )
        self.fetches.append(rec)
        logger.info(
            "  [fetch] trace=%s stage=%s svc=%s ep=%s ms=%d http=%d",
            self.trace_id,
            self._current_stage or "-",
            service,
            endpoint,
            elapsed_ms,
            status_code,
        )

    def summary_dict(self) -> Dict[str, Any]:
        total_elapsed = int((time.time() - self.request_start) * 1000)
        errored = [s for s in self.stages if s.error_class]
        completed = [s for s in self.stages if not s.error_class]

        if errored and not completed:
            outcome = "error"
        elif not self.stages:
            outcome = "empty"
        elif errored:
            outcome = "partial"
        else:
            outcome = "success"

        result = {
            "trace_id": self.trace_id,
            "total_elapsed_ms": total_elapsed,
            "total_fetches": len(self.fetches),
            "stages_completed": len(completed),
            "stages_errored": len(errored),
            "final_outcome": outcome,
            "stages": [
                {
                    "stage": s.stage_name,
                    "elapsed_ms": s.elapsed_ms,
                    "items": s.items,
                    "error": f"{s.error_class}: {s.error_message}" if s.error_class else None,
                }
                for s in self.stages
            ],
        }
        if self.model_version:
            result["model_version"] = self.model_version
        return result

    def log_summary(self):
        """Emit a single structured summary log line."""
        s = self.summary_dict()
        logger.info(
            "[trace-summary] trace=%s total_ms=%d fetches=%d completed=%d errored=%d outcome=%s",
            s["trace_id"],
            s["total_elapsed_ms"],
            s["total_fetches"],
            s["stages_completed"],
            s["stages_errored"],
            s["final_outcome"],
        )


# =============================================================================
# Thread-local storage
# =============================================================================

_trace_local = threading.local()


def get_trace() -> Optional[TraceContext]:
    """Get the current request's trace context, or None."""
    return getattr(_trace_local, "ctx", None)


def set_trace(ctx: Optional[TraceContext]):
    """Set the trace context for the current thread."""
    _trace_local.ctx = ctx


def clear_trace():
    """Clear the current trace context."""
    _trace_local.ctx = None


@contextmanager
def traced_stage(name: str):
    """Time a block as one stage of the current trace (no-op without a trace).

    Yields the StageRecord so the block can set ``items``.  Exceptions are
    recorded on the stage and re-raised.
    """
    rec = StageRecord(stage_name=name, start_ts=time.time())
    trace = get_trace()
    if trace is not None:
        trace._current_stage = name
    try:
        yield rec
    except Exception as e:
        rec.error_class = type(e).__name__
        rec.error_message = str(e)
        raise
    finally:
        rec.end_ts = time.time()
        if trace is not None:
            trace._current_stage = ""
            trace.record_stage(rec)
