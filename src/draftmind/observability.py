"""Lightweight in-process observability helpers for completion calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)


@dataclass
class CallSummary:
    """Aggregated latency and token usage for one operation."""

    count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0


class _CallRecorder:
    def __init__(self) -> None:
        self._lock = Lock()
        self._stats: dict[str, CallSummary] = {}

    def record(
        self,
        *,
        operation: str,
        duration_ms: float,
        ok: bool,
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> None:
        normalized = max(float(duration_ms), 0.0)
        with self._lock:
            summary = self._stats.setdefault(operation, CallSummary())
            summary.count += 1
            if not ok:
                summary.error_count += 1
            summary.total_ms += normalized
            summary.max_ms = max(summary.max_ms, normalized)
            summary.input_tokens += max(int(input_tokens), 0)
            summary.output_tokens += max(int(output_tokens), 0)

        logger.info(
            "call operation=%s duration_ms=%.3f ok=%s input_tokens=%d output_tokens=%d",
            operation,
            normalized,
            ok,
            input_tokens,
            output_tokens,
        )

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                operation: {
                    "count": summary.count,
                    "error_count": summary.error_count,
                    "avg_ms": round(
                        summary.total_ms / summary.count if summary.count else 0.0,
                        3,
                    ),
                    "max_ms": round(summary.max_ms, 3),
                    "input_tokens": summary.input_tokens,
                    "output_tokens": summary.output_tokens,
                }
                for operation, summary in sorted(self._stats.items())
            }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()


_RECORDER = _CallRecorder()


def record_call(
    *,
    operation: str,
    duration_ms: float,
    ok: bool = True,
    input_tokens: int = 0,
    output_tokens: int = 0,
) -> None:
    """Record one completion (or tool) call sample."""
    _RECORDER.record(
        operation=operation,
        duration_ms=duration_ms,
        ok=ok,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


def call_metrics_snapshot() -> dict[str, dict[str, float | int]]:
    """Return current in-process call aggregates."""
    return _RECORDER.snapshot()


def reset_call_metrics() -> None:
    """Clear all call aggregates (test helper)."""
    _RECORDER.reset()
