"""Per-run trace records and aggregate review metrics."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(slots=True)
class RunRecord:
    trace_id: str
    submission_id: str
    started_utc: str
    status: str = "processing"
    stage_latency_ms: dict[str, float] = field(default_factory=dict)
    agent_latency_ms: dict[str, float] = field(default_factory=dict)
    units_processed: int = 0
    units_total: int = 0
    error_kind: str | None = None
    latency_ms: float = 0.0


class TraceStore:
    """In-memory run storage for API-level observability."""

    def __init__(self) -> None:
        self._records: dict[str, RunRecord] = {}

    def start_run(self, submission_id: str) -> RunRecord:
        record = RunRecord(
            trace_id=str(uuid.uuid4()),
            submission_id=submission_id,
            started_utc=datetime.now(timezone.utc).isoformat(),
        )
        self._records[record.trace_id] = record
        return record

    def count(self) -> int:
        return len(self._records)

    def list_recent(self, limit: int = 20) -> list[RunRecord]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate core run metrics for dashboard display."""
        records = [record for record in self._records.values() if record.status != "processing"]
        total = len(records)
        if total == 0:
            return {
                "total_runs": 0,
                "completed_runs": 0,
                "failed_runs": 0,
                "failure_rate": 0.0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "total_units_processed": 0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        failed = sum(1 for record in records if record.status == "failed")

        return {
            "total_runs": total,
            "completed_runs": total - failed,
            "failed_runs": failed,
            "failure_rate": failed / total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "total_units_processed": sum(record.units_processed for record in records),
        }


class Timer:
    """Simple context timer used around review stages."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
