"""In-process telemetry: a bounded event log plus job counters.

Counters are rendered in the Prometheus text exposition format.
"""

import logging
import time
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

METRIC_PREFIX = "quotecast"
ENCODE_TIME_BUCKETS = (0.1, 0.5, 1, 2.5, 5, 10, 30, 60)


@dataclass(frozen=True)
class TelemetryEvent:
    event: str
    timestamp: datetime
    monotonic: float
    duration_ms: float | None = None
    metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
            "metadata": self.metadata,
        }


def _prometheus_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


class TelemetryRecorder:
    def __init__(self, capacity: int = 1000):
        self._events: deque[TelemetryEvent] = deque(maxlen=capacity)
        self.jobs_succeeded = 0
        self.jobs_failed: Counter[str] = Counter()
        self.cache_hits = 0
        self.encode_time_sum = 0.0
        self.encode_time_count = 0
        self._encode_buckets = [0] * len(ENCODE_TIME_BUCKETS)

    def record(
        self,
        event: str,
        metadata: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> TelemetryEvent:
        entry = TelemetryEvent(
            event=event,
            timestamp=datetime.now(timezone.utc),
            monotonic=time.monotonic(),
            duration_ms=duration_ms,
            metadata=metadata,
        )
        self._events.append(entry)
        self._update_counters(entry)

        if duration_ms is not None:
            logger.info(f"[TELEMETRY] {event} ({duration_ms:.0f}ms) {metadata or ''}")
        else:
            logger.info(f"[TELEMETRY] {event} {metadata or ''}")
        return entry

    def _update_counters(self, entry: TelemetryEvent) -> None:
        if entry.event == "job_complete":
            self.jobs_succeeded += 1
        elif entry.event == "job_error":
            kind = (entry.metadata or {}).get("error", "INTERNAL_ERROR")
            self.jobs_failed[kind] += 1
        elif entry.event == "cache_hit":
            self.cache_hits += 1
        elif entry.event == "render_complete" and entry.duration_ms is not None:
            seconds = entry.duration_ms / 1000
            self.encode_time_sum += seconds
            self.encode_time_count += 1
            for i, bound in enumerate(ENCODE_TIME_BUCKETS):
                if seconds <= bound:
                    self._encode_buckets[i] += 1

    def recent(self, limit: int = 20) -> list[TelemetryEvent]:
        if limit <= 0:
            return []
        return list(self._events)[-limit:]

    def events(self, name: str | None = None) -> list[TelemetryEvent]:
        if name is None:
            return list(self._events)
        return [e for e in self._events if e.event == name]

    def __len__(self) -> int:
        return len(self._events)

    def render_prometheus(self, queue: dict[str, int] | None = None) -> str:
        p = METRIC_PREFIX
        lines = [
            f"# HELP {p}_jobs_succeeded_total Total number of successful video jobs",
            f"# TYPE {p}_jobs_succeeded_total counter",
            f"{p}_jobs_succeeded_total {self.jobs_succeeded}",
            f"# HELP {p}_jobs_failed_total Total number of failed video jobs by error kind",
            f"# TYPE {p}_jobs_failed_total counter",
        ]
        for kind, count in sorted(self.jobs_failed.items()):
            lines.append(f'{p}_jobs_failed_total{{reason="{_prometheus_escape(kind)}"}} {count}')

        lines += [
            f"# HELP {p}_cache_hits_total Persist requests served from the artifact cache",
            f"# TYPE {p}_cache_hits_total counter",
            f"{p}_cache_hits_total {self.cache_hits}",
            f"# HELP {p}_encode_time_seconds Video encoding time in seconds",
            f"# TYPE {p}_encode_time_seconds histogram",
        ]
        for bound, count in zip(ENCODE_TIME_BUCKETS, self._encode_buckets):
            lines.append(f'{p}_encode_time_seconds_bucket{{le="{bound}"}} {count}')
        lines += [
            f'{p}_encode_time_seconds_bucket{{le="+Inf"}} {self.encode_time_count}',
            f"{p}_encode_time_seconds_sum {self.encode_time_sum:.3f}",
            f"{p}_encode_time_seconds_count {self.encode_time_count}",
        ]

        if queue is not None:
            lines += [
                f"# HELP {p}_queue_running Number of running video jobs",
                f"# TYPE {p}_queue_running gauge",
                f"{p}_queue_running {queue.get('running', 0)}",
                f"# HELP {p}_queue_waiting Number of queued video jobs",
                f"# TYPE {p}_queue_waiting gauge",
                f"{p}_queue_waiting {queue.get('queued', 0)}",
            ]
        return "\n".join(lines) + "\n"
