"""
In-memory call analytics.

Tracks per-call metrics (tool calls, transcripts, response and speech
counters, turn latency) for the monitoring API, and mirrors the headline
numbers into Prometheus metrics. Nothing is persisted; finished calls beyond
the retention limit are pruned oldest first.
"""

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

import structlog
from prometheus_client import Counter, Gauge, Histogram

logger = structlog.get_logger(__name__)

# -----------------------------------------------------------------------------
# Prometheus metrics (module scope, registered once)
# -----------------------------------------------------------------------------
_ACTIVE_CALLS = Gauge(
    "voicebridge_active_calls",
    "Calls with an open control channel or pending accept",
)
_CALLS_FINISHED = Counter(
    "voicebridge_calls_finished_total",
    "Finished calls by final status",
    labelnames=("status",),
)
_TOOL_CALLS = Counter(
    "voicebridge_tool_calls_total",
    "Tool invocations by tool and outcome",
    labelnames=("tool", "outcome"),
)
_RESPONSES = Counter(
    "voicebridge_responses_requested_total",
    "response.create messages sent, by request source",
    labelnames=("source",),
)
_BARGE_INS = Counter(
    "voicebridge_barge_ins_total",
    "Caller speech that cancelled assistant output",
)
_TURN_LATENCY = Histogram(
    "voicebridge_turn_latency_seconds",
    "Time from end of caller turn to first assistant output",
    buckets=(0.1, 0.2, 0.3, 0.5, 0.75, 1.0, 1.5, 2.0, 3.0, 5.0),
)

STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_TRANSFERRED = "transferred"

POSITIVE_WORDS = (
    "thank", "thanks", "great", "excellent", "perfect", "good", "appreciate",
    "wonderful", "amazing", "helpful", "yes",
)
NEGATIVE_WORDS = (
    "frustrated", "angry", "upset", "terrible", "bad", "horrible", "worst",
    "disappointed", "complaint", "problem", "issue", "no", "not working",
)


def analyze_sentiment(text: str) -> str:
    """Keyword sentiment: positive, negative or neutral (substring matches)."""
    lower = text.lower()
    positive = sum(1 for word in POSITIVE_WORDS if word in lower)
    negative = sum(1 for word in NEGATIVE_WORDS if word in lower)
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


@dataclass
class ToolCallMetric:
    name: str
    timestamp: float
    duration_ms: float
    success: bool
    args: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass
class TranscriptEntry:
    timestamp: float
    speaker: str  # "user" | "assistant"
    text: str
    sentiment: Optional[str] = None


@dataclass
class CallMetrics:
    call_id: str
    start_time: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    tool_calls: List[ToolCallMetric] = field(default_factory=list)
    transcripts: List[TranscriptEntry] = field(default_factory=list)
    response_count: int = 0
    user_speech_events: int = 0
    barge_in_events: int = 0
    latencies_ms: List[float] = field(default_factory=list)
    status: str = STATUS_ACTIVE
    transfer_reason: Optional[str] = None
    sentiment: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        duration = f"{int(self.duration)}s" if self.duration is not None else "ongoing"
        tools = ", ".join(t.name for t in self.tool_calls)
        return (
            f"Call {self.call_id[:8]}: {duration}, {len(self.transcripts)} messages, "
            f"tools: [{tools}], sentiment: {self.sentiment or 'unknown'}"
        )


class CallAnalytics:
    """Per-process analytics store; one instance owned by the application."""

    def __init__(
        self,
        retained_calls: int = 100,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.retained_calls = retained_calls
        self._clock = clock
        self._monotonic = monotonic
        self._calls: Dict[str, CallMetrics] = {}
        self._turn_started: Dict[str, float] = {}
        self._start_time = clock()
        self._totals = {
            "total_calls": 0,
            STATUS_COMPLETED: 0,
            STATUS_FAILED: 0,
            STATUS_TRANSFERRED: 0,
            "total_tool_calls": 0,
        }
        self._tool_calls_by_type: Dict[str, int] = {}

    # -- call lifecycle -------------------------------------------------------

    def start_call(self, call_id: str) -> CallMetrics:
        metrics = CallMetrics(call_id=call_id, start_time=self._clock())
        self._calls[call_id] = metrics
        self._totals["total_calls"] += 1
        _ACTIVE_CALLS.inc()
        return metrics

    def end_call(self, call_id: str, status: str = STATUS_COMPLETED) -> Optional[CallMetrics]:
        """Finalize a call. Ending an already finished or unknown call is a no-op."""
        metrics = self._calls.get(call_id)
        if metrics is None or metrics.status != STATUS_ACTIVE:
            return metrics

        metrics.end_time = self._clock()
        metrics.duration = metrics.end_time - metrics.start_time
        metrics.status = status
        self._turn_started.pop(call_id, None)
        if status in self._totals:
            self._totals[status] += 1
        _ACTIVE_CALLS.dec()
        _CALLS_FINISHED.labels(status=status).inc()
        self.cleanup()
        return metrics

    # -- recording ------------------------------------------------------------

    def record_tool_call(self, call_id: str, metric: ToolCallMetric) -> None:
        _TOOL_CALLS.labels(tool=metric.name, outcome="success" if metric.success else "error").inc()
        metrics = self._calls.get(call_id)
        if metrics is None:
            return
        metrics.tool_calls.append(metric)
        self._totals["total_tool_calls"] += 1
        self._tool_calls_by_type[metric.name] = self._tool_calls_by_type.get(metric.name, 0) + 1

    def record_transcript(self, call_id: str, speaker: str, text: str) -> Optional[TranscriptEntry]:
        metrics = self._calls.get(call_id)
        if metrics is None:
            return None
        entry = TranscriptEntry(timestamp=self._clock(), speaker=speaker, text=text)
        if speaker == "user":
            entry.sentiment = analyze_sentiment(text)
            metrics.sentiment = entry.sentiment
        metrics.transcripts.append(entry)
        return entry

    def record_response(self, call_id: str, source: str = "unknown") -> None:
        _RESPONSES.labels(source=source).inc()
        metrics = self._calls.get(call_id)
        if metrics is not None:
            metrics.response_count += 1

    def record_speech_event(self, call_id: str) -> None:
        metrics = self._calls.get(call_id)
        if metrics is not None:
            metrics.user_speech_events += 1

    def record_barge_in(self, call_id: str) -> None:
        _BARGE_INS.inc()
        metrics = self._calls.get(call_id)
        if metrics is not None:
            metrics.barge_in_events += 1

    def set_call_metadata(self, call_id: str, key: str, value: Any) -> None:
        metrics = self._calls.get(call_id)
        if metrics is not None:
            metrics.metadata[key] = value

    def set_transfer_reason(self, call_id: str, reason: str) -> None:
        metrics = self._calls.get(call_id)
        if metrics is not None:
            metrics.transfer_reason = reason

    def mark_user_turn_start(self, call_id: str) -> None:
        if call_id in self._calls:
            self._turn_started[call_id] = self._monotonic()

    def mark_assistant_response(self, call_id: str) -> Optional[float]:
        """
        Close an open turn and return its latency in milliseconds.

        Returns None when no caller turn is pending, so only the first
        assistant output after a turn is measured.
        """
        started = self._turn_started.pop(call_id, None)
        if started is None:
            return None
        latency_ms = (self._monotonic() - started) * 1000.0
        metrics = self._calls.get(call_id)
        if metrics is not None:
            metrics.latencies_ms.append(latency_ms)
        _TURN_LATENCY.observe(latency_ms / 1000.0)
        return latency_ms

    # -- queries --------------------------------------------------------------

    def get_call_metrics(self, call_id: str) -> Optional[CallMetrics]:
        return self._calls.get(call_id)

    def get_active_calls(self) -> List[CallMetrics]:
        return [m for m in self._calls.values() if m.status == STATUS_ACTIVE]

    def get_recent_calls(self, limit: int = 10) -> List[CallMetrics]:
        ordered = sorted(self._calls.values(), key=lambda m: m.start_time, reverse=True)
        return ordered[:max(limit, 0)]

    def get_call_transcript(self, call_id: str) -> List[TranscriptEntry]:
        metrics = self._calls.get(call_id)
        return list(metrics.transcripts) if metrics else []

    def get_system_stats(self) -> Dict[str, Any]:
        finished = [m.duration for m in self._calls.values() if m.duration is not None]
        latencies = [value for m in self._calls.values() for value in m.latencies_ms]
        now = self._clock()
        return {
            "total_calls": self._totals["total_calls"],
            "active_calls": len(self.get_active_calls()),
            "completed_calls": self._totals[STATUS_COMPLETED],
            "failed_calls": self._totals[STATUS_FAILED],
            "transferred_calls": self._totals[STATUS_TRANSFERRED],
            "average_call_duration": (sum(finished) / len(finished)) if finished else 0.0,
            "average_latency_ms": (sum(latencies) / len(latencies)) if latencies else 0.0,
            "total_tool_calls": self._totals["total_tool_calls"],
            "tool_calls_by_type": dict(self._tool_calls_by_type),
            "uptime": now - self._start_time,
            "start_time": self._start_time,
        }

    def cleanup(self) -> int:
        """Drop finished calls beyond the retention limit. Returns number removed."""
        finished = sorted(
            (m for m in self._calls.values() if m.status != STATUS_ACTIVE),
            key=lambda m: m.start_time,
            reverse=True,
        )
        stale = finished[self.retained_calls:]
        for metrics in stale:
            del self._calls[metrics.call_id]
        if stale:
            logger.debug("Pruned finished calls", removed=len(stale))
        return len(stale)
