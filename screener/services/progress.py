"""
Progress events emitted by long-running operations (index rebuild, export,
highlights). Each event knows its SSE event name and JSON payload; the
transport lives in screener.api.streaming.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union


def percent(processed: int, total: int) -> int:
    if total <= 0:
        return 100
    return round(processed / total * 100)


@dataclass
class StatusEvent:
    phase: str
    message: str
    total: Optional[int] = None

    event = "status"

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"phase": self.phase, "message": self.message}
        if self.total is not None:
            payload["total"] = self.total
        return payload


@dataclass
class FetchingEvent:
    page: int
    fetched: int

    event = "fetching"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "fetched": self.fetched,
            "message": f"Fetching page {self.page}... ({self.fetched} applications)",
        }


@dataclass
class ProgressEvent:
    processed: int
    total: int
    current: Optional[str] = None
    message: Optional[str] = None
    indexed: Optional[int] = None
    failed: Optional[int] = None

    event = "progress"

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "processed": self.processed,
            "total": self.total,
            "percent": percent(self.processed, self.total),
        }
        for key in ("indexed", "failed", "current", "message"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass
class BatchEvent:
    batch: int
    total_batches: int
    winners_found: int

    event = "batch"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "batch": self.batch,
            "totalBatches": self.total_batches,
            "winnersFound": self.winners_found,
            "message": (
                f"Batch {self.batch}/{self.total_batches}: "
                f"{self.winners_found} potential winners found"
            ),
        }


@dataclass
class CompleteEvent:
    result: Dict[str, Any] = field(default_factory=dict)

    event = "complete"

    def to_payload(self) -> Dict[str, Any]:
        return self.result


@dataclass
class ErrorEvent:
    message: str

    event = "error"

    def to_payload(self) -> Dict[str, Any]:
        return {"message": self.message}


ProgressUpdate = Union[StatusEvent, FetchingEvent, ProgressEvent, BatchEvent, CompleteEvent, ErrorEvent]
Emit = Callable[[ProgressUpdate], None]
