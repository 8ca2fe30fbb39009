"""Per-call audit trail for the PDF vision tools.

Every tool call produces exactly one JSON line naming the tool, the source label,
the requested page/index and how the call ended. Lines go to stderr and, when
configured, are appended to a JSONL file. Full paths, inline PDF bytes and
credentials never appear; path sources are reported by sanitized file name.
"""

from __future__ import annotations

import json
import sys
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .errors import VisionError
from .sources import describe_source, parse_source

# Codes that mean the call was refused before any PDF or provider work.
REJECTED_CODES = frozenset({"InvalidArgument", "Config"})


def new_correlation_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class ToolCallRecord:
    """One finished tool call."""

    timestamp: str
    correlation_id: str
    tool: str
    source: str
    page: int | None
    index: int | None
    outcome: str
    code: str | None = None
    reason: str | None = None
    cache: str | None = None
    duration_ms: int | None = None

    def to_json(self) -> str:
        payload = {k: v for k, v in asdict(self).items() if v is not None}
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class AuditSink:
    """Writes records to stderr and optionally appends them to a JSONL file."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path

    def write(self, record: ToolCallRecord) -> None:
        line = record.to_json()
        print(line, file=sys.stderr)
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError:  # pragma: no cover
            # The file sink is best-effort; stderr already has the record.
            return


def _source_label(arguments: dict[str, Any]) -> str:
    try:
        return describe_source(parse_source(arguments.get("source")))
    except VisionError:
        return "<unknown>"


def _int_arg(arguments: dict[str, Any], name: str) -> int | None:
    value = arguments.get(name)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


class ToolCallAudit:
    """Tracks a single tool call and writes its record when it ends.

    The clock starts only once the runtime is available, so calls rejected
    for configuration reasons carry no duration.
    """

    def __init__(self, tool: str, arguments: dict[str, Any]) -> None:
        self.correlation_id = new_correlation_id()
        self.tool = tool
        self.source = _source_label(arguments)
        self.page = _int_arg(arguments, "page")
        self.index = _int_arg(arguments, "index")
        self._sink = AuditSink()
        self._started: float | None = None
        self._written = False

    def start(self, sink: AuditSink) -> None:
        self._sink = sink
        self._started = time.monotonic()

    def _elapsed_ms(self) -> int | None:
        if self._started is None:
            return None
        return int((time.monotonic() - self._started) * 1000)

    def _finish(self, outcome: str, **fields: Any) -> ToolCallRecord:
        record = ToolCallRecord(
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            correlation_id=self.correlation_id,
            tool=self.tool,
            source=self.source,
            page=self.page,
            index=self.index,
            outcome=outcome,
            duration_ms=self._elapsed_ms(),
            **fields,
        )
        if not self._written:
            self._written = True
            self._sink.write(record)
        return record

    def succeeded(self, *, cache: str | None = None) -> ToolCallRecord:
        return self._finish("succeeded", cache=cache)

    def errored(self, err: VisionError) -> ToolCallRecord:
        outcome = "rejected" if err.code in REJECTED_CODES else "failed"
        return self._finish(outcome, code=err.code, reason=err.message)

    def crashed(self) -> ToolCallRecord:
        return self._finish("failed", code="Internal", reason="Internal error")
