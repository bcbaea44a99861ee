"""
AccessRisk Ingest Normalizer
------------------------------
Converts raw access-log records into LogEvent, the pipeline's input type.

Supported shapes:
  normalize_log_record(record)          - one dict (API payloads, queue messages)
  iter_jsonl_events(lines, diagnostics) - JSON lines, one object per line
  iter_csv_events(lines, diagnostics)   - CSV with a header row
  load_events(path, fmt, diagnostics)   - file on disk, format from extension

Field aliases (first non-empty wins):
  timestamp    timestamp, ts, time, @timestamp, event_time
  user_id      user_id, user, username, principal
  resource_id  resource_id, resource, path, uri
  status       status, outcome, result
  source_ip    source_ip, ip, client_ip, src_ip

Lines that are not valid JSON / not an object are counted as
records_unreadable. Records that parse but lack a user or resource still
become LogEvents so the aggregator can count them as dropped_missing_field.
"""

import csv
import json
import re
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

import structlog

from accessrisk.services.shared.models import Diagnostics, EventStatus, LogEvent

logger = structlog.get_logger()

_TIMESTAMP_KEYS = ("timestamp", "ts", "time", "@timestamp", "event_time")
_USER_KEYS      = ("user_id", "user", "username", "principal")
_RESOURCE_KEYS  = ("resource_id", "resource", "path", "uri")
_STATUS_KEYS    = ("status", "outcome", "result")
_IP_KEYS        = ("source_ip", "ip", "client_ip", "src_ip")

_EPOCH_RE = re.compile(r"^-?\d+(\.\d+)?$")


# ── Helpers ───────────────────────────────────────────────────────────────────

def _first(record: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for k in keys:
        value = record.get(k)
        if value is not None and value != "":
            return value
    return None


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_timestamp(value: Any) -> Any:
    """Epoch seconds often arrive as strings (CSV); everything else passes through."""
    if isinstance(value, str) and _EPOCH_RE.match(value.strip()):
        return float(value.strip())
    return value


def _normalize_status(value: Any) -> str:
    text = _as_text(value)
    if text is None:
        return EventStatus.ok.value
    upper = text.upper()
    if upper in (EventStatus.ok.value, EventStatus.failed.value):
        return upper
    return text


# ── Record normalizer ─────────────────────────────────────────────────────────

def normalize_log_record(record: Mapping[str, Any]) -> LogEvent | None:
    """Map one raw record onto LogEvent. Returns None if it is not a mapping."""
    if not isinstance(record, Mapping):
        return None
    return LogEvent(
        timestamp=_coerce_timestamp(_first(record, _TIMESTAMP_KEYS)),
        user_id=_as_text(_first(record, _USER_KEYS)),
        resource_id=_as_text(_first(record, _RESOURCE_KEYS)),
        status=_normalize_status(_first(record, _STATUS_KEYS)),
        source_ip=_as_text(_first(record, _IP_KEYS)),
    )


def normalize_records(
    records: Iterable[Any],
    diagnostics: Diagnostics | None = None,
) -> list[LogEvent]:
    diag = diagnostics if diagnostics is not None else Diagnostics()
    events: list[LogEvent] = []
    for raw in records:
        ev = normalize_log_record(raw)
        if ev is None:
            diag.records_unreadable += 1
            continue
        events.append(ev)
    return events


# ── Line formats ──────────────────────────────────────────────────────────────

def iter_jsonl_events(
    lines: Iterable[str],
    diagnostics: Diagnostics | None = None,
) -> Iterator[LogEvent]:
    diag = diagnostics if diagnostics is not None else Diagnostics()
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            diag.records_unreadable += 1
            logger.debug("jsonl_line_unreadable", line=lineno, error=str(exc))
            continue
        ev = normalize_log_record(record)
        if ev is None:
            diag.records_unreadable += 1
            logger.debug("jsonl_line_not_object", line=lineno)
            continue
        yield ev


def iter_csv_events(
    lines: Iterable[str],
    diagnostics: Diagnostics | None = None,
) -> Iterator[LogEvent]:
    diag = diagnostics if diagnostics is not None else Diagnostics()
    reader = csv.DictReader(lines)
    for row in reader:
        if None in row:
            # more cells than header columns
            diag.records_unreadable += 1
            logger.debug("csv_row_unreadable", line=reader.line_num)
            continue
        yield normalize_log_record(row)


def detect_format(path: Path) -> str:
    return "csv" if path.suffix.lower() == ".csv" else "jsonl"


def load_events(
    path: str | Path,
    fmt: str = "auto",
    diagnostics: Diagnostics | None = None,
) -> list[LogEvent]:
    """Read a whole window from disk."""
    p = Path(path)
    kind = detect_format(p) if fmt == "auto" else fmt
    if kind not in ("jsonl", "csv"):
        raise ValueError(f"unsupported input format: {fmt!r}")

    diag = diagnostics if diagnostics is not None else Diagnostics()
    with p.open("r", encoding="utf-8", newline="") as fh:
        if kind == "csv":
            events = list(iter_csv_events(fh, diag))
        else:
            events = list(iter_jsonl_events(fh, diag))

    logger.info(
        "events_loaded",
        path=str(p),
        format=kind,
        events=len(events),
        unreadable=diag.records_unreadable,
    )
    return events
