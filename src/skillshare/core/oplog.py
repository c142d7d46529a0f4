"""Operations log: append-only JSONL history of mutating commands."""

import json
import logging
from datetime import datetime
from pathlib import Path

from skillshare.config import settings
from skillshare.core.errors import InvalidInputError
from skillshare.core.files import now_iso
from skillshare.models import LogEntry

logger = logging.getLogger("skillshare.oplog")

LOG_FILES = {"ops": "operations.log", "audit": "audit.log"}


def _log_path(log_type: str) -> Path:
    if log_type not in LOG_FILES:
        raise InvalidInputError(f"invalid log type: {log_type}")
    return settings.logs_path / LOG_FILES[log_type]


def record(cmd: str, status: str = "ok", args: dict | None = None, msg: str = "", ms: int = 0, log_type: str = "ops") -> None:
    """Append one entry. Logging failures never fail the operation itself."""
    entry = LogEntry(ts=now_iso(), cmd=cmd, args=args or {}, status=status, msg=msg, ms=ms)
    path = _log_path(log_type)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(entry.model_dump_json(by_alias=True) + "\n")
    except OSError as e:
        logger.warning("Failed to write %s log: %s", log_type, e)


def _load(log_type: str) -> list[LogEntry]:
    path = _log_path(log_type)
    if not path.exists():
        return []
    entries = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            entries.append(LogEntry.model_validate(json.loads(line)))
        except ValueError:
            logger.debug("Skipping malformed log line")
    return entries


def read_log(
    log_type: str = "ops",
    limit: int = 100,
    cmd: str = "",
    status: str = "",
    since: str = "",
) -> dict:
    """Newest-first entries matching the filters, plus totals."""
    entries = _load(log_type)
    commands = sorted({e.cmd for e in entries})
    total_all = len(entries)

    since_dt = None
    if since:
        try:
            since_dt = datetime.fromisoformat(since)
        except ValueError as e:
            raise InvalidInputError(f"invalid 'since' timestamp: {since}") from e

    matched = []
    for entry in reversed(entries):
        if cmd and entry.cmd != cmd:
            continue
        if status and entry.status != status:
            continue
        if since_dt is not None:
            ts = datetime.fromisoformat(entry.ts)
            if (ts.tzinfo is None) != (since_dt.tzinfo is None):
                ts = ts.replace(tzinfo=since_dt.tzinfo)
            if ts < since_dt:
                continue
        matched.append(entry)

    return {
        "entries": [e.to_json_dict() for e in matched[: max(limit, 0) or None]],
        "total": len(matched),
        "totalAll": total_all,
        "commands": commands,
    }


def clear_log(log_type: str = "ops") -> None:
    _log_path(log_type).unlink(missing_ok=True)
