"""JSON audit trail of console commands.

Each mutating command appends one entry recording who ran it, with which
arguments, how long it took and whether it succeeded. Credentials passed as
arguments are masked before they reach the file.
"""
from __future__ import annotations

import json
import threading
from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime, time
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, TypeVar

from stores import PersistenceError

T = TypeVar("T")

MASKED_ARGUMENTS = frozenset({"password", "new_password"})
MASK = "***"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _json_value(value: object) -> object:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_json_value(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def sanitize_arguments(arguments: Mapping[str, object]) -> Dict[str, object]:
    """Drop unset values, mask credentials and make the rest JSON-safe."""

    cleaned: Dict[str, object] = {}
    for name, value in sorted(arguments.items()):
        if value is None:
            continue
        cleaned[name] = MASK if name in MASKED_ARGUMENTS else _json_value(value)
    return cleaned


@dataclass
class AuditEntry:
    task: str
    status: str
    started_at: str
    completed_at: str
    duration_ms: int
    user: Optional[str] = None
    arguments: Dict[str, object] = field(default_factory=dict)
    message: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class AuditLogger:
    """Appends audit entries to a JSON list file."""

    def __init__(self, log_path: Path) -> None:
        self._log_path = Path(log_path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._log_path

    def record(self, entry: AuditEntry) -> None:
        with self._lock:
            history = self.entries()
            history.append(entry.to_dict())
            serialized = json.dumps(history, indent=2)
            try:
                self._log_path.parent.mkdir(parents=True, exist_ok=True)
                self._log_path.write_text(f"{serialized}\n", encoding="utf-8")
            except OSError as exc:
                raise PersistenceError(f"Failed to write audit log {self._log_path}: {exc}") from exc

    def entries(
        self, *, user: Optional[str] = None, task: Optional[str] = None
    ) -> List[Dict[str, object]]:
        """Return logged entries, oldest first, optionally filtered by user or task."""

        if not self._log_path.exists():
            return []
        raw_content = self._log_path.read_text(encoding="utf-8").strip()
        if not raw_content:
            return []
        try:
            data = json.loads(raw_content)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Audit log is corrupted and cannot be parsed: {exc.msg}") from exc
        if not isinstance(data, list):
            raise ValueError("Audit log must contain a JSON list of entries.")
        return [
            item
            for item in data
            if isinstance(item, dict)
            and (user is None or item.get("user") == user)
            and (task is None or item.get("task") == task)
        ]


def execute_with_audit(
    task_name: str,
    action: Callable[[], T],
    audit: AuditLogger,
    *,
    user: Optional[str] = None,
    arguments: Optional[Mapping[str, object]] = None,
) -> T:
    """Run ``action`` and record its success or failure."""

    start_time = _utc_now()
    status = "success"
    message: Optional[str] = None
    error_type: Optional[str] = None
    try:
        return action()
    except Exception as exc:
        status = "failed"
        message = str(exc)
        error_type = type(exc).__name__
        raise
    finally:
        completed_at = _utc_now()
        audit.record(
            AuditEntry(
                task=task_name,
                status=status,
                started_at=_format_timestamp(start_time),
                completed_at=_format_timestamp(completed_at),
                duration_ms=int((completed_at - start_time).total_seconds() * 1000),
                user=user,
                arguments=sanitize_arguments(arguments or {}),
                message=message,
                error_type=error_type,
            )
        )
