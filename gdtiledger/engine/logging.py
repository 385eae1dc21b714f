"""
GDTI Ledger Audit Log — append-only JSONL trail of transitions and ledger calls.

Layout:
    {log_dir}/documents/execution/{YYYY-MM-DD}.jsonl   — one line per CREATE/UPDATE/DELETE
    {log_dir}/ledger/execution/{YYYY-MM-DD}.jsonl      — one line per estimate/submit
    {log_dir}/system/execution/{YYYY-MM-DD}.jsonl      — CLI startup and shutdown, service wiring

Request paths never touch the disk: they push entries onto AsyncLogQueue, and a
single background thread appends them in batches. Ordinary diagnostics still go
through the stdlib `logging` module; this trail is what an auditor reads.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, Iterator, List, NamedTuple, Optional

logger = logging.getLogger("gdtiledger.engine.logging")

OBJECT_TYPE_CATEGORIES = {
    "documents": ["execution"],
    "ledger": ["execution"],
    "system": ["execution"],
}


class LogEntry(NamedTuple):
    """One audit line and the file it belongs in."""

    object_type: str
    category: str
    data: Dict[str, Any]

    def to_json(self) -> str:
        return json.dumps(self.data, separators=(",", ":"), default=str)


class FileLogger:
    """
    Appends LogEntry lines to {log_dir}/{object_type}/{category}/{day}.jsonl.

    A new file starts each day. Writes are serialized by one lock, so direct
    writes and the flush thread can share an instance.
    """

    def __init__(self, log_dir: str = ".gdti/logs"):
        self._log_dir = Path(log_dir)
        self._lock = threading.Lock()
        for object_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for category in categories:
                (self._log_dir / object_type / category).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def _resolve_path(self, object_type: str, category: str, day: Optional[date] = None) -> Path:
        folder = self._log_dir / object_type / category
        folder.mkdir(parents=True, exist_ok=True)
        return folder / f"{(day or date.today()).isoformat()}.jsonl"

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        """Append entries, opening each target file once. Per-file order is kept."""
        lines_by_path: Dict[Path, List[str]] = {}
        for entry in entries:
            path = self._resolve_path(entry.object_type, entry.category)
            lines_by_path.setdefault(path, []).append(entry.to_json())

        with self._lock:
            for path, lines in lines_by_path.items():
                with open(path, "a", encoding="utf-8") as f:
                    f.write("\n".join(lines) + "\n")

    def read_today(self, object_type: str, category: str) -> List[Dict[str, Any]]:
        """Today's entries for one object type and category, oldest first."""
        path = self._resolve_path(object_type, category)
        if not path.exists():
            return []
        try:
            return list(_parse_lines(path))
        except OSError as e:
            logger.warning(f"Cannot read audit log {path}: {e}")
            return []


def _parse_lines(path: Path) -> Iterator[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            raw = raw.strip()
            if not raw:
                continue
            try:
                yield json.loads(raw)
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed audit line in {path}")


class AsyncLogQueue:
    """
    Bounded in-memory buffer in front of a FileLogger.

    push() never blocks; when the buffer is full the entry is counted and
    dropped. The flush thread wakes at least every flush_interval_ms and writes
    at most flush_batch_size entries per batch. stop() drains what is left.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._file_logger = file_logger
        self._interval = flush_interval_ms / 1000.0
        self._batch_size = max(1, flush_batch_size)
        self._buffer: Queue = Queue(maxsize=max_queue_size)
        self._stopping = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._dropped = 0

    @property
    def pending_count(self) -> int:
        return self._buffer.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._stopping.clear()
        self._worker = threading.Thread(target=self._run, name="gdti-log-flush", daemon=True)
        self._worker.start()
        logger.debug("Audit log flush thread started")

    def stop(self, timeout: float = 5.0) -> None:
        self._stopping.set()
        if self._worker is not None:
            self._worker.join(timeout=timeout)
            self._worker = None
        while self._buffer.qsize():
            self._flush(self._take(first_wait=0))
        if self._dropped:
            logger.warning(f"Audit log stopped; {self._dropped} entries were dropped")

    def push(self, entry: LogEntry) -> bool:
        """Queue `entry`. False if the buffer was full and the entry was dropped."""
        try:
            self._buffer.put_nowait(entry)
        except Full:
            self._dropped += 1
            return False
        return True

    def _run(self) -> None:
        while not self._stopping.is_set():
            self._flush(self._take(first_wait=self._interval))

    def _take(self, first_wait: float) -> List[LogEntry]:
        """Wait up to `first_wait` for one entry, then grab whatever else is ready."""
        try:
            first = self._buffer.get(timeout=first_wait) if first_wait else self._buffer.get_nowait()
        except Empty:
            return []
        batch = [first]
        while len(batch) < self._batch_size:
            try:
                batch.append(self._buffer.get_nowait())
            except Empty:
                break
        return batch

    def _flush(self, batch: List[LogEntry]) -> None:
        if not batch:
            return
        try:
            self._file_logger.write_batch(batch)
        except OSError as e:
            logger.error(f"Audit log write failed, {len(batch)} entries lost: {e}")


# ---------------------------------------------------------------------------
# Entry builders
# ---------------------------------------------------------------------------

def _base_entry(event: str, level: str, **fields: Any) -> Dict[str, Any]:
    """Timestamped entry; fields that are None or empty are left out."""
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    entry.update({k: v for k, v in fields.items() if v is not None and v != ""})
    return entry


def _transition_level(outcome: str) -> str:
    return {"ok": "INFO", "conflict": "WARNING"}.get(outcome, "ERROR")


def log_transition(
    operation: str,
    gdti_number: str,
    outcome: str,
    execution_id: Optional[str] = None,
    account: Optional[str] = None,
    version: Optional[int] = None,
    tx_ref: Optional[str] = None,
    content_hash: Optional[str] = None,
    duration_ms: Optional[float] = None,
    reason: Optional[str] = None,
) -> LogEntry:
    """One CREATE, UPDATE or DELETE attempt and how it ended (ok, conflict, error)."""
    data = _base_entry(
        f"document_{operation}",
        _transition_level(outcome),
        gdti_number=gdti_number,
        execution_id=execution_id,
        account=account,
        operation=operation,
        outcome=outcome,
        version=version,
        tx_ref=tx_ref,
        content_hash=content_hash,
        duration_ms=None if duration_ms is None else round(duration_ms, 2),
        reason=reason,
    )
    return LogEntry("documents", "execution", data)


def log_ledger_call(
    call: str,
    operation: str,
    success: bool,
    duration_ms: float,
    gdti_number: Optional[str] = None,
    execution_id: Optional[str] = None,
    account: Optional[str] = None,
    contract_address: Optional[str] = None,
    cost: Optional[int] = None,
    tx_ref: Optional[str] = None,
    error: Optional[str] = None,
) -> LogEntry:
    data = _base_entry(
        f"ledger_{call}",
        "INFO" if success else "ERROR",
        gdti_number=gdti_number,
        execution_id=execution_id,
        account=account,
        operation=operation,
        success=success,
        duration_ms=round(duration_ms, 2),
        contract_address=contract_address,
        cost=cost,
        tx_ref=tx_ref,
        error=error,
    )
    return LogEntry("ledger", "execution", data)


def log_system_event(event: str, level: str = "INFO", details: Optional[Dict[str, Any]] = None) -> LogEntry:
    return LogEntry("system", "execution", _base_entry(event, level, details=details or None))


# ---------------------------------------------------------------------------
# Process-wide queue
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(log_dir: str = "logs", **queue_options: Any) -> AsyncLogQueue:
    """
    Start the process-wide audit queue writing under `log_dir`.

    queue_options are passed to AsyncLogQueue (flush_interval_ms,
    flush_batch_size, max_queue_size). A queue left over from an earlier
    call is stopped and drained first.
    """
    global _global_queue
    if _global_queue is not None:
        _global_queue.stop()
    _global_queue = AsyncLogQueue(FileLogger(log_dir=log_dir), **queue_options)
    _global_queue.start()
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push to the process-wide queue. False when it was never started."""
    if _global_queue is None:
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    global _global_queue
    queue, _global_queue = _global_queue, None
    if queue is not None:
        queue.stop()
