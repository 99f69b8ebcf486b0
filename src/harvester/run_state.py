"""
Harvester observability: live run state and persisted run history.
"""
import json
import logging
import threading
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Callable, Optional

from src.knowledge.models import utc_now
from src.storage.blob_store import BlobStore

log = logging.getLogger(__name__)

RUN_HISTORY_BLOB = "harvester-run-history"
MAX_RUN_HISTORY_RECORDS = 100


class WorkerState(str, Enum):
    IDLE = "idle"
    INITIALIZING_STORAGE = "initializing_storage"
    RUNNING = "running"
    DISABLED = "disabled"


@dataclass
class RunState:
    """Process-lifetime view of the harvester; not persisted."""
    is_running: bool = False
    is_configured: bool = False
    worker_state: WorkerState = WorkerState.IDLE
    last_harvest_time: Optional[str] = None
    next_scheduled_harvest: Optional[str] = None
    harvest_interval_seconds: float = 6 * 3600

    total_tickets_processed: int = 0
    total_solutions_harvested: int = 0
    total_tickets_skipped: int = 0
    total_tickets_no_solution: int = 0

    last_run_tickets_found: int = 0
    last_run_new_solutions: int = 0
    last_run_skipped: int = 0
    last_run_no_solution: int = 0
    last_run_duration_seconds: Optional[float] = None
    last_run_success: bool = False
    last_run_error: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["worker_state"] = self.worker_state.value
        return data


class RunStateHolder:
    """
    Owner of a RunState.

    All mutation goes through apply(); readers get an independent copy.
    """

    def __init__(self, state: Optional[RunState] = None):
        self._state = state or RunState()
        self._lock = threading.Lock()

    def apply(self, mutator: Callable[[RunState], None]) -> None:
        with self._lock:
            mutator(self._state)

    def snapshot(self) -> RunState:
        with self._lock:
            return replace(self._state)


@dataclass
class HarvesterRunRecord:
    timestamp: str
    tickets_found: int = 0
    new_solutions: int = 0
    skipped: int = 0
    no_solution: int = 0
    duration_seconds: float = 0.0
    success: bool = True
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "HarvesterRunRecord":
        def num(key, cast):
            try:
                return cast(data.get(key) or 0)
            except (TypeError, ValueError):
                return cast(0)

        error = data.get("error_message")
        return cls(
            timestamp=data.get("timestamp") if isinstance(data.get("timestamp"), str) else "",
            tickets_found=num("tickets_found", int),
            new_solutions=num("new_solutions", int),
            skipped=num("skipped", int),
            no_solution=num("no_solution", int),
            duration_seconds=num("duration_seconds", float),
            success=data.get("success") is True,
            error_message=error if isinstance(error, str) else None,
        )

    @classmethod
    def now(cls, **kwargs) -> "HarvesterRunRecord":
        return cls(timestamp=utc_now(), **kwargs)


class RunHistory:
    """Append-only run log, newest first, capped to the most recent records."""

    def __init__(self, blobs: BlobStore, max_records: int = MAX_RUN_HISTORY_RECORDS):
        self.blobs = blobs
        self.max_records = max_records
        self._lock = threading.Lock()

    def list(self) -> list[HarvesterRunRecord]:
        """Stored records, newest first. Never raises."""
        try:
            content = self.blobs.load_blob(RUN_HISTORY_BLOB)
        except Exception as e:
            log.warning("Failed to load run history: %s", e)
            return []
        if not content:
            return []

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            log.warning("Run history is not valid JSON, treating as empty: %s", e)
            return []
        if not isinstance(data, list):
            return []
        return [HarvesterRunRecord.from_dict(r) for r in data if isinstance(r, dict)]

    def record(self, run: HarvesterRunRecord) -> None:
        with self._lock:
            history = [run] + self.list()
            history = history[:self.max_records]
            self.blobs.save_blob(RUN_HISTORY_BLOB, json.dumps([r.to_dict() for r in history]))
        log.debug("Recorded harvester run: %d new solutions", run.new_solutions)
