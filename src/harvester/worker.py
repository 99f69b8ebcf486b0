"""
Background harvester: turns resolved tickets into searchable solutions.

Cycle: fetch -> filter processed -> extract -> embed -> persist -> reload.
The worker runs in a daemon thread; stop() sets an event that is checked at
loop entry, between tickets and during every wait.
"""
import logging
import threading
import time
from datetime import UTC, datetime, timedelta
from threading import Thread
from typing import Optional

import httpx
import openai

from src.harvester.extraction import SolutionDraft, SolutionExtractor
from src.harvester.run_state import HarvesterRunRecord, RunHistory, RunStateHolder, WorkerState
from src.harvester.ticket_source import Issue, TicketSource
from src.knowledge.models import Solution, utc_now
from src.knowledge.solution_index import SolutionIndex
from src.retrieval.embedding_service import EmbeddingService
from src.shared.errors import AppErrors, StorageInitError, format_jira_error, format_openai_error
from src.shared.settings import Settings
from src.storage.collections import SolutionStore

log = logging.getLogger(__name__)


def _describe_error(error: Exception) -> str:
    if isinstance(error, httpx.HTTPError):
        return format_jira_error(error)
    if isinstance(error, openai.APIError):
        return format_openai_error(error)
    return str(error) or error.__class__.__name__


class HarvesterWorker:
    """
    Periodic solution harvester.

    States: idle -> initializing_storage -> running -> idle (on stop), or
    disabled after the storage-initialization retry budget is spent.
    Disabled is terminal for the life of the process.
    """

    def __init__(
        self,
        settings: Settings,
        source: TicketSource,
        extractor: SolutionExtractor,
        store: SolutionStore,
        index: SolutionIndex,
        state: RunStateHolder,
        history: RunHistory,
        embedder: Optional[EmbeddingService] = None,
    ):
        self.settings = settings
        self.source = source
        self.extractor = extractor
        self.store = store
        self.index = index
        self.state = state
        self.history = history
        self.embedder = embedder

        self._stop = threading.Event()
        self._thread: Optional[Thread] = None
        self._processed: Optional[set[str]] = None
        self._reload_pending = False

        state.apply(self._configure_state)

    def _configure_state(self, s) -> None:
        s.is_configured = self.source.is_configured
        s.harvest_interval_seconds = self.settings.harvest_interval_seconds

    # --- lifecycle ---

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_alive:
            return
        self._stop.clear()
        self._thread = Thread(target=self._run, name="solution-harvester", daemon=True)
        self._thread.start()
        log.info("Harvester started (interval %.1fh)", self.settings.harvest_interval_hours)

    def stop(self, timeout: float | None = 10.0) -> None:
        """Request shutdown and wait for the current ticket to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                log.warning("Harvester did not stop within %.1fs", timeout)

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def _run(self) -> None:
        def started(s):
            s.is_running = True
            s.worker_state = WorkerState.IDLE

        self.state.apply(started)
        try:
            if self._stop.wait(self.settings.harvest_initial_delay_seconds):
                return

            try:
                self._initialize_storage()
            except StorageInitError as e:
                log.error("Harvesting disabled: %s", e)

                def disabled(s):
                    s.is_running = False
                    s.worker_state = WorkerState.DISABLED
                    s.last_run_success = False
                    s.last_run_error = str(e)

                self.state.apply(disabled)
                return

            if self._stop.is_set():
                return

            self.state.apply(lambda s: setattr(s, "worker_state", WorkerState.RUNNING))
            while not self._stop.is_set():
                self.run_cycle()
                next_run = datetime.now(UTC) + timedelta(seconds=self.settings.harvest_interval_seconds)
                self.state.apply(lambda s: setattr(s, "next_scheduled_harvest", next_run.isoformat()))
                if self._stop.wait(self.settings.harvest_interval_seconds):
                    break
        finally:
            def finished(s):
                if s.worker_state != WorkerState.DISABLED:
                    s.worker_state = WorkerState.IDLE
                s.is_running = False

            self.state.apply(finished)
            log.info("Harvester stopped")

    def _initialize_storage(self) -> None:
        """
        Initialize the solution store and load the processed-ticket set.

        Raises:
            StorageInitError: After storage_init_attempts consecutive failures
        """
        self.state.apply(lambda s: setattr(s, "worker_state", WorkerState.INITIALIZING_STORAGE))
        attempts = max(1, self.settings.storage_init_attempts)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                self.store.initialize()
                self._processed = self.store.load_processed_ids()
                log.info("Storage initialized, %d tickets already processed", len(self._processed))
                return
            except Exception as e:
                last_error = e
                log.warning("Storage initialization attempt %d/%d failed: %s", attempt, attempts, e)

            if attempt < attempts and self._stop.wait(self.settings.storage_init_backoff_seconds * attempt):
                log.info("Stop requested during storage initialization")
                return

        raise StorageInitError(f"{AppErrors.STORAGE_UNAVAILABLE} Last error: {last_error}")

    # --- cycle ---

    def run_cycle(self) -> HarvesterRunRecord:
        """Run one harvest cycle. Never raises; failures produce a failed run record."""
        started = time.monotonic()
        try:
            record = self._harvest(started)
        except Exception as e:
            log.exception("Harvest cycle failed")
            error = _describe_error(e)
            record = HarvesterRunRecord.now(
                duration_seconds=time.monotonic() - started,
                success=False,
                error_message=error,
            )

            def failed(s):
                s.last_run_success = False
                s.last_run_error = error
                s.last_run_duration_seconds = record.duration_seconds

            self.state.apply(failed)

        try:
            self.history.record(record)
        except Exception as e:
            log.warning("Failed to record harvester run: %s", e)
        return record

    def _harvest(self, started: float) -> HarvesterRunRecord:
        if self._processed is None:
            self._processed = self.store.load_processed_ids()

        issues = self._fetch()
        log.info("Found %d resolved tickets", len(issues))

        new_solutions: list[Solution] = []
        seen: set[str] = set()
        skipped = 0
        no_solution = 0
        embedded_any = False

        for issue in issues:
            if self._stop.is_set():
                log.info("Stop requested, ending cycle early")
                break
            if issue.key in self._processed or issue.key in seen:
                skipped += 1
                continue

            seen.add(issue.key)
            solution, embedded = self._process(issue, wait_first=embedded_any)
            embedded_any = embedded_any or embedded
            if solution is None:
                no_solution += 1
            else:
                new_solutions.append(solution)

        if new_solutions:
            self._reload_pending = True
        added = self.store.merge(new_solutions) if new_solutions else 0
        processed = self._processed | seen
        self.store.save_processed_ids(processed)
        self._processed = processed

        reload_error = self._reload_if_pending()

        duration = time.monotonic() - started
        record = HarvesterRunRecord.now(
            tickets_found=len(issues),
            new_solutions=added,
            skipped=skipped,
            no_solution=no_solution,
            duration_seconds=duration,
            success=reload_error is None,
            error_message=reload_error,
        )

        def completed(s):
            s.last_harvest_time = record.timestamp
            s.last_run_tickets_found = record.tickets_found
            s.last_run_new_solutions = record.new_solutions
            s.last_run_skipped = record.skipped
            s.last_run_no_solution = record.no_solution
            s.last_run_duration_seconds = duration
            s.last_run_success = record.success
            s.last_run_error = reload_error
            s.total_tickets_processed += len(seen)
            s.total_solutions_harvested += record.new_solutions
            s.total_tickets_skipped += record.skipped
            s.total_tickets_no_solution += record.no_solution

        self.state.apply(completed)
        log.info(
            "Harvest complete: %d new, %d skipped, %d without solution (%.1fs)",
            added, skipped, no_solution, duration,
        )
        return record

    def _reload_if_pending(self) -> Optional[str]:
        """
        Reload the live index after solutions were persisted.

        The pending flag survives a failed reload, so the next cycle retries
        even when it finds nothing new.

        Returns:
            Error message when the reload failed, else None
        """
        if not self._reload_pending:
            return None
        try:
            self.index.reload()
        except Exception as e:
            log.exception("Index reload failed; persisted solutions are not searchable yet")
            return f"Index reload failed: {_describe_error(e)}"
        self._reload_pending = False
        return None

    def _fetch(self) -> list[Issue]:
        if not self.source.is_configured:
            log.info("Nothing to harvest: %s", AppErrors.JIRA_NOT_CONFIGURED)
            return []
        return self.source.get_resolved_issues(
            lookback_days=self.settings.harvest_lookback_days,
            project_keys=self.settings.harvest_project_keys or None,
            max_results=self.settings.harvest_max_tickets,
        )

    def _process(self, issue: Issue, wait_first: bool) -> tuple[Optional[Solution], bool]:
        """
        Extract and embed one ticket.

        Returns:
            (solution or None, whether an embedding call was made)
        """
        try:
            draft = self.extractor.extract(issue)
        except Exception as e:
            log.warning("Extraction failed for %s: %s", issue.key, _describe_error(e))
            return None, False
        if draft is None:
            return None, False

        solution = self._to_solution(issue, draft)
        if self.embedder is None or not self.embedder.is_configured:
            return solution, False

        if wait_first and self.settings.embedding_delay_seconds > 0:
            self._stop.wait(self.settings.embedding_delay_seconds)
        try:
            solution.embedding = self.embedder.embed(solution.searchable_text())
        except Exception as e:
            log.warning("Embedding failed for %s: %s", issue.key, format_openai_error(e))
            return None, True
        return solution, True

    def _to_solution(self, issue: Issue, draft: SolutionDraft) -> Solution:
        base_url = (self.settings.jira_base_url or "").rstrip("/")
        return Solution(
            ticket_id=issue.key,
            ticket_title=issue.summary,
            problem=draft.problem,
            root_cause=draft.root_cause,
            solution=draft.solution,
            steps=draft.steps,
            system=draft.system,
            category=draft.category,
            keywords=draft.keywords,
            priority=draft.priority,
            resolved_at=issue.resolved or utc_now(),
            harvested_at=utc_now(),
            source_url=f"{base_url}/browse/{issue.key}" if base_url else "",
        )
