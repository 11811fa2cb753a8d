"""
JobScheduler: time-to-enqueue bindings for the JobQueue.

- One-shot entries enqueue a single job at a given time
- Recurring entries enqueue a fresh job every interval, bounded by
  max_runs and/or end_at
- Callback entries run a plain action at a given time (used for retries)
- Entries may wait on other jobs (dependencies) before firing

A single tick loop checks for due entries; there is one timer per scheduler,
not one per entry.

What JobScheduler MUST NOT do:
- Execute jobs or touch job status (JobQueue's responsibility)
- Decide retry policy (RetryController's responsibility)
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from .config import QueueConfig
from .entities import (
    Job,
    JobStatus,
    JobSpec,
    ScheduledEntry,
    ScheduleKind,
    generate_job_id,
    now_utc,
)
from .errors import InvalidOperationError, QueueFullError, ScheduleValidationError
from .job_queue import JobQueue


logger = logging.getLogger(__name__)


class DependencyState:
    READY = "ready"
    WAITING = "waiting"
    FAILED = "failed"


class JobScheduler:
    """
    Holds scheduled entries keyed by a caller-chosen key.

    Scheduling an existing key replaces the previous entry, so each logical
    schedule has at most one live entry.
    """

    def __init__(self, queue: JobQueue, config: Optional[QueueConfig] = None):
        self.queue = queue
        self.config = config or queue.config
        self._entries: dict[str, ScheduledEntry] = {}
        self._tick_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the tick loop. Entries added while stopped fire once started."""
        if self._running:
            return

        self._running = True
        self._tick_task = asyncio.create_task(self._tick_loop())
        logger.info(
            f"[JobScheduler] Started (tick={self.config.scheduler_tick}s, entries={len(self._entries)})"
        )

    async def stop(self) -> None:
        """Stop the tick loop. Entries are kept."""
        self._running = False

        if self._tick_task:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None

        logger.info("[JobScheduler] Stopped")

    async def _tick_loop(self) -> None:
        while self._running:
            try:
                self.process_due_entries()
                await asyncio.sleep(self.config.scheduler_tick)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[JobScheduler] Tick error: {e}")
                await asyncio.sleep(self.config.scheduler_tick)

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_once(
        self,
        key: str,
        run_at: datetime,
        spec: JobSpec,
        dependencies: Optional[list[str]] = None,
    ) -> str:
        """
        Enqueue one job built from ``spec`` at ``run_at``.

        The job id is fixed now, so callers can poll or cancel it before it fires.

        Returns:
            The id the job will have once enqueued

        Raises:
            ScheduleValidationError: If the entry depends on itself
        """
        operation_id = spec.context.operation_id if spec.context else None
        entry = ScheduledEntry(
            key=key,
            kind=ScheduleKind.ONCE,
            next_run_at=run_at,
            spec=spec,
            dependencies=list(dependencies or []),
            job_id=generate_job_id(spec.name, operation_id),
        )
        self._add_entry(entry)
        return entry.job_id

    def schedule_in(
        self,
        key: str,
        delay: float,
        spec: JobSpec,
        dependencies: Optional[list[str]] = None,
    ) -> str:
        """Like schedule_once, with a delay in seconds from now."""
        return self.schedule_once(
            key, now_utc() + timedelta(seconds=max(0.0, delay)), spec, dependencies
        )

    def schedule_recurring(
        self,
        key: str,
        first_run_at: datetime,
        interval: float,
        spec: JobSpec,
        max_runs: Optional[int] = None,
        end_at: Optional[datetime] = None,
        dependencies: Optional[list[str]] = None,
    ) -> str:
        """
        Enqueue a fresh job from ``spec`` every ``interval`` seconds.

        Returns:
            The entry key

        Raises:
            ScheduleValidationError: On a too-short interval, a max_runs
                below 1 or a self-dependency
        """
        entry = ScheduledEntry(
            key=key,
            kind=ScheduleKind.RECURRING,
            next_run_at=first_run_at,
            spec=spec,
            interval=interval,
            max_runs=max_runs,
            remaining_runs=max_runs,
            end_at=end_at,
            dependencies=list(dependencies or []),
        )
        self._add_entry(entry)
        return key

    def schedule_callback(self, key: str, delay: float, action: Callable[[], Any]) -> str:
        """Run ``action`` once, ``delay`` seconds from now."""
        entry = ScheduledEntry(
            key=key,
            kind=ScheduleKind.ONCE,
            next_run_at=now_utc() + timedelta(seconds=max(0.0, delay)),
            action=action,
        )
        self._add_entry(entry)
        return key

    def _add_entry(self, entry: ScheduledEntry) -> None:
        self._validate(entry)
        self._record_completed_dependencies(entry)

        if entry.key in self._entries:
            logger.info(f"[JobScheduler] Replacing scheduled entry {entry.key}")
        self._entries[entry.key] = entry

        logger.info(
            f"[JobScheduler] Scheduled {entry.kind.value} entry {entry.key} "
            f"({entry.name}) at {entry.next_run_at.isoformat()}"
        )

    def _validate(self, entry: ScheduledEntry) -> None:
        errors: list[str] = []
        now = now_utc()

        if entry.kind == ScheduleKind.RECURRING:
            if entry.interval is None or entry.interval < self.config.min_schedule_interval:
                errors.append(
                    f"Interval must be at least {self.config.min_schedule_interval}s"
                )
            if entry.max_runs is not None and entry.max_runs < 1:
                errors.append("Max runs must be at least 1")
            if entry.end_at is not None and entry.end_at <= now:
                logger.warning(f"[JobScheduler] End time for {entry.key} is in the past")

        if entry.key in entry.dependencies or (
            entry.job_id is not None and entry.job_id in entry.dependencies
        ):
            errors.append("Job cannot depend on itself")

        if entry.spec is not None and entry.next_run_at < now - timedelta(seconds=1):
            logger.warning(f"[JobScheduler] Scheduled time for {entry.key} is in the past")

        if errors:
            raise ScheduleValidationError(errors)

    # =========================================================================
    # Cancellation and inspection
    # =========================================================================

    def cancel_scheduled_job(self, key: str) -> bool:
        """Remove an entry. Returns False if the key is unknown."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        logger.info(f"[JobScheduler] Cancelled scheduled entry {key}")
        return True

    def key_for_job(self, job_id: str) -> Optional[str]:
        """Key of the one-shot entry that will enqueue ``job_id``, if any."""
        for entry in self._entries.values():
            if entry.job_id == job_id:
                return entry.key
        return None

    def set_entry_enabled(self, key: str, enabled: bool) -> bool:
        """Pause or resume an entry without losing its schedule."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        entry.enabled = enabled
        logger.info(f"[JobScheduler] Entry {key} {'enabled' if enabled else 'disabled'}")
        return True

    def get_entry(self, key: str) -> Optional[ScheduledEntry]:
        return self._entries.get(key)

    def list_entries(self) -> list[ScheduledEntry]:
        """All entries, soonest first."""
        return sorted(self._entries.values(), key=lambda e: (e.next_run_at, e.created_at))

    def __len__(self) -> int:
        return len(self._entries)

    # =========================================================================
    # Firing
    # =========================================================================

    def process_due_entries(self, now: Optional[datetime] = None) -> int:
        """
        Fire every enabled entry whose time has come.

        Higher-priority entries fire first when several are due together.

        Returns:
            Number of entries fired
        """
        now = now or now_utc()
        for entry in self._entries.values():
            if entry.dependencies:
                self._record_completed_dependencies(entry)

        due = [
            entry
            for entry in self._entries.values()
            if entry.enabled and entry.next_run_at <= now
        ]
        due.sort(
            key=lambda e: (e.spec.priority.weight if e.spec else 0, e.next_run_at, e.created_at)
        )

        fired = 0
        for entry in due:
            # A callback fired earlier in this pass may have replaced or removed it
            if self._entries.get(entry.key) is not entry:
                continue

            if entry.end_at is not None and now > entry.end_at:
                self._entries.pop(entry.key, None)
                logger.info(f"[JobScheduler] Entry {entry.key} passed its end time, removed")
                continue

            state = self._dependency_state(entry)
            if state == DependencyState.WAITING:
                continue
            if state == DependencyState.FAILED:
                self._entries.pop(entry.key, None)
                logger.error(
                    f"[JobScheduler] Dropped {entry.key}: a dependency failed "
                    f"({', '.join(entry.dependencies)})"
                )
                continue

            if self._fire(entry, now):
                fired += 1

        return fired

    def _record_completed_dependencies(self, entry: ScheduledEntry) -> None:
        """Remember completed dependencies so later eviction from the queue cannot fail them."""
        for dependency in entry.dependencies:
            if dependency in entry.satisfied_dependencies:
                continue
            job = self.queue.get_job_status(dependency)
            if job is not None and job.status == JobStatus.COMPLETED:
                entry.satisfied_dependencies.add(dependency)

    def _dependency_state(self, entry: ScheduledEntry) -> str:
        state = DependencyState.READY
        for dependency in entry.dependencies:
            if dependency in entry.satisfied_dependencies:
                continue
            if self.key_for_job(dependency) is not None:
                state = DependencyState.WAITING
                continue

            job = self.queue.get_job_status(dependency)
            if job is None:
                return DependencyState.FAILED
            if job.status in (JobStatus.PENDING, JobStatus.RUNNING):
                state = DependencyState.WAITING
            elif job.status.is_failure and job.next_retry_at is not None:
                state = DependencyState.WAITING
            elif job.status != JobStatus.COMPLETED:
                return DependencyState.FAILED
        return state

    def _fire(self, entry: ScheduledEntry, now: datetime) -> bool:
        if entry.action is not None:
            self._entries.pop(entry.key, None)
            try:
                entry.action()
            except Exception:
                logger.exception(f"[JobScheduler] Scheduled action {entry.key} failed")
            return True

        # Recurring entries get a fresh id per run
        job = Job.create(entry.spec, job_id=entry.job_id)

        try:
            self.queue.enqueue(job)
        except QueueFullError as e:
            # Entry stays due and is tried again on the next tick
            logger.warning(f"[JobScheduler] Could not enqueue {job.id}: {e}")
            return False
        except InvalidOperationError as e:
            self._entries.pop(entry.key, None)
            logger.error(f"[JobScheduler] Dropped {entry.key}: {e}")
            return False

        entry.run_count += 1
        entry.last_run_at = now
        entry.last_job_id = job.id

        if entry.kind == ScheduleKind.ONCE:
            self._entries.pop(entry.key, None)
            return True

        if entry.remaining_runs is not None:
            entry.remaining_runs -= 1
            if entry.remaining_runs <= 0:
                self._entries.pop(entry.key, None)
                logger.info(
                    f"[JobScheduler] Recurring entry {entry.key} finished after {entry.run_count} runs"
                )
                return True

        next_run_at = entry.next_run_at + timedelta(seconds=entry.interval)
        if next_run_at <= now:
            next_run_at = now + timedelta(seconds=entry.interval)
        entry.next_run_at = next_run_at

        if entry.end_at is not None and entry.next_run_at > entry.end_at:
            self._entries.pop(entry.key, None)
            logger.info(f"[JobScheduler] Recurring entry {entry.key} reached its end time")

        return True
