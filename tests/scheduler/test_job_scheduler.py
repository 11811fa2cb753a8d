"""
Tests for JobScheduler.

Most tests drive ``process_due_entries(now)`` directly with explicit times
so firing is deterministic; the last class exercises the tick loop.
"""

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from src.scheduler import (
    JobContext,
    JobPriority,
    JobQueue,
    JobScheduler,
    JobStatus,
    QueueConfig,
    ScheduleKind,
    ScheduleValidationError,
)
from src.scheduler.entities import now_utc

from .calculators import RecordingCalculator


@pytest.fixture
def queue(fast_config) -> JobQueue:
    """Queue that is never started, so fired jobs stay PENDING."""
    return JobQueue(fast_config)


@pytest.fixture
def scheduler(queue, fast_config) -> JobScheduler:
    return JobScheduler(queue, fast_config)


def _set_status(queue: JobQueue, job_id: str, status: JobStatus) -> None:
    queue.get_job(job_id).status = status


class TestOneShot:
    def test_fires_only_when_due(self, scheduler, queue, make_spec):
        t0 = now_utc() + timedelta(seconds=30)
        job_id = scheduler.schedule_once("once", t0, make_spec(name="season-statistics-calculation"))

        assert scheduler.process_due_entries(t0 - timedelta(seconds=1)) == 0
        assert queue.get_job_status(job_id) is None

        assert scheduler.process_due_entries(t0) == 1
        job = queue.get_job_status(job_id)
        assert job.status == JobStatus.PENDING
        assert job.name == "season-statistics-calculation"
        assert scheduler.get_entry("once") is None

    def test_job_id_is_known_before_firing(self, scheduler, make_spec):
        job_id = scheduler.schedule_in("once", 60, make_spec(name="team-ranking-update"))

        assert job_id.startswith("team-ranking-update-")
        assert scheduler.key_for_job(job_id) == "once"

    def test_same_key_replaces_entry(self, scheduler, make_spec):
        scheduler.schedule_in("key", 60, make_spec(name="first"))
        scheduler.schedule_in("key", 60, make_spec(name="second"))

        assert len(scheduler) == 1
        assert scheduler.get_entry("key").name == "second"

    def test_cancel_scheduled_entry(self, scheduler, queue, make_spec):
        job_id = scheduler.schedule_in("once", 0, make_spec())

        assert scheduler.cancel_scheduled_job("once") is True
        assert scheduler.cancel_scheduled_job("once") is False
        assert scheduler.process_due_entries(now_utc() + timedelta(seconds=1)) == 0
        assert queue.get_job_status(job_id) is None

    def test_higher_priority_fires_first(self, scheduler, queue, make_spec):
        t0 = now_utc()
        scheduler.schedule_once("low", t0, make_spec(name="low", priority=JobPriority.LOW))
        scheduler.schedule_once("high", t0, make_spec(name="high", priority=JobPriority.HIGH))

        scheduler.process_due_entries(t0)

        assert [job.name for job in queue.list_jobs()][::-1] == ["high", "low"]

    def test_queue_full_keeps_entry_for_next_tick(self, fast_config, make_spec):
        queue = JobQueue(QueueConfig(max_queue_size=1, cleanup_interval=0))
        scheduler = JobScheduler(queue, fast_config)
        queue.submit(make_spec())
        t0 = now_utc()
        scheduler.schedule_once("blocked", t0, make_spec())

        assert scheduler.process_due_entries(t0) == 0
        assert scheduler.get_entry("blocked") is not None


class TestRecurring:
    def test_max_runs_fires_exactly_that_many_times(self, scheduler, queue, make_spec):
        t0 = now_utc()
        scheduler.schedule_recurring(
            "recurring", t0, 60, make_spec(name="league-statistics-calculation"), max_runs=2
        )

        assert scheduler.process_due_entries(t0) == 1
        assert scheduler.get_entry("recurring").remaining_runs == 1
        assert scheduler.process_due_entries(t0 + timedelta(seconds=60)) == 1
        assert scheduler.get_entry("recurring") is None
        assert scheduler.process_due_entries(t0 + timedelta(seconds=120)) == 0

        jobs = queue.list_jobs(name_prefix="league-statistics-calculation")
        assert len(jobs) == 2
        assert len({job.id for job in jobs}) == 2

    def test_next_run_advances_by_interval(self, scheduler, make_spec):
        t0 = now_utc()
        scheduler.schedule_recurring("recurring", t0, 60, make_spec())

        scheduler.process_due_entries(t0 + timedelta(seconds=5))

        entry = scheduler.get_entry("recurring")
        assert entry.next_run_at == t0 + timedelta(seconds=60)
        assert entry.run_count == 1
        assert entry.kind == ScheduleKind.RECURRING

    def test_missed_runs_are_not_replayed(self, scheduler, queue, make_spec):
        t0 = now_utc()
        scheduler.schedule_recurring("recurring", t0, 60, make_spec())
        late = t0 + timedelta(seconds=200)

        assert scheduler.process_due_entries(late) == 1
        assert scheduler.get_entry("recurring").next_run_at == late + timedelta(seconds=60)
        assert len(queue.list_jobs()) == 1

    def test_recurring_job_ids_carry_operation_id(self, scheduler, queue, make_spec):
        context = JobContext(
            content_type="liga", operation="calculate", operation_id="liga-stats-1700000000000"
        )
        spec = replace(make_spec(name="league-statistics-calculation"), context=context)
        t0 = now_utc()
        scheduler.schedule_recurring("recurring", t0, 60, spec, max_runs=2)

        scheduler.process_due_entries(t0)
        scheduler.process_due_entries(t0 + timedelta(seconds=60))

        jobs = queue.list_jobs()
        assert len(jobs) == 2
        for job in jobs:
            assert job.id.startswith("league-statistics-calculation-liga-stats-1700000000000-")
            assert queue.get_job(job.id).context is context

    def test_end_at_stops_entry(self, scheduler, make_spec):
        t0 = now_utc()
        scheduler.schedule_recurring(
            "recurring", t0, 60, make_spec(), end_at=t0 + timedelta(seconds=90)
        )

        scheduler.process_due_entries(t0)
        assert scheduler.get_entry("recurring") is not None

        scheduler.process_due_entries(t0 + timedelta(seconds=60))
        assert scheduler.get_entry("recurring") is None

    def test_entry_past_end_is_removed_without_firing(self, scheduler, queue, make_spec):
        t0 = now_utc()
        scheduler.schedule_recurring(
            "recurring", t0, 60, make_spec(), end_at=t0 + timedelta(seconds=1)
        )

        assert scheduler.process_due_entries(t0 + timedelta(seconds=5)) == 0
        assert scheduler.get_entry("recurring") is None
        assert queue.list_jobs() == []

    def test_disabled_entry_does_not_fire(self, scheduler, make_spec):
        t0 = now_utc()
        scheduler.schedule_recurring("recurring", t0, 60, make_spec())

        assert scheduler.set_entry_enabled("recurring", False) is True
        assert scheduler.process_due_entries(t0) == 0

        scheduler.set_entry_enabled("recurring", True)
        assert scheduler.process_due_entries(t0) == 1

        assert scheduler.set_entry_enabled("missing", True) is False


class TestValidation:
    def test_interval_below_minimum(self, queue, make_spec):
        scheduler = JobScheduler(queue, QueueConfig(min_schedule_interval=1.0))

        with pytest.raises(ScheduleValidationError) as exc_info:
            scheduler.schedule_recurring("r", now_utc(), 0.5, make_spec())

        assert exc_info.value.errors == ["Interval must be at least 1.0s"]
        assert len(scheduler) == 0

    def test_max_runs_below_one(self, scheduler, make_spec):
        with pytest.raises(ScheduleValidationError) as exc_info:
            scheduler.schedule_recurring("r", now_utc(), 60, make_spec(), max_runs=0)

        assert "Max runs must be at least 1" in exc_info.value.errors

    def test_self_dependency(self, scheduler, make_spec):
        with pytest.raises(ScheduleValidationError) as exc_info:
            scheduler.schedule_in("self", 1, make_spec(), dependencies=["self"])

        assert exc_info.value.errors == ["Job cannot depend on itself"]

    def test_past_time_is_accepted(self, scheduler, make_spec):
        scheduler.schedule_once("past", now_utc() - timedelta(minutes=5), make_spec())

        assert scheduler.get_entry("past") is not None


class TestDependencies:
    def test_waits_for_dependency_to_complete(self, scheduler, queue, make_spec):
        t0 = now_utc()
        first_id = scheduler.schedule_once("first", t0, make_spec(name="first"))
        second_id = scheduler.schedule_once(
            "second", t0, make_spec(name="second"), dependencies=[first_id]
        )

        assert scheduler.process_due_entries(t0) == 1
        assert queue.get_job_status(first_id) is not None
        assert queue.get_job_status(second_id) is None

        _set_status(queue, first_id, JobStatus.COMPLETED)
        assert scheduler.process_due_entries(t0) == 1
        assert queue.get_job_status(second_id) is not None

    def test_failed_dependency_drops_entry(self, scheduler, queue, make_spec):
        dependency = queue.submit(make_spec())
        _set_status(queue, dependency, JobStatus.FAILED)
        scheduler.schedule_in("dependent", 0, make_spec(), dependencies=[dependency])

        assert scheduler.process_due_entries(now_utc() + timedelta(seconds=1)) == 0
        assert scheduler.get_entry("dependent") is None

    def test_dependency_awaiting_retry_still_waits(self, scheduler, queue, make_spec):
        dependency = queue.submit(make_spec())
        _set_status(queue, dependency, JobStatus.TIMEOUT)
        queue.mark_retry_scheduled(dependency, now_utc() + timedelta(seconds=5))
        scheduler.schedule_in("dependent", 0, make_spec(), dependencies=[dependency])

        assert scheduler.process_due_entries(now_utc() + timedelta(seconds=1)) == 0
        assert scheduler.get_entry("dependent") is not None

    def test_completed_dependency_survives_eviction(self, scheduler, queue, make_spec):
        dependency = queue.submit(make_spec())
        _set_status(queue, dependency, JobStatus.COMPLETED)
        queue.get_job(dependency).completed_at = now_utc()
        t0 = now_utc() + timedelta(seconds=30)
        scheduler.schedule_recurring(
            "dependent", t0, 60, make_spec(name="dependent"), dependencies=[dependency]
        )

        # Completion is noted on the tick before the entry is due
        assert scheduler.process_due_entries(t0 - timedelta(seconds=10)) == 0
        assert queue.cleanup(max_age=0) == 1
        assert queue.get_job_status(dependency) is None

        assert scheduler.process_due_entries(t0) == 1
        assert scheduler.process_due_entries(t0 + timedelta(seconds=60)) == 1
        assert len(queue.list_jobs(name_prefix="dependent")) == 2

    def test_unknown_dependency_drops_entry(self, scheduler, make_spec):
        scheduler.schedule_in("dependent", 0, make_spec(), dependencies=["no-such-job"])

        scheduler.process_due_entries(now_utc() + timedelta(seconds=1))

        assert scheduler.get_entry("dependent") is None


class TestCallbacks:
    def test_callback_runs_once(self, scheduler):
        calls = []
        scheduler.schedule_callback("cb", 0, lambda: calls.append(1))

        assert scheduler.process_due_entries(now_utc() + timedelta(seconds=1)) == 1
        assert scheduler.process_due_entries(now_utc() + timedelta(seconds=2)) == 0
        assert calls == [1]

    def test_raising_callback_is_removed(self, scheduler):
        def broken():
            raise RuntimeError("boom")

        scheduler.schedule_callback("cb", 0, broken)
        scheduler.process_due_entries(now_utc() + timedelta(seconds=1))

        assert scheduler.get_entry("cb") is None


class TestTickLoop:
    @pytest.mark.asyncio
    async def test_delayed_job_runs(self, service, running, wait_for_status, make_spec):
        calculator = RecordingCalculator(result="late")

        async with running(service):
            job_id = service.scheduler.schedule_in("delayed", 0.02, make_spec(calculator))
            job = await wait_for_status(service, job_id, [JobStatus.COMPLETED])

        assert job.result == "late"
        assert service.scheduler.get_entry("delayed") is None

    @pytest.mark.asyncio
    async def test_recurring_with_max_runs_fires_twice(self, service, running, make_spec):
        calculator = RecordingCalculator()

        async with running(service):
            service.scheduler.schedule_recurring(
                "recurring", now_utc(), 0.05, make_spec(calculator, name="recurring-job"), max_runs=2
            )
            for _ in range(100):
                if service.scheduler.get_entry("recurring") is None:
                    break
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.05)

        assert service.scheduler.get_entry("recurring") is None
        assert len(calculator.calls) == 2
        assert len(service.queue.list_jobs(name_prefix="recurring-job")) == 2

    @pytest.mark.asyncio
    async def test_service_cancel_removes_pending_entry(self, service, running, make_spec):
        calculator = RecordingCalculator()

        async with running(service):
            job_id = service.scheduler.schedule_in("later", 60, make_spec(calculator))

            assert service.cancel_job(job_id) is True
            assert service.scheduler.get_entry("later") is None
            assert service.cancel_job(job_id) is False

        assert calculator.calls == []
