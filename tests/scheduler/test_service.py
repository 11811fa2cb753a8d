"""
Tests for JobService wiring and the process-wide singleton.
"""

import asyncio
from dataclasses import replace

import pytest

from src.scheduler import (
    JobService,
    JobStatus,
    QueueConfig,
    RetryController,
    TransientJobError,
    get_job_service,
    init_job_service,
    reset_job_service,
    shutdown_job_service,
)

from .calculators import GatedCalculator, RecordingCalculator


class TestJobServiceLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, service):
        assert service.is_running is False

        await service.start()
        assert service.is_running is True
        assert service.scheduler.is_running is True

        await service.stop(timeout=0.5)
        assert service.is_running is False
        assert service.scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_restart_runs_jobs_left_pending(
        self, service, running, wait_for_status, make_spec
    ):
        job_id = service.submit(make_spec(RecordingCalculator(result=1)))

        async with running(service):
            job = await wait_for_status(service, job_id, [JobStatus.COMPLETED])

        assert job.result == 1

    def test_failed_jobs_routed_to_retry_controller(self, service):
        assert service.queue._on_job_failed == service.retry_controller.on_job_failed


class TestJobServiceCancel:
    @pytest.mark.asyncio
    async def test_cancel_running_job(self, service, running, wait_for_status, make_spec):
        gate = GatedCalculator([])

        async with running(service):
            job_id = service.submit(make_spec(gate))
            await wait_for_status(service, job_id, [JobStatus.RUNNING], settled=False)

            assert service.cancel_job(job_id) is True
            gate.release.set()

        assert service.get_job_status(job_id).status == JobStatus.CANCELLED

    def test_cancel_by_entry_key(self, service, make_spec):
        service.scheduler.schedule_in("season-key", 60, make_spec())

        assert service.cancel_job("season-key") is True
        assert len(service.scheduler) == 0

    def test_cancel_unknown(self, service):
        assert service.cancel_job("missing") is False

    @pytest.mark.asyncio
    async def test_cancel_job_awaiting_retry(self, fast_config, running, make_spec):
        """A failed job waiting for its backoff is cancelled and never re-runs."""
        service = JobService.create(replace(fast_config, retry_base_delay=0.1))
        calculator = RecordingCalculator(errors=[TransientJobError("busy")])

        async with running(service):
            job_id = service.submit(make_spec(calculator, max_retries=2))
            for _ in range(100):
                if service.get_job_status(job_id).next_retry_at is not None:
                    break
                await asyncio.sleep(0.005)

            assert service.cancel_job(job_id) is True
            assert service.scheduler.get_entry(RetryController.retry_key(job_id)) is None

            # Past the original backoff
            await asyncio.sleep(0.25)
            job = service.get_job_status(job_id)

        assert job.status == JobStatus.CANCELLED
        assert job.next_retry_at is None
        assert job.retry_count == 0
        assert len(calculator.calls) == 1
        assert service.cancel_job(job_id) is False


class TestSingleton:
    def test_init_returns_same_instance(self, fast_config):
        first = init_job_service(fast_config)
        second = init_job_service(QueueConfig(max_workers=9))

        assert first is second
        assert get_job_service() is first
        assert first.config.max_workers == fast_config.max_workers

    def test_get_creates_from_environment(self, monkeypatch):
        monkeypatch.setenv("JOB_QUEUE_MAX_WORKERS", "5")
        reset_job_service()

        service = get_job_service()

        assert isinstance(service, JobService)
        assert service.config.max_workers == 5

    @pytest.mark.asyncio
    async def test_shutdown_drops_instance(self, fast_config):
        service = init_job_service(fast_config)
        await service.start()

        await shutdown_job_service(timeout=0.5)

        assert service.is_running is False
        assert get_job_service() is not service


class TestQueueConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("JOB_QUEUE_MAX_SIZE", "7")
        monkeypatch.setenv("JOB_RETRY_BASE_DELAY_SECONDS", "0.25")
        monkeypatch.setenv("BATCH_SUCCESS_THRESHOLD", "0.75")

        config = QueueConfig.from_env()

        assert config.max_queue_size == 7
        assert config.retry_base_delay == 0.25
        assert config.batch_success_threshold == 0.75
        assert config.max_workers == 3

    def test_defaults(self):
        config = QueueConfig()

        assert config.max_workers == 3
        assert config.max_queue_size == 100
        assert config.default_max_retries == 2
