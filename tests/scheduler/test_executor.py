"""
Tests for Executor and failure classification.
"""

import asyncio

import httpx
import pytest

from src.scheduler import (
    CalculationAbortedError,
    Executor,
    FailureKind,
    Job,
    TransientJobError,
    classify_error,
)

from .calculators import RecordingCalculator, never_resolves


class TestClassifyError:
    """Typed errors win; message markers are the fallback."""

    def test_aborted_is_application(self):
        assert classify_error(CalculationAbortedError("Team with ID 1 not found")) == FailureKind.APPLICATION

    def test_aborted_with_network_text_is_still_application(self):
        assert classify_error(CalculationAbortedError("network config missing")) == FailureKind.APPLICATION

    def test_transient_types(self):
        assert classify_error(TransientJobError("store busy")) == FailureKind.TRANSIENT
        assert classify_error(ConnectionResetError()) == FailureKind.TRANSIENT
        assert classify_error(httpx.ConnectError("refused")) == FailureKind.TRANSIENT

    def test_timeout_error(self):
        assert classify_error(TimeoutError()) == FailureKind.TIMEOUT

    def test_message_fallback(self):
        assert classify_error(RuntimeError("Connection refused by peer")) == FailureKind.TRANSIENT
        assert classify_error(RuntimeError("upstream TIMEOUT")) == FailureKind.TRANSIENT

    def test_plain_error_is_application(self):
        assert classify_error(ValueError("bad value")) == FailureKind.APPLICATION


class TestExecutor:
    @pytest.mark.asyncio
    async def test_success_returns_result(self, make_spec):
        job = Job.create(make_spec(RecordingCalculator(result={"x": 1}), payload="p"))

        outcome = await Executor().execute(job)

        assert outcome.success is True
        assert outcome.result == {"x": 1}
        assert outcome.execution_time >= 0

    @pytest.mark.asyncio
    async def test_calculator_receives_payload_and_context(self, make_spec):
        seen = []

        async def calculator(payload, context):
            seen.append((payload, context))
            return None

        job = Job.create(make_spec(calculator, payload={"saison_id": 1}))
        await Executor().execute(job)

        assert seen == [({"saison_id": 1}, None)]

    @pytest.mark.asyncio
    async def test_timeout(self, make_spec):
        job = Job.create(make_spec(never_resolves, timeout=0.05))

        outcome = await Executor().execute(job)

        assert outcome.success is False
        assert outcome.failure_kind == FailureKind.TIMEOUT
        assert outcome.error == "Job timeout after 0.05s"
        assert 0.04 <= outcome.execution_time < 0.5
        assert outcome.retry_recommended is True

    @pytest.mark.asyncio
    async def test_cancelled_before_start_never_calls_calculator(self, make_spec):
        calculator = RecordingCalculator()
        job = Job.create(make_spec(calculator))
        job.cancel_requested = True

        outcome = await Executor().execute(job)

        assert outcome.failure_kind == FailureKind.CANCELLED
        assert calculator.calls == []
        assert outcome.retry_recommended is False

    @pytest.mark.asyncio
    async def test_non_awaitable_calculator_is_internal_failure(self, make_spec):
        def not_async(payload, context):
            return 42

        job = Job.create(make_spec(not_async))

        outcome = await Executor().execute(job)

        assert outcome.success is False
        assert outcome.failure_kind == FailureKind.INTERNAL
        assert outcome.error.startswith("Execution error:")

    @pytest.mark.asyncio
    async def test_aborted_carries_result(self, make_spec):
        async def aborting(payload, context):
            raise CalculationAbortedError("Saison with ID 9 not found", result={"success": False})

        job = Job.create(make_spec(aborting))

        outcome = await Executor().execute(job)

        assert outcome.failure_kind == FailureKind.APPLICATION
        assert outcome.result == {"success": False}
        assert outcome.error == "Saison with ID 9 not found"
        assert outcome.retry_recommended is False

    @pytest.mark.asyncio
    async def test_transient_failure_is_retry_recommended(self, make_spec):
        job = Job.create(make_spec(RecordingCalculator(errors=[TransientJobError("busy")])))

        outcome = await Executor().execute(job)

        assert outcome.failure_kind == FailureKind.TRANSIENT
        assert outcome.retry_recommended is True

    @pytest.mark.asyncio
    async def test_timeout_cancels_calculator(self, make_spec):
        cancelled = asyncio.Event()

        async def slow(payload, context):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        job = Job.create(make_spec(slow, timeout=0.02))
        await Executor().execute(job)

        assert cancelled.is_set()
