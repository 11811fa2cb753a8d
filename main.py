"""
Club calculation jobs - command line entry point.

Commands:
- list: print the calculation catalog
- run: run one calculation through the queue and print the finished job
- serve: start the HTTP API

Examples:
    python main.py list
    python main.py run season-statistics-calculation --payload '{"saison_id": 1}' \\
        --fixtures fixtures.json
    python main.py serve --port 8000
"""

import argparse
import asyncio
import json
import os
import signal
import sys
import time
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

from src.calculations import CalculationJobs
from src.infra.content_store import InMemoryContentStore, create_content_store
from src.infra.logging_config import setup_logging
from src.scheduler import JobService, JobStatus, QueueConfig
from src.scheduler.errors import SchedulerError


load_dotenv()

# =============================================================================
# Logging Configuration
# =============================================================================
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logger = setup_logging(log_level, log_dir=os.getenv("LOG_DIR", "logs"))


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Club calculation job queue")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List registered calculations")

    run = subparsers.add_parser("run", help="Run one calculation and wait for it")
    run.add_argument("name", help="Calculation name, e.g. season-statistics-calculation")
    run.add_argument("--payload", default="{}", help="Payload as JSON")
    run.add_argument(
        "--fixtures",
        default=None,
        help="JSON fixtures for an in-memory content store (default: CONTENT_STORE_BACKEND)",
    )
    run.add_argument(
        "--wait-seconds",
        type=float,
        default=None,
        help="Give up waiting after this many seconds (default: job timeout x retries + 10)",
    )

    serve = subparsers.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser.parse_args(argv)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def list_calculations() -> None:
    calculations = CalculationJobs(JobService.create(QueueConfig.from_env()), InMemoryContentStore())

    for area, definition in calculations.list_definitions():
        print(
            f"{area:<8} {definition.name:<34} {definition.priority.value:<7} "
            f"timeout={definition.timeout:g}s retries={definition.retry_attempts}"
        )


async def run_calculation(
    name: str,
    payload: dict,
    fixtures: Optional[str] = None,
    wait_seconds: Optional[float] = None,
) -> int:
    """
    Run one calculation through a private job service.

    Returns:
        Process exit code (0 when the job completed successfully)
    """
    store = InMemoryContentStore.from_file(fixtures) if fixtures else create_content_store()
    config = QueueConfig.from_env()
    service = JobService.create(config)
    calculations = CalculationJobs(service, store)

    definition = calculations.get_definition(name)
    if definition is None:
        logger.error(f"Unknown calculation: {name}")
        return 2

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            pass

    if wait_seconds is None:
        wait_seconds = definition.timeout * (definition.retry_attempts + 1) + 10

    await service.start()
    started = time.monotonic()
    try:
        try:
            job_id = calculations.enqueue(name, payload)
        except (ValidationError, SchedulerError) as e:
            logger.error(f"Could not enqueue {name}: {e}")
            return 2

        logger.info(f"Enqueued {name} as {job_id}")

        while True:
            job = service.get_job_status(job_id)
            # Failed jobs with a scheduled retry come back to pending
            if job.status.is_terminal and job.next_retry_at is None:
                break
            if stop_requested.is_set():
                logger.info("Stop requested - cancelling job")
                service.cancel_job(job_id)
                break
            if time.monotonic() - started > wait_seconds:
                logger.warning(f"Gave up waiting for {job_id} after {wait_seconds:g}s")
                service.cancel_job(job_id)
                break
            await asyncio.sleep(0.1)
    finally:
        await service.stop(timeout=config.stop_timeout)

    job = service.get_job_status(job_id)
    print(
        json.dumps(
            {
                "job_id": job.id,
                "name": job.name,
                "status": job.status.value,
                "retry_count": job.retry_count,
                "execution_time": job.execution_time,
                "error": job.error,
                "result": _to_jsonable(job.result),
            },
            indent=2,
            ensure_ascii=False,
            default=str,
        )
    )

    succeeded = job.status == JobStatus.COMPLETED and getattr(job.result, "success", True)
    return 0 if succeeded else 1


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    if args.command == "list":
        list_calculations()
        return 0

    if args.command == "run":
        try:
            payload = json.loads(args.payload)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid --payload JSON: {e}")
            return 2
        return asyncio.run(run_calculation(args.name, payload, args.fixtures, args.wait_seconds))

    if args.command == "serve":
        import uvicorn

        uvicorn.run("src.api.main:app", host=args.host, port=args.port)
        return 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
