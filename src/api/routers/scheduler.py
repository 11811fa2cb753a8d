"""
Scheduler router for the job service control plane and scheduled entries.

Endpoints under /scheduler/*:
- POST /scheduler/start, POST /scheduler/stop, GET /scheduler/status
- GET /scheduler/entries - Not-yet-fired entries, soonest first
- GET /scheduler/entries/{key}
- DELETE /scheduler/entries/{key} - Drop an entry
- POST /scheduler/entries/{key}/enabled - Pause or resume an entry
"""

import logging

from fastapi import APIRouter, HTTPException

from src.scheduler.entities import ScheduledEntry

from ..schemas.scheduler import (
    EntryActionResponse,
    EntryEnabledRequest,
    ScheduledEntryListResponse,
    ScheduledEntryResponse,
    SchedulerActionResponse,
    SchedulerStatusResponse,
    SchedulerStopRequest,
)
from .._service_state import get_job_service


logger = logging.getLogger(__name__)

router = APIRouter()


def _entry_to_response(entry: ScheduledEntry) -> ScheduledEntryResponse:
    return ScheduledEntryResponse(
        key=entry.key,
        name=entry.name,
        kind=entry.kind,
        next_run_at=entry.next_run_at,
        priority=entry.spec.priority if entry.spec is not None else None,
        interval=entry.interval,
        max_runs=entry.max_runs,
        remaining_runs=entry.remaining_runs,
        end_at=entry.end_at,
        dependencies=list(entry.dependencies),
        enabled=entry.enabled,
        job_id=entry.job_id,
        run_count=entry.run_count,
        last_run_at=entry.last_run_at,
        last_job_id=entry.last_job_id,
        created_at=entry.created_at,
    )


# =============================================================================
# Control plane
# =============================================================================


@router.post("/start", response_model=SchedulerActionResponse)
async def start_scheduler():
    """
    Start the queue workers and the scheduler loop.

    Idempotent: If already running, returns success with message.
    """
    service = get_job_service()

    if service.is_running:
        return SchedulerActionResponse(success=True, message="Job service is already running")

    await service.start()
    return SchedulerActionResponse(success=True, message="Job service started successfully")


@router.post("/stop", response_model=SchedulerActionResponse)
async def stop_scheduler(request: SchedulerStopRequest = SchedulerStopRequest()):
    """
    Stop the scheduler, then drain the queue.

    Running jobs get ``timeout`` seconds to finish; the rest are cancelled.
    Pending jobs stay pending until the next start.
    """
    service = get_job_service()

    if not service.is_running:
        return SchedulerActionResponse(success=True, message="Job service is already stopped")

    await service.stop(timeout=request.timeout)
    return SchedulerActionResponse(success=True, message="Job service stopped successfully")


@router.get("/status", response_model=SchedulerStatusResponse)
async def get_scheduler_status():
    """Whether the queue and the scheduler are running, and how much work is waiting."""
    service = get_job_service()
    stats = service.queue.get_statistics()

    return SchedulerStatusResponse(
        queue_running=service.queue.is_running,
        scheduler_running=service.scheduler.is_running,
        queue_length=stats.queue_length,
        active_workers=stats.active_workers,
        scheduled_entries=len(service.scheduler),
    )


# =============================================================================
# Scheduled entries
# =============================================================================


@router.get("/entries", response_model=ScheduledEntryListResponse)
async def list_entries():
    """Scheduled entries ordered by next run time."""
    service = get_job_service()

    entries = service.scheduler.list_entries()
    return ScheduledEntryListResponse(
        entries=[_entry_to_response(entry) for entry in entries],
        total=len(entries),
    )


@router.get("/entries/{key}", response_model=ScheduledEntryResponse)
async def get_entry(key: str):
    service = get_job_service()

    entry = service.scheduler.get_entry(key)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Scheduled entry not found: {key}")

    return _entry_to_response(entry)


@router.delete("/entries/{key}", response_model=EntryActionResponse)
async def cancel_entry(key: str):
    """Drop a scheduled entry. Jobs it already created are unaffected."""
    service = get_job_service()

    if not service.scheduler.cancel_scheduled_job(key):
        raise HTTPException(status_code=404, detail=f"Scheduled entry not found: {key}")

    return EntryActionResponse(key=key, success=True, message="Scheduled entry cancelled")


@router.post("/entries/{key}/enabled", response_model=EntryActionResponse)
async def set_entry_enabled(key: str, request: EntryEnabledRequest):
    """Pause (enabled=false) or resume an entry. A paused entry keeps its next run time."""
    service = get_job_service()

    if not service.scheduler.set_entry_enabled(key, request.enabled):
        raise HTTPException(status_code=404, detail=f"Scheduled entry not found: {key}")

    state = "enabled" if request.enabled else "disabled"
    return EntryActionResponse(key=key, success=True, message=f"Scheduled entry {state}")
