"""Ops API: scheduler status, manual triggers, cache and retention controls.

All endpoints are protected by X-API-Key (see matchday.security).
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from matchday.jobs.scheduler import UnknownJobError
from matchday.runtime import CLEANUP_JOBS, Runtime, UnknownSchedulerError
from matchday.security import verify_api_key

router = APIRouter(prefix="/ops", tags=["ops"], dependencies=[Depends(verify_api_key)])


class TriggerRequest(BaseModel):
    job_id: Optional[str] = None
    max_units: Optional[int] = Field(default=None, ge=1)
    wait: bool = False


def get_runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Runtime not initialized")
    return runtime


def _not_found(e: KeyError) -> HTTPException:
    return HTTPException(status_code=404, detail=e.args[0] if e.args else str(e))


@router.get("/schedulers")
async def list_schedulers(runtime: Runtime = Depends(get_runtime)):
    """Status of every scheduler."""
    return {name: reporter.status() for name, reporter in runtime.reporters.items()}


@router.get("/schedulers/{name}/status")
async def scheduler_status(name: str, runtime: Runtime = Depends(get_runtime)):
    try:
        return runtime.reporter(name).status()
    except UnknownSchedulerError as e:
        raise _not_found(e)


@router.post("/schedulers/{name}/trigger")
async def trigger_scheduler(
    name: str,
    body: Optional[TriggerRequest] = None,
    runtime: Runtime = Depends(get_runtime),
):
    """
    Run a bound job now.

    wait=false starts the job in the background and returns the
    acknowledgement; wait=true returns the finished run. A job that is
    already running is reported, not queued.
    """
    body = body or TriggerRequest()
    try:
        scheduler = runtime.scheduler(name)
        if body.wait:
            job_run = await scheduler.trigger_manual(body.job_id, body.max_units)
            return {"success": job_run.succeeded, "result": job_run.to_dict()}

        ack = scheduler.submit_manual(body.job_id, body.max_units)
        return {"success": ack.accepted, **ack.to_dict()}
    except (UnknownSchedulerError, UnknownJobError) as e:
        raise _not_found(e)


@router.get("/caches")
async def list_caches(runtime: Runtime = Depends(get_runtime)):
    return {name: cache.stats() for name, cache in runtime.caches.by_name().items()}


@router.delete("/caches/{name}")
async def clear_cache(name: str, runtime: Runtime = Depends(get_runtime)):
    try:
        cache = runtime.cache(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown cache {name!r}")
    return {"success": True, "cleared": cache.clear()}


@router.post("/cleanup")
async def force_cleanup(runtime: Runtime = Depends(get_runtime)):
    """Run every retention cleanup job now and return their runs."""
    results = {}
    for scheduler_name, job_id in CLEANUP_JOBS:
        job_run = await runtime.scheduler(scheduler_name).trigger_manual(job_id)
        results[job_id] = job_run.to_dict()
    return {
        "success": all(result["succeeded"] for result in results.values()),
        "deleted": sum(result["items_processed"] for result in results.values()),
        "results": results,
    }
