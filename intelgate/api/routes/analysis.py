"""Collection, context and analysis job endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from intelgate.api.app import get_services
from intelgate.jobs.store import JobNotFound
from intelgate.orchestrator import InsufficientData, JobAccepted
from intelgate.services import Services

router = APIRouter(tags=["analysis"])


@router.post("/collect/{subject}/{phase}")
async def collect_phase(
    subject: str,
    phase: str,
    scope: str | None = None,
    force: bool = False,
    services: Services = Depends(get_services),
):
    try:
        report = await services.orchestrator.collect_phase(subject, phase, scope=scope, force=force)
    except KeyError:
        raise HTTPException(404, f"Unknown phase: {phase}")
    return report.to_dict()


@router.get("/context/{subject}")
async def get_context(
    subject: str,
    scope: str | None = None,
    services: Services = Depends(get_services),
):
    bundle = await services.orchestrator.get_context(subject, scope)
    return bundle.to_dict()


@router.post("/analysis/{subject}")
async def request_analysis(
    subject: str,
    scope: str | None = None,
    force: bool = Query(False, description="Refetch every kind even if cached"),
    services: Services = Depends(get_services),
):
    outcome = await services.orchestrator.request_analysis(subject, scope=scope, force=force)
    if isinstance(outcome, JobAccepted):
        return JSONResponse(outcome.to_dict(), status_code=202)
    if isinstance(outcome, InsufficientData):
        return JSONResponse(outcome.to_dict(), status_code=200)
    return outcome.to_dict()


@router.get("/analysis/jobs/{job_id}")
async def poll_analysis(job_id: str, services: Services = Depends(get_services)):
    record = await services.orchestrator.poll_analysis(job_id)
    if record is None:
        raise HTTPException(404, "Job not found")
    return record.to_dict()


@router.post("/analysis/jobs/{job_id}/cancel")
async def cancel_analysis(job_id: str, services: Services = Depends(get_services)):
    try:
        record = await services.orchestrator.cancel_analysis(job_id)
    except JobNotFound:
        raise HTTPException(404, "Job not found")
    return record.to_dict()
