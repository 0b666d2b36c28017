"""FastAPI route definitions for the callvis control service.

Provides the endpoints of the live re-render loop:

- ``GET /options`` — return the current options, merging an optional
  serialized override passed as ``opts``.
- ``GET /render`` (alias ``/module``) — apply query overrides, start a
  pipeline run in the background and redirect to the viewer.
- ``GET /view`` — the latest artifact, or its pending/failed state.
- ``GET /health`` — liveness probe.

Option merging and focus resolution touch the whole graph, so they are
dispatched to a thread via ``asyncio.to_thread`` and the event loop stays
free for ``/view`` polling.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, Field

from callvis import __version__
from callvis.core.service import ControlService, JobState
from callvis.errors import FocusNotFound, OptionsError

router = APIRouter()

# Media types of common ``dot -T`` formats.
MEDIA_TYPES: dict[str, str] = {
    "svg": "image/svg+xml",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "pdf": "application/pdf",
    "json": "application/json",
    "dot": "text/vnd.graphviz",
    "gv": "text/vnd.graphviz",
    "canon": "text/vnd.graphviz",
}

# Error types that come from the external layout engine.
_RENDERER_ERRORS = {"RendererUnavailable", "RendererFailed"}


# ------------------------------------------------------------------
# Response schemas
# ------------------------------------------------------------------


class JobResponse(BaseModel):
    """State of the latest render job (``/view`` when not ``done``)."""

    status: JobState = Field(..., description="Job lifecycle state.")
    fingerprint: str = Field(..., description="Cache key of the job's options.")
    error: str | None = Field(None, description="Failure message.")
    error_type: str | None = Field(None, description="Failure exception type.")


class HealthResponse(BaseModel):
    status: str = Field("ok")
    version: str = Field(__version__)
    nodes: int = Field(..., description="Functions in the analysed graph.")


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _service(request: Request) -> ControlService:
    return request.app.state.service


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.get(
    "/options",
    status_code=status.HTTP_200_OK,
    summary="Exchange pipeline options",
    description=(
        "Return the current options as JSON.  When ``opts`` carries a JSON "
        "object, its recognized keys are merged into the store first."
    ),
)
async def exchange_options(
    request: Request,
    opts: str | None = Query(None, description="Serialized options override (JSON object)."),
) -> Response:
    """Merge an optional override and return the serialized options.

    Raises:
        HTTPException: 400 if ``opts`` is malformed or holds invalid values.
    """
    try:
        body = await asyncio.to_thread(_service(request).exchange_options, opts)
    except OptionsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return Response(content=body, media_type="application/json")


@router.get(
    "/render",
    status_code=status.HTTP_303_SEE_OTHER,
    summary="Trigger a re-render",
    description=(
        "Apply the query parameters as option overrides, start a pipeline "
        "run in the background and redirect to the viewer.  The artifact "
        "may still be computing when the redirect is followed.  Add "
        "``refresh=true`` to bypass the artifact cache."
    ),
)
@router.get("/module", include_in_schema=False)
async def render_trigger(
    request: Request,
    background_tasks: BackgroundTasks,
    refresh: bool = Query(False, description="Bypass cached artifacts."),
) -> RedirectResponse:
    """Snapshot options, schedule the pipeline and redirect.

    Raises:
        HTTPException: 400 on invalid options, 404 if the focus is unknown.
    """
    service = _service(request)
    try:
        job = await asyncio.to_thread(service.trigger, dict(request.query_params))
    except OptionsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except FocusNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    background_tasks.add_task(service.run, job, refresh)
    return RedirectResponse(url=request.app.state.viewer_url, status_code=status.HTTP_303_SEE_OTHER)


@router.get(
    "/view",
    summary="Latest artifact",
    description=(
        "Return the artifact of the most recent render.  Answers 202 while "
        "it is still computing; reload to poll."
    ),
)
async def view(request: Request) -> Response:
    """Serve the latest artifact or report its state.

    Raises:
        HTTPException: 404 before the first render.
    """
    job = _service(request).latest()
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No render has been triggered yet.")

    if job.state is JobState.DONE and job.artifact is not None:
        artifact = job.artifact
        return Response(
            content=artifact.content,
            media_type=MEDIA_TYPES.get(artifact.format, "application/octet-stream"),
            headers={"X-Callvis-Fingerprint": artifact.fingerprint},
        )

    payload = JobResponse(
        status=job.state,
        fingerprint=job.fingerprint,
        error=job.error,
        error_type=job.error_type,
    ).model_dump(mode="json")

    if job.state is JobState.PENDING:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=payload,
            headers={"Retry-After": "1", "Refresh": "1"},
        )

    if job.error_type in _RENDERER_ERRORS:
        code = status.HTTP_502_BAD_GATEWAY
    elif job.error_type == "FocusNotFound":
        code = status.HTTP_404_NOT_FOUND
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=code, content=payload)


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health(request: Request) -> HealthResponse:
    return HealthResponse(nodes=len(_service(request).graph))
