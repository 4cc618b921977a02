import asyncio
import contextlib

import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import configure_logging, settings
from .errors import OrchestratorError
from .schemas import (
    CreateAndWaitResponse,
    CreateInstanceResponse,
    InstanceStateResponse,
    PingResponse,
    PromptRequest,
    PromptResponse,
    ProvisioningRequest,
    TerminateInstanceResponse,
)
from .service import InstanceLifecycleService
from .waiter import CancellationToken


configure_logging(settings)
service = InstanceLifecycleService(settings)
app = FastAPI(title=settings.app_name, version=settings.app_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

DISCONNECT_CHECK_SECONDS = 0.5


def get_service() -> InstanceLifecycleService:
    return service


@app.exception_handler(OrchestratorError)
async def orchestrator_error_handler(request: Request, exc: OrchestratorError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def run_cancellable(request: Request, func, *args, **kwargs):
    """Run a blocking wait in the threadpool, cancelling it if the client goes away."""
    token = CancellationToken()

    async def watch_disconnect() -> None:
        while not token.cancelled:
            if await request.is_disconnected():
                token.cancel("client disconnected")
                return
            await asyncio.sleep(DISCONNECT_CHECK_SECONDS)

    watcher = asyncio.create_task(watch_disconnect())
    try:
        return await run_in_threadpool(func, *args, cancel_token=token, **kwargs)
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher


@app.get("/health")
def health() -> dict:
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "region": settings.aws_region,
        "backend": settings.model_backend,
        "model": settings.openai_model,
    }


@app.get("/api/v1/aws/ping", response_model=PingResponse)
def aws_ping(svc: InstanceLifecycleService = Depends(get_service)) -> PingResponse:
    return svc.ping()


@app.post("/api/v1/ec2", response_model=CreateInstanceResponse, status_code=201)
def create_instance(
    payload: ProvisioningRequest,
    svc: InstanceLifecycleService = Depends(get_service),
) -> CreateInstanceResponse:
    return svc.create(payload)


@app.post("/api/v1/ec2/wait-running", response_model=CreateAndWaitResponse, status_code=201)
async def create_instance_and_wait(
    request: Request,
    payload: ProvisioningRequest,
    timeout_seconds: float = Query(settings.wait_timeout_seconds, ge=1, alias="timeoutSeconds"),
    poll_seconds: float = Query(settings.poll_interval_seconds, ge=1, alias="pollSeconds"),
    svc: InstanceLifecycleService = Depends(get_service),
) -> CreateAndWaitResponse:
    return await run_cancellable(request, svc.create_and_wait, payload, timeout_seconds, poll_seconds)


@app.get("/api/v1/ec2/{instance_id}/state", response_model=InstanceStateResponse)
def get_instance_state(
    instance_id: str,
    svc: InstanceLifecycleService = Depends(get_service),
) -> InstanceStateResponse:
    return svc.describe(instance_id)


@app.get("/api/v1/ec2/{instance_id}/wait-running", response_model=InstanceStateResponse)
async def wait_instance_running(
    request: Request,
    instance_id: str,
    timeout_seconds: float = Query(settings.wait_timeout_seconds, ge=1, alias="timeoutSeconds"),
    poll_seconds: float = Query(settings.poll_interval_seconds, ge=1, alias="pollSeconds"),
    svc: InstanceLifecycleService = Depends(get_service),
) -> InstanceStateResponse:
    return await run_cancellable(request, svc.wait_until_running, instance_id, timeout_seconds, poll_seconds)


@app.delete("/api/v1/ec2/{instance_id}", response_model=TerminateInstanceResponse)
async def terminate_instance(
    request: Request,
    instance_id: str,
    wait: bool = Query(False),
    timeout_seconds: float = Query(settings.wait_timeout_seconds, ge=1, alias="timeoutSeconds"),
    poll_seconds: float = Query(settings.poll_interval_seconds, ge=1, alias="pollSeconds"),
    svc: InstanceLifecycleService = Depends(get_service),
) -> TerminateInstanceResponse:
    if not wait:
        return await run_in_threadpool(svc.terminate, instance_id)
    return await run_cancellable(
        request,
        svc.terminate,
        instance_id,
        wait=True,
        timeout_seconds=timeout_seconds,
        poll_interval_seconds=poll_seconds,
    )


@app.post("/api/v1/openai/prompt", response_model=PromptResponse)
def complete_prompt(
    payload: PromptRequest,
    svc: InstanceLifecycleService = Depends(get_service),
) -> PromptResponse:
    return svc.complete_prompt(payload)


@app.post("/api/v1/openai/aws-controller", response_model=CreateAndWaitResponse, status_code=201)
async def aws_controller(
    request: Request,
    payload: PromptRequest,
    svc: InstanceLifecycleService = Depends(get_service),
) -> CreateAndWaitResponse:
    return await run_cancellable(request, svc.synthesize_and_provision, payload)


if __name__ == "__main__":
    uvicorn.run(
        "instance_orchestrator.app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
