"""HTTP API exposing agent registry, dispatch and job status."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from agentmux.core.errors import AgentmuxError, NotFoundError
from agentmux.core.logging import get_logger
from agentmux.core.models import AgentConfig, Priority
from agentmux.runtime import Runtime

logger = get_logger(__name__)

router = APIRouter(tags=["agents"])


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


class TaskRequest(BaseModel):
    action: str = Field(..., description="Agent-specific action tag")
    priority: Priority = Priority.MEDIUM
    data: Dict[str, Any] = Field(default_factory=dict)


class AgentCreatedResponse(BaseModel):
    success: bool = True
    agentId: str


class JobAcceptedResponse(BaseModel):
    success: bool = True
    message: str = "Agent task enqueued"
    jobId: str


class RunResultResponse(BaseModel):
    success: bool = True
    result: Any = None


class JobResponse(BaseModel):
    id: str
    agentName: str
    task: Dict[str, Any]
    state: str
    attempts: int
    createdAt: float
    result: Any = None
    error: Optional[str] = None


async def agentmux_error_handler(request: Request, exc: AgentmuxError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("request_failed", path=request.url.path, kind=exc.kind, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )


@router.post("/agents", response_model=AgentCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_agent(
    payload: Dict[str, Any],
    runtime: Runtime = Depends(get_runtime),
) -> AgentCreatedResponse:
    agent_id = await runtime.registry.create(payload)
    return AgentCreatedResponse(agentId=agent_id)


@router.get("/agents", response_model=List[AgentConfig])
async def list_agents(runtime: Runtime = Depends(get_runtime)) -> List[AgentConfig]:
    return runtime.registry.list()


@router.get("/agents/{agent_id}", response_model=AgentConfig)
async def get_agent(agent_id: str, runtime: Runtime = Depends(get_runtime)) -> AgentConfig:
    config = runtime.registry.get(agent_id)
    if config is None:
        raise NotFoundError(f"Agent with id {agent_id} not found", agent_id=agent_id)
    return config


@router.patch("/agents/{agent_id}", response_model=AgentConfig)
async def update_agent(
    agent_id: str,
    partial: Dict[str, Any],
    runtime: Runtime = Depends(get_runtime),
) -> AgentConfig:
    return await runtime.registry.update(agent_id, partial)


@router.post(
    "/agents/{agent_name}/run",
    response_model=JobAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enqueue_run(
    agent_name: str,
    request: TaskRequest,
    runtime: Runtime = Depends(get_runtime),
) -> JobAcceptedResponse:
    job_id = await runtime.queue.enqueue(agent_name, request.model_dump())
    return JobAcceptedResponse(jobId=job_id)


@router.post("/agents/{agent_name}/run-sync", response_model=RunResultResponse)
async def run_sync(
    agent_name: str,
    request: TaskRequest,
    runtime: Runtime = Depends(get_runtime),
) -> RunResultResponse:
    result = await runtime.dispatcher.run_agent(agent_name, request.model_dump())
    return RunResultResponse(result=result)


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, runtime: Runtime = Depends(get_runtime)) -> JobResponse:
    job = runtime.queue.get(job_id)
    if job is None:
        raise NotFoundError(f"Job {job_id} not found", job_id=job_id)
    return JobResponse(**job.to_dict())
