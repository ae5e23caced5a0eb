"""
Routing and Execution Routes
=============================

Endpoints:
- POST /route               — Routing decision only (no backend call)
- POST /tasks               — Execute one task (cached)
- POST /pipelines           — Execute a pipeline graph
- POST /agents/coordinate   — Run agent roles in sequence
"""

from fastapi import APIRouter, Depends

from switchyard.manager import RegistryManager

from ..deps import get_manager
from ..schemas import CoordinateRequest, PipelineRequest, RouteRequest, TaskRequest, TaskResponse

router = APIRouter(tags=["tasks"])

@router.post("/route")
async def route_task(body: RouteRequest, manager: RegistryManager = Depends(get_manager)):
    _, decision = manager.route_task(body.to_options())
    return decision.to_dict()

@router.post("/tasks", response_model=TaskResponse)
async def execute_task(body: TaskRequest, manager: RegistryManager = Depends(get_manager)):
    result = await manager.execute_task(
        body.options.to_options(),
        body.input,
        temperature=body.temperature,
        max_tokens=body.max_tokens,
        timeout=body.timeout,
    )
    return TaskResponse(task=body.options.type, result=result)

@router.post("/pipelines")
async def execute_pipeline(body: PipelineRequest, manager: RegistryManager = Depends(get_manager)):
    result = await manager.execute_pipeline(body.to_config())
    return result.to_dict()

@router.post("/agents/coordinate")
async def coordinate_agents(body: CoordinateRequest, manager: RegistryManager = Depends(get_manager)):
    results = await manager.coordinate_agents(
        body.task, body.context, [agent.to_config() for agent in body.agents]
    )
    return {"results": {key: result.to_dict() for key, result in results.items()}}
