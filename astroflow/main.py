# astroflow/main.py
import logging
import uuid
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from .actions import ACTIONS
from .config import Settings, configure_logging, get_settings
from .controller import ExecutionController
from .errors import ConfigurationError
from .models import WorkflowGraph
from .workflows.imaging import build_imaging_session

logger = logging.getLogger(__name__)


class RunRegistry:
    """Workflow snapshots and their controllers, scoped to one app instance."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.workflows: Dict[str, WorkflowGraph] = {}
        self.runs: Dict[str, ExecutionController] = {}

    def add_workflow(self, graph: WorkflowGraph) -> str:
        workflow_id = str(uuid.uuid4())
        self.workflows[workflow_id] = graph
        return workflow_id

    def new_run(self, workflow_id: str) -> str:
        if workflow_id not in self.workflows:
            raise KeyError("workflow not found")
        run_id = str(uuid.uuid4())
        self.runs[run_id] = ExecutionController(self.workflows[workflow_id], settings=self.settings)
        return run_id


class StartRunPayload(BaseModel):
    workflow_id: str
    step_delay_ms: Optional[int] = Field(default=None, ge=0)
    center_on_step: Optional[bool] = None
    run_in_background: bool = True


class RunSettingsPayload(BaseModel):
    step_delay_ms: Optional[int] = Field(default=None, ge=0)
    center_on_step: Optional[bool] = None


def _registry(request: Request) -> RunRegistry:
    return request.app.state.registry


def _controller(request: Request, run_id: str) -> ExecutionController:
    controller = _registry(request).runs.get(run_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="run not found")
    return controller


def _snapshot(run_id: str, controller: ExecutionController) -> dict:
    return {
        "run_id": run_id,
        "state": controller.state.model_dump(mode="json"),
        "progress": controller.progress(),
    }


def _apply_settings(controller: ExecutionController, step_delay_ms: Optional[int], center_on_step: Optional[bool]):
    if step_delay_ms is not None:
        controller.set_step_delay(step_delay_ms)
    if center_on_step is not None:
        controller.set_center_on_step(center_on_step)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Astroflow Workflow Executor")
    app.state.registry = RunRegistry(settings)

    @app.post("/workflows")
    async def create_workflow(graph: WorkflowGraph, request: Request):
        workflow_id = _registry(request).add_workflow(graph)
        logger.info("registered workflow %s (%d nodes)", workflow_id, len(graph.nodes))
        return {"workflow_id": workflow_id}

    @app.get("/actions")
    async def list_actions():
        return {"actions": [kind.value for kind in ACTIONS]}

    @app.post("/runs")
    async def start_run(payload: StartRunPayload, request: Request):
        registry = _registry(request)
        try:
            run_id = registry.new_run(payload.workflow_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="workflow not found")
        controller = registry.runs[run_id]
        _apply_settings(controller, payload.step_delay_ms, payload.center_on_step)
        try:
            await controller.start(run_in_background=payload.run_in_background)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _snapshot(run_id, controller)

    @app.get("/runs/{run_id}")
    async def get_run(run_id: str, request: Request):
        return _snapshot(run_id, _controller(request, run_id))

    @app.post("/runs/{run_id}/pause")
    async def pause_run(run_id: str, request: Request):
        controller = _controller(request, run_id)
        controller.pause()
        return _snapshot(run_id, controller)

    @app.post("/runs/{run_id}/stop")
    async def stop_run(run_id: str, request: Request):
        controller = _controller(request, run_id)
        controller.stop()
        return _snapshot(run_id, controller)

    @app.post("/runs/{run_id}/step")
    async def step_run(run_id: str, request: Request):
        controller = _controller(request, run_id)
        try:
            node_id = await controller.step()
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"node_id": node_id, **_snapshot(run_id, controller)}

    @app.put("/runs/{run_id}/settings")
    async def update_run_settings(run_id: str, payload: RunSettingsPayload, request: Request):
        controller = _controller(request, run_id)
        _apply_settings(controller, payload.step_delay_ms, payload.center_on_step)
        return _snapshot(run_id, controller)

    # builds and runs the bundled imaging session in the foreground
    @app.post("/example/run-imaging")
    async def example_run_imaging(request: Request, frames: int = 3):
        registry = _registry(request)
        workflow_id = registry.add_workflow(build_imaging_session(frames=frames))
        run_id = registry.new_run(workflow_id)
        controller = registry.runs[run_id]
        controller.set_step_delay(0)
        await controller.start(run_in_background=False)
        return {"workflow_id": workflow_id, **_snapshot(run_id, controller)}

    return app


app = create_app()

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("astroflow.main:app", host=settings.host, port=settings.port, reload=True)
