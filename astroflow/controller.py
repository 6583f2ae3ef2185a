# astroflow/controller.py
import asyncio
import inspect
import logging
import random
from datetime import datetime
from typing import Callable, List, Optional

from .config import Settings, get_settings
from .engine import ExecutionEngine
from .errors import ConfigurationError
from .models import ExecutionState, LogEntry, NodeKind, RunRecord, WorkflowGraph

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ExecutionController:
    """Drives an ExecutionEngine over time: start/pause/stop/step with a delay between steps.

    All state lives on this instance; build one controller per graph snapshot.
    The run loop is a single asyncio task, and every update to the observable
    state (current node, path, variables) happens without an intervening await,
    so readers never see a half-applied step.
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        settings: Optional[Settings] = None,
        engine: Optional[ExecutionEngine] = None,
    ):
        settings = settings or get_settings()
        self.graph = graph
        self.engine = engine or ExecutionEngine(graph, rng=random.Random(settings.simulation_seed))
        self.state = ExecutionState(
            step_delay_ms=settings.step_delay_ms,
            center_on_step=settings.center_on_step,
        )
        self.history: List[RunRecord] = []
        self._observers: List[Callable] = []
        self._task: Optional[asyncio.Task] = None
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._wake = asyncio.Event()
        # bumped on every start so a superseded loop notices and exits
        self._generation = 0

    # observation

    def subscribe(self, callback: Callable):
        """Register fn(node_id, state), called once per visited node. May be async.

        Observers are always notified; view recentering should check
        state.center_on_step itself.
        """
        self._observers.append(callback)

    def unsubscribe(self, callback: Callable):
        if callback in self._observers:
            self._observers.remove(callback)

    def progress(self) -> float:
        countable = sum(1 for n in self.graph.nodes if n.kind not in (NodeKind.GROUP, NodeKind.START))
        path = self.state.execution_path
        if not path or countable == 0:
            return 0.0
        return min(len(path) / countable * 100, 100.0)

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    # control

    async def start(self, run_in_background: bool = True):
        self._check_graph()
        if self.state.is_running:
            self._halt("stopped")
        self._cancel_task()

        self.engine.reset()
        self._generation += 1
        self._resumed.set()
        self._wake.clear()

        state = self.state
        state.is_running = True
        state.is_paused = False
        state.current_node_id = None
        state.execution_path = []
        state.variables = {}
        state.error = None
        state.logs = []
        state.status = "running"
        self.history.append(RunRecord())
        self._log("info", "execution started")
        for node in self.graph.nodes:
            if not self.graph.validate_node_params(node.id):
                self._log("warning", f"{node.id} has required parameters without defaults", node.id)

        if run_in_background:
            self._task = asyncio.create_task(self._run(self._generation))
        else:
            await self._run(self._generation)

    def pause(self):
        state = self.state
        state.is_paused = not state.is_paused
        if state.is_paused:
            self._resumed.clear()
        else:
            self._resumed.set()
        if state.is_running:
            state.status = "paused" if state.is_paused else "running"
            self._log("info", "execution paused" if state.is_paused else "execution resumed")

    def stop(self):
        self._halt("stopped")

    async def step(self) -> Optional[str]:
        """Advance exactly one node.

        From an idle or stopped controller this begins a new walk from the start
        node; the existing path is kept and appended to.
        """
        state = self.state
        if state.current_node_id is None and not state.is_running:
            self._check_graph()
            self.engine.reset()
            state.variables = {}
            state.error = None

        next_id = self.engine.get_next_node(state.current_node_id)
        if next_id is None:
            self._log("info", "no next node")
            return None
        await self._visit(next_id)
        return next_id

    def set_step_delay(self, delay_ms: int):
        if delay_ms < 0:
            raise ValueError("step delay must be >= 0")
        self.state.step_delay_ms = delay_ms

    def set_center_on_step(self, center: bool):
        self.state.center_on_step = center

    async def wait(self):
        """Wait for a background run to finish."""
        if self._task is not None:
            await self._task

    # internals

    def _check_graph(self):
        try:
            self.graph.validate_for_run()
        except ConfigurationError as e:
            self._halt("error")
            self.state.error = str(e)
            self.state.status = "error"
            self._log("error", str(e))
            raise

    def _cancel_task(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.state.is_running

    async def _run(self, generation: int):
        try:
            while self._is_current(generation):
                if self.state.is_paused:
                    await self._resumed.wait()
                    continue

                next_id = self.engine.get_next_node(self.state.current_node_id)
                if next_id is None:
                    self._halt("completed")
                    break

                await self._visit(next_id, generation)
                if not self._is_current(generation):
                    break
                await self._sleep()
        except Exception as e:
            logger.exception("run failed at %s", self.state.current_node_id)
            if generation == self._generation:
                self.state.error = str(e)
                self._log("error", str(e), self.state.current_node_id)
                self._halt("error")

    async def _visit(self, node_id: str, generation: Optional[int] = None):
        result = self.engine.execute_node_action(node_id)
        if inspect.isawaitable(result):
            await result
            # stopped or restarted while the device action was running
            if generation is not None and not self._is_current(generation):
                return

        state = self.state
        state.current_node_id = node_id
        state.execution_path.append(node_id)
        state.variables = dict(self.engine.variables)
        if self.history and self.history[-1].end_time is None:
            self.history[-1].nodes_executed += 1
        self._log("success", f"visited {node_id}", node_id)

        for callback in list(self._observers):
            try:
                res = callback(node_id, state)
                if inspect.isawaitable(res):
                    await res
            except Exception:
                logger.exception("observer failed for node %s", node_id)

    async def _sleep(self):
        delay = self.state.step_delay_ms / 1000
        if delay <= 0:
            await asyncio.sleep(0)
            return
        self._wake.clear()
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _halt(self, status: str):
        state = self.state
        was_running = state.is_running
        state.is_running = False
        state.is_paused = False
        state.current_node_id = None
        self._resumed.set()
        self._wake.set()
        if not was_running:
            return

        state.status = status
        if status == "completed":
            self._log("success", "execution completed")
        elif status == "stopped":
            self._log("warning", "execution stopped")

        record = self.history[-1] if self.history else None
        if record is not None and record.end_time is None:
            record.end_time = datetime.now()
            record.status = status
            record.total_duration = (record.end_time - record.start_time).total_seconds()

    def _log(self, level: str, message: str, node_id: Optional[str] = None):
        self.state.logs.append(LogEntry(level=level, message=message, node_id=node_id))
        logger.log(_LOG_LEVELS[level], message if node_id is None else f"[{node_id}] {message}")
