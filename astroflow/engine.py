# astroflow/engine.py
import logging
import random
from typing import Any, Callable, Dict, Optional

from .actions import ACTIONS
from .conditions import evaluate, evaluate_any
from .models import CountLoop, ForEachLoop, Node, NodeKind, WhileLoop, WorkflowGraph

logger = logging.getLogger(__name__)

BODY = "body"
NEXT = "next"


class ExecutionEngine:
    """Walks a workflow graph one node at a time.

    The engine owns the variable environment and the per-loop counters for a
    single run. It never raises for data problems: a missing field, a type
    mismatch or a missing handle just means there is no next node.
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        actions: Optional[Dict[NodeKind, Callable]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.graph = graph
        self.actions = ACTIONS if actions is None else actions
        self.rng = rng or random.Random()
        self.variables: Dict[str, Any] = {}
        self.loop_counters: Dict[str, int] = {}

    def reset(self):
        self.variables = {}
        self.loop_counters = {}

    def get_next_node(self, current_id: Optional[str]) -> Optional[str]:
        if current_id is None:
            start = self.graph.start_node()
            return start.id if start else None

        node = self.graph.find_node(current_id)
        if node is None:
            return None

        if node.kind == NodeKind.BRANCH:
            return self._next_from_branch(node)
        if node.kind == NodeKind.LOOP:
            return self._next_from_loop(node)

        # linear nodes: first outgoing edge in edge-list order, handle ignored
        edges = self.graph.outgoing_edges(node.id)
        return edges[0].target if edges else None

    def _follow(self, node_id: str, handle: str) -> Optional[str]:
        edge = self.graph.outgoing_edge(node_id, handle)
        return edge.target if edge else None

    def _next_from_branch(self, node: Node) -> Optional[str]:
        conditions = getattr(node.data, "conditions", None) or []
        matched = evaluate_any(self.variables, conditions)
        logger.debug("branch %s -> %s", node.id, matched)
        return self._follow(node.id, "true" if matched else "false")

    def _next_from_loop(self, node: Node) -> Optional[str]:
        config = getattr(node.data, "loop_config", None)
        counter = self.loop_counters.get(node.id, 0)

        # counters are never reset here: an exhausted loop stays exhausted
        # for the rest of the run, even if control re-enters it
        if isinstance(config, CountLoop):
            # 0 is not a usable count; the editor falls back to a single pass
            if counter < (config.count or 1):
                self.loop_counters[node.id] = counter + 1
                return self._follow(node.id, BODY)
        elif isinstance(config, WhileLoop):
            if config.condition is not None and evaluate(self.variables, config.condition):
                return self._follow(node.id, BODY)
        elif isinstance(config, ForEachLoop):
            collection = self.variables.get(config.collection)
            if isinstance(collection, (list, tuple)) and counter < len(collection):
                self.loop_counters[node.id] = counter + 1
                item = collection[counter]
                if item is not None:
                    self.variables["current"] = item
                return self._follow(node.id, BODY)
            if collection is None:
                logger.debug("loop %s: collection %r not set, skipping body", node.id, config.collection)

        return self._follow(node.id, NEXT)

    def execute_node_action(self, node_id: str) -> Any:
        """Run the action registered for the node's kind.

        Returns whatever the action returns, so an async action hands back an
        awaitable that the caller is expected to await.
        """
        node = self.graph.find_node(node_id)
        if node is None:
            return None
        action = self.actions.get(node.kind)
        if action is None:
            return None
        return action(node, self.variables, self.rng)
