import pytest

from astroflow.config import Settings
from astroflow.models import WorkflowGraph


def graph(nodes, edges):
    """Build a snapshot from editor-style dicts: nodes as (id, type, data), edges as (source, target, handle)."""
    return WorkflowGraph.model_validate({
        "nodes": [{"id": i, "type": t, "data": d} for i, t, d in nodes],
        "edges": [
            {"id": f"e{n}", "source": s, "target": t, "sourceHandle": h}
            for n, (s, t, h) in enumerate(edges)
        ],
    })


@pytest.fixture
def settings():
    return Settings(step_delay_ms=0, center_on_step=False, simulation_seed=7)


@pytest.fixture
def linear_graph():
    return graph(
        [("start", "start", {}), ("t1", "task", {"name": "T1"}), ("end", "end", {})],
        [("start", "t1", None), ("t1", "end", None)],
    )


@pytest.fixture
def branch_graph():
    return graph(
        [
            ("b", "branch", {"conditions": [{"field": "x", "type": "eq", "value": 1}]}),
            ("n1", "task", {}),
            ("n2", "task", {}),
        ],
        [("b", "n1", "true"), ("b", "n2", "false")],
    )


@pytest.fixture
def count_loop_graph():
    return graph(
        [
            ("start", "start", {}),
            ("loop", "loop", {"loopConfig": {"type": "count", "count": 2}}),
            ("body", "task", {}),
            ("after", "end", {}),
        ],
        [("start", "loop", None), ("loop", "body", "body"), ("body", "loop", None), ("loop", "after", "next")],
    )


@pytest.fixture
def foreach_graph():
    return graph(
        [
            ("loop", "loop", {"loopConfig": {"type": "forEach", "collection": "items"}}),
            ("body", "task", {}),
            ("after", "task", {}),
        ],
        [("loop", "body", "body"), ("loop", "after", "next")],
    )


@pytest.fixture
def endless_graph():
    # while condition on an unset field with neq is always true
    return graph(
        [
            ("start", "start", {}),
            ("loop", "loop", {"loopConfig": {"type": "while", "condition": {"field": "done", "type": "neq", "value": True}}}),
            ("work", "task", {}),
            ("end", "end", {}),
        ],
        [("start", "loop", None), ("loop", "work", "body"), ("work", "loop", None), ("loop", "end", "next")],
    )
