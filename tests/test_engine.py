import random

import pytest

from astroflow.engine import ExecutionEngine
from astroflow.models import NodeKind
from conftest import graph


def test_start_from_nothing(linear_graph):
    engine = ExecutionEngine(linear_graph)
    assert engine.get_next_node(None) == "start"


def test_no_start_node_gives_none(branch_graph):
    assert ExecutionEngine(branch_graph).get_next_node(None) is None


def test_linear_chain(linear_graph):
    engine = ExecutionEngine(linear_graph)
    assert engine.get_next_node("start") == "t1"
    assert engine.get_next_node("t1") == "end"
    assert engine.get_next_node("end") is None


def test_unknown_current_node(linear_graph):
    assert ExecutionEngine(linear_graph).get_next_node("ghost") is None


def test_linear_node_takes_first_edge_in_list_order():
    g = graph(
        [("a", "task", {}), ("b", "task", {}), ("c", "task", {})],
        [("a", "c", "whatever"), ("a", "b", None)],
    )
    assert ExecutionEngine(g).get_next_node("a") == "c"


def test_branch_true_path(branch_graph):
    engine = ExecutionEngine(branch_graph)
    engine.variables["x"] = 1
    assert engine.get_next_node("b") == "n1"


def test_branch_false_path(branch_graph):
    engine = ExecutionEngine(branch_graph)
    engine.variables["x"] = "1"
    assert engine.get_next_node("b") == "n2"
    engine.variables.clear()
    assert engine.get_next_node("b") == "n2"


def test_branch_any_match_takes_true_handle():
    g = graph(
        [
            ("b", "branch", {"conditions": [
                {"field": "a", "type": "eq", "value": 1},
                {"field": "b", "type": "gt", "value": 10},
            ]}),
            ("yes", "task", {}),
            ("no", "task", {}),
        ],
        [("b", "yes", "true"), ("b", "no", "false")],
    )
    engine = ExecutionEngine(g)
    engine.variables.update(a=1, b=20)
    assert engine.get_next_node("b") == "yes"
    # only the second condition holds
    engine.variables.update(a=0, b=20)
    assert engine.get_next_node("b") == "yes"
    engine.variables.update(a=0, b=0)
    assert engine.get_next_node("b") == "no"


def test_branch_without_conditions_takes_false():
    g = graph(
        [("b", "branch", {}), ("n1", "task", {}), ("n2", "task", {})],
        [("b", "n1", "true"), ("b", "n2", "false")],
    )
    assert ExecutionEngine(g).get_next_node("b") == "n2"


def test_branch_missing_handle_is_dead_end():
    g = graph([("b", "branch", {}), ("n1", "task", {})], [("b", "n1", "true"), ("b", "n1", None)])
    assert ExecutionEngine(g).get_next_node("b") is None


def test_next_node_is_deterministic(branch_graph):
    engine = ExecutionEngine(branch_graph)
    engine.variables["x"] = 1
    assert {engine.get_next_node("b") for _ in range(5)} == {"n1"}


def test_count_loop(count_loop_graph):
    engine = ExecutionEngine(count_loop_graph)
    assert engine.get_next_node("loop") == "body"
    assert engine.loop_counters["loop"] == 1
    assert engine.get_next_node("loop") == "body"
    assert engine.loop_counters["loop"] == 2
    assert engine.get_next_node("loop") == "after"
    assert engine.loop_counters["loop"] == 2


def test_count_loop_visits_body_exactly_count_times():
    g = graph(
        [("loop", "loop", {"loopConfig": {"type": "count", "count": 3}}), ("body", "task", {}), ("after", "task", {})],
        [("loop", "body", "body"), ("body", "loop", None), ("loop", "after", "next")],
    )
    engine = ExecutionEngine(g)
    seen = [engine.get_next_node("loop") for _ in range(4)]
    assert seen == ["body", "body", "body", "after"]
    assert engine.loop_counters["loop"] == 3


def test_exhausted_loop_stays_exhausted(count_loop_graph):
    # counters are not reset when a loop falls through; re-entry skips the body
    engine = ExecutionEngine(count_loop_graph)
    for _ in range(3):
        engine.get_next_node("loop")
    assert engine.get_next_node("loop") == "after"
    engine.reset()
    assert engine.get_next_node("loop") == "body"


def test_count_loop_defaults_to_one():
    g = graph(
        [("loop", "loop", {"loopConfig": {"type": "count"}}), ("body", "task", {}), ("after", "task", {})],
        [("loop", "body", "body"), ("loop", "after", "next")],
    )
    engine = ExecutionEngine(g)
    assert engine.get_next_node("loop") == "body"
    assert engine.get_next_node("loop") == "after"


def test_count_loop_ignores_max_iterations():
    g = graph(
        [("loop", "loop", {"loopConfig": {"type": "count", "count": 3, "maxIterations": 1}}), ("body", "task", {}), ("after", "task", {})],
        [("loop", "body", "body"), ("loop", "after", "next")],
    )
    engine = ExecutionEngine(g)
    assert [engine.get_next_node("loop") for _ in range(4)] == ["body", "body", "body", "after"]


def test_zero_count_runs_body_once():
    g = graph(
        [("loop", "loop", {"loopConfig": {"type": "count", "count": 0}}), ("body", "task", {}), ("after", "task", {})],
        [("loop", "body", "body"), ("loop", "after", "next")],
    )
    engine = ExecutionEngine(g)
    assert [engine.get_next_node("loop") for _ in range(3)] == ["body", "after", "after"]
    assert engine.loop_counters["loop"] == 1


def test_foreach_binds_current(foreach_graph):
    engine = ExecutionEngine(foreach_graph)
    engine.variables["items"] = [1, 2, 3]
    bound = []
    for _ in range(3):
        assert engine.get_next_node("loop") == "body"
        bound.append(engine.variables["current"])
    assert bound == [1, 2, 3]
    assert engine.get_next_node("loop") == "after"
    assert engine.get_next_node("loop") == "after"
    assert engine.loop_counters["loop"] == 3


@pytest.mark.parametrize("collection", [None, "abc", 5, {"a": 1}])
def test_foreach_non_array_falls_through(foreach_graph, collection):
    engine = ExecutionEngine(foreach_graph)
    if collection is not None:
        engine.variables["items"] = collection
    assert engine.get_next_node("loop") == "after"
    assert "current" not in engine.variables


def test_while_loop(endless_graph):
    engine = ExecutionEngine(endless_graph)
    assert engine.get_next_node("loop") == "work"
    assert engine.get_next_node("loop") == "work"
    assert "loop" not in engine.loop_counters
    engine.variables["done"] = True
    assert engine.get_next_node("loop") == "end"


def test_while_loop_without_condition_skips_body():
    g = graph(
        [("loop", "loop", {"loopConfig": {"type": "while"}}), ("body", "task", {}), ("after", "task", {})],
        [("loop", "body", "body"), ("loop", "after", "next")],
    )
    assert ExecutionEngine(g).get_next_node("loop") == "after"


def test_loop_without_config_passes_through():
    g = graph(
        [("loop", "loop", {}), ("body", "task", {}), ("after", "task", {})],
        [("loop", "body", "body"), ("loop", "after", "next")],
    )
    engine = ExecutionEngine(g)
    assert engine.get_next_node("loop") == "after"
    assert engine.loop_counters == {}


def test_loop_without_next_edge_ends():
    g = graph(
        [("loop", "loop", {"loopConfig": {"type": "count", "count": 1}}), ("body", "task", {})],
        [("loop", "body", "body")],
    )
    engine = ExecutionEngine(g)
    assert engine.get_next_node("loop") == "body"
    assert engine.get_next_node("loop") is None


def test_smart_exposure_action():
    g = graph([("s", "smartExposure", {"exposureConfig": {"exposureTime": 30}}), ("d", "smartExposure", {})], [])
    engine = ExecutionEngine(g, rng=random.Random(1))
    engine.execute_node_action("s")
    assert engine.variables["exposureTime"] == 30
    assert 0 <= engine.variables["currentADU"] < 65535
    engine.execute_node_action("d")
    assert engine.variables["exposureTime"] == 1


def test_focus_action():
    g = graph([("f", "focus", {})], [])
    engine = ExecutionEngine(g, rng=random.Random(1))
    engine.execute_node_action("f")
    assert 0 <= engine.variables["focusPosition"] < 1000
    assert 0 <= engine.variables["hfdValue"] < 10


def test_other_kinds_have_no_action(linear_graph):
    engine = ExecutionEngine(linear_graph)
    for node_id in ("start", "t1", "end", "ghost"):
        assert engine.execute_node_action(node_id) is None
    assert engine.variables == {}


def test_custom_actions_replace_builtins():
    calls = []

    def record(node, variables, rng):
        calls.append(node.id)
        variables["filter"] = "Ha"

    g = graph([("fw", "filterWheel", {}), ("f", "focus", {})], [])
    engine = ExecutionEngine(g, actions={NodeKind.FILTER_WHEEL: record})
    engine.execute_node_action("fw")
    engine.execute_node_action("f")
    assert calls == ["fw"]
    assert engine.variables == {"filter": "Ha"}


def test_action_effects_drive_branch():
    g = graph(
        [
            ("expose", "smartExposure", {"exposureConfig": {"exposureTime": 120}}),
            ("long", "branch", {"conditions": [{"field": "exposureTime", "type": "gte", "value": 60}]}),
            ("yes", "task", {}),
            ("no", "task", {}),
        ],
        [("expose", "long", None), ("long", "yes", "true"), ("long", "no", "false")],
    )
    engine = ExecutionEngine(g, rng=random.Random(0))
    assert engine.get_next_node("long") == "no"
    engine.execute_node_action("expose")
    assert engine.get_next_node("long") == "yes"
