# astroflow/actions.py
import random
from typing import Any, Callable, Dict

from .models import Node, NodeKind

# node kind -> fn(node, variables, rng); may be sync or async
ACTIONS: Dict[NodeKind, Callable] = {}

MAX_ADU = 65535


def register_action(kind: NodeKind):
    def decorator(fn):
        ACTIONS[kind] = fn
        return fn
    return decorator


# Built-in simulated device actions. Real device drivers replace these by
# registering their own function for the kind, or by handing a custom mapping
# to ExecutionEngine.

@register_action(NodeKind.SMART_EXPOSURE)
def simulate_exposure(node: Node, variables: Dict[str, Any], rng: random.Random) -> None:
    config = getattr(node.data, "exposure_config", None)
    exposure = config.exposure_time if config is not None else None
    # 0 is not a usable exposure; the editor falls back to 1s as well
    variables["exposureTime"] = exposure or 1
    variables["currentADU"] = rng.random() * MAX_ADU


@register_action(NodeKind.FOCUS)
def simulate_focus(node: Node, variables: Dict[str, Any], rng: random.Random) -> None:
    variables["focusPosition"] = rng.random() * 1000
    variables["hfdValue"] = rng.random() * 10
