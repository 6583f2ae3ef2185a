from .controller import ExecutionController
from .engine import ExecutionEngine
from .errors import ActionFailure, ConfigurationError
from .models import Condition, Edge, ExecutionState, Node, NodeKind, WorkflowGraph

__all__ = [
    "ActionFailure",
    "Condition",
    "ConfigurationError",
    "Edge",
    "ExecutionController",
    "ExecutionEngine",
    "ExecutionState",
    "Node",
    "NodeKind",
    "WorkflowGraph",
]
