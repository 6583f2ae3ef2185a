# astroflow/models.py
import logging
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

LiteralValue = Union[bool, int, float, str]


class NodeKind(str, Enum):
    START = "start"
    END = "end"
    TASK = "task"
    BRANCH = "branch"
    LOOP = "loop"
    GROUP = "group"
    SMART_EXPOSURE = "smartExposure"
    FILTER_WHEEL = "filterWheel"
    FOCUS = "focus"
    DITHER = "dither"
    PLATE_SOLVING = "platesolving"
    COOLING = "cooling"
    FILE_UPLOAD = "fileUpload"
    FILE_DOWNLOAD = "fileDownload"
    FOLDER_MANAGER = "folderManager"


# kinds that only carry a free-form parameter block
DEVICE_KINDS = {
    NodeKind.FILTER_WHEEL,
    NodeKind.FOCUS,
    NodeKind.DITHER,
    NodeKind.PLATE_SOLVING,
    NodeKind.COOLING,
    NodeKind.FILE_UPLOAD,
    NodeKind.FILE_DOWNLOAD,
    NodeKind.FOLDER_MANAGER,
}


class Comparator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    CONTAINS = "contains"
    MATCHES = "matches"


class Condition(BaseModel):
    field: str
    type: Comparator
    value: LiteralValue


class Position(BaseModel):
    x: float = 0
    y: float = 0


class Parameter(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    type: str = "string"
    description: str = ""
    required: bool = False
    default_value: Optional[LiteralValue] = Field(default=None, alias="defaultValue")

    @property
    def is_satisfied(self) -> bool:
        # mirrors the editor: a required parameter needs a truthy default
        return not self.required or bool(self.default_value)


class ParamBlock(BaseModel):
    inputs: List[Parameter] = Field(default_factory=list)
    outputs: List[Parameter] = Field(default_factory=list)


class CountLoop(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["count"] = "count"
    count: int = 1
    max_iterations: Optional[int] = Field(default=None, alias="maxIterations")


class WhileLoop(BaseModel):
    type: Literal["while"] = "while"
    condition: Optional[Condition] = None


class ForEachLoop(BaseModel):
    type: Literal["forEach"] = "forEach"
    collection: str = ""


LoopConfig = Annotated[Union[CountLoop, WhileLoop, ForEachLoop], Field(discriminator="type")]


class NodeData(BaseModel):
    """Display data shared by every kind. Extra editor fields (color, tags...) are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = ""
    description: str = ""


class BranchData(NodeData):
    conditions: List[Condition] = Field(default_factory=list)


class LoopData(NodeData):
    loop_config: Optional[LoopConfig] = Field(default=None, alias="loopConfig")


class DeviceData(NodeData):
    params: ParamBlock = Field(default_factory=ParamBlock)


class ExposureConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    exposure_time: Optional[float] = Field(default=None, alias="exposureTime")


class SmartExposureData(DeviceData):
    exposure_config: Optional[ExposureConfig] = Field(default=None, alias="exposureConfig")


DATA_MODELS = {
    NodeKind.BRANCH: BranchData,
    NodeKind.LOOP: LoopData,
    NodeKind.SMART_EXPOSURE: SmartExposureData,
}
DATA_MODELS.update({kind: DeviceData for kind in DEVICE_KINDS})


class Node(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    kind: NodeKind = Field(alias="type")
    position: Position = Field(default_factory=Position)
    data: SerializeAsAny[NodeData] = Field(default_factory=NodeData, validate_default=True)

    @field_validator("data", mode="before")
    @classmethod
    def _parse_kind_data(cls, value: Any, info: ValidationInfo) -> NodeData:
        # kind failed validation; let the kind error be the one reported
        if "kind" not in info.data:
            return NodeData()
        model = DATA_MODELS.get(info.data["kind"], NodeData)
        if isinstance(value, model):
            return value
        if isinstance(value, BaseModel):
            value = value.model_dump(by_alias=True)
        return model.model_validate(value or {})


class Edge(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    animated: bool = False
    style: Dict[str, Any] = Field(default_factory=dict)


class WorkflowGraph(BaseModel):
    """Read-only snapshot of an editor graph, handed to an engine at run start."""

    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "WorkflowGraph":
        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"duplicate node id: {node.id}")
            seen.add(node.id)
        for edge in self.edges:
            for end in (edge.source, edge.target):
                if end not in seen:
                    raise ValueError(f"edge {edge.id} references unknown node {end}")
        return self

    def find_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.source == node_id]

    def outgoing_edge(self, node_id: str, handle: str) -> Optional[Edge]:
        for edge in self.edges:
            if edge.source == node_id and edge.source_handle == handle:
                return edge
        return None

    def start_node(self) -> Optional[Node]:
        starts = [n for n in self.nodes if n.kind == NodeKind.START]
        if len(starts) > 1:
            logger.warning("graph has %d start nodes; using %s", len(starts), starts[0].id)
        return starts[0] if starts else None

    def validate_for_run(self) -> Node:
        """Return the start node, raising ConfigurationError when the graph cannot run."""
        start = self.start_node()
        if start is None:
            raise ConfigurationError("workflow has no start node")
        return start

    def validate_node_params(self, node_id: str) -> bool:
        node = self.find_node(node_id)
        params = getattr(node.data, "params", None) if node else None
        if params is None:
            return True
        return all(p.is_satisfied for p in params.inputs + params.outputs)


class LogEntry(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.now)
    level: Literal["info", "warning", "error", "success"] = "info"
    message: str
    node_id: Optional[str] = None


class ExecutionState(BaseModel):
    is_running: bool = False
    is_paused: bool = False
    current_node_id: Optional[str] = None
    execution_path: List[str] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    step_delay_ms: int = 1000
    center_on_step: bool = True
    error: Optional[str] = None
    status: Literal["idle", "running", "paused", "stopped", "completed", "error"] = "idle"
    logs: List[LogEntry] = Field(default_factory=list)


class RunRecord(BaseModel):
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    status: str = "running"
    nodes_executed: int = 0
    total_duration: Optional[float] = None
