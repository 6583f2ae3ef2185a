# astroflow/workflows/imaging.py
from typing import Optional

from ..models import Edge, Node, WorkflowGraph

# Example imaging session: cool the camera, focus, take a fixed number of
# dithered exposures, then plate solve if the last frame is not saturated.


def _node(node_id: str, kind: str, name: str, x: float, y: float, **data) -> Node:
    return Node.model_validate(
        {"id": node_id, "type": kind, "position": {"x": x, "y": y}, "data": {"name": name, **data}}
    )


def _edge(source: str, target: str, handle: Optional[str] = None) -> Edge:
    suffix = f"-{handle}" if handle else ""
    return Edge(id=f"{source}-{target}{suffix}", source=source, target=target, source_handle=handle)


def build_imaging_session(frames: int = 3, exposure_time: float = 30, saturation_adu: float = 60000) -> WorkflowGraph:
    nodes = [
        _node("start", "start", "Start", 0, 0),
        _node("cool", "cooling", "Camera Cooling", 0, 100, params={
            "inputs": [{"name": "temperature", "type": "number", "required": True, "defaultValue": -10}],
        }),
        _node("focus", "focus", "Auto Focus", 0, 200),
        _node("frames", "loop", "Light Frames", 0, 300, loopConfig={"type": "count", "count": frames}),
        _node("expose", "smartExposure", "Smart Exposure", 200, 300,
              exposureConfig={"exposureTime": exposure_time}),
        _node("dither", "dither", "Dither", 200, 400),
        _node("check", "branch", "Frame Usable?", 0, 400, conditions=[
            {"field": "currentADU", "type": "lt", "value": saturation_adu},
        ]),
        _node("solve", "platesolving", "Plate Solving", 0, 500),
        _node("discard", "task", "Flag Saturated Frame", 200, 500),
        _node("end", "end", "End", 0, 600),
    ]
    edges = [
        _edge("start", "cool"),
        _edge("cool", "focus"),
        _edge("focus", "frames"),
        _edge("frames", "expose", "body"),
        _edge("expose", "dither"),
        _edge("dither", "frames"),
        _edge("frames", "check", "next"),
        _edge("check", "solve", "true"),
        _edge("check", "discard", "false"),
        _edge("solve", "end"),
        _edge("discard", "end"),
    ]
    return WorkflowGraph(nodes=nodes, edges=edges)
