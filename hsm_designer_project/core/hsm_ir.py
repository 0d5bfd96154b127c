# hsm_designer_project/core/hsm_ir.py
"""
Defines the in-memory graph for a hierarchical state machine.

The live model is a flat forest: every node carries an optional parent_id and
nesting is only materialised when the graph is written to a document. State
nodes hold the machine's behaviour; decision and proxy nodes are auxiliary
pseudo-nodes layered on top, and transitions connect any of them by id.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, NamedTuple

from ..utils.config import DEFAULT_STATE_WIDTH, DEFAULT_STATE_HEIGHT, DEFAULT_DECISION_SIZE

# ==============================================================================
# Geometry Components
# ==============================================================================

@dataclass
class Point:
    x: float = 0
    y: float = 0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data) -> Optional['Point']:
        if not isinstance(data, dict):
            return None
        return cls(x=data.get("x", 0), y=data.get("y", 0))


@dataclass
class NodeGeometry:
    """Position (relative to the parent node) and size of a node on the canvas."""
    x: float = 0
    y: float = 0
    width: float = DEFAULT_STATE_WIDTH
    height: float = DEFAULT_STATE_HEIGHT


@dataclass
class MarkerGeometry:
    """Placement of an initial or history marker inside its owning state."""
    pos: Point
    size: Optional[float] = None


@dataclass
class EdgeGraphics:
    """Rendering-only hints for a transition. Never affects semantics."""
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    control_points: List[Point] = field(default_factory=list)
    label_position: Optional[float] = None

    def is_empty(self) -> bool:
        return not (self.source_handle or self.target_handle
                    or self.control_points or self.label_position is not None)

# ==============================================================================
# Node Components
# ==============================================================================

@dataclass
class GraphNode:
    """Fields shared by every node kind in the forest."""
    id: str
    label: str
    parent_id: Optional[str] = None
    geometry: NodeGeometry = field(default_factory=NodeGeometry)

    kind = "node"

    @property
    def is_state(self) -> bool:
        return self.kind == "state"


@dataclass
class StateNode(GraphNode):
    """A machine state. May nest other states, decisions and proxies."""
    entry: str = ""
    exit: str = ""
    do: str = ""
    annotation: str = ""
    history: bool = False
    orthogonal: bool = False
    # Id of the default child entered when this state is entered.
    initial: Optional[str] = None
    initial_marker: Optional[MarkerGeometry] = None
    history_marker: Optional[MarkerGeometry] = None
    show_annotation: bool = False
    show_entry: bool = False
    show_do: bool = False
    show_exit: bool = False

    kind = "state"


@dataclass
class DecisionNode(GraphNode):
    """A branching pseudo-state; it only hosts outgoing transitions."""
    geometry: NodeGeometry = field(
        default_factory=lambda: NodeGeometry(width=DEFAULT_DECISION_SIZE, height=DEFAULT_DECISION_SIZE))

    kind = "decision"

    @property
    def size(self) -> float:
        return self.geometry.width


@dataclass
class ProxyNode(GraphNode):
    """A visual stand-in that forwards to a real state elsewhere in the diagram."""
    target_id: Optional[str] = None
    # Cached display path of the target, kept for when the target goes away.
    target_path: str = ""
    broken: bool = False

    kind = "proxy"

# ==============================================================================
# Edge Component
# ==============================================================================

@dataclass
class Transition:
    """A directed edge between two nodes, with opaque guard and action code."""
    id: str
    source_id: str
    target_id: str
    guard: str = ""
    action: str = ""
    graphics: Optional[EdgeGraphics] = None

# ==============================================================================
# Machine-wide Properties
# ==============================================================================

@dataclass
class Hooks:
    """Code applied implicitly to every state (and every transition)."""
    entry: str = ""
    exit: str = ""
    do: str = ""
    transition: str = ""


@dataclass
class MachineProperties:
    """
    Properties of the implicit root of the forest. The language tag is purely
    cosmetic: code fragments are stored as opaque text.
    """
    language: str = ""
    includes: str = ""
    context: str = ""
    context_init: str = ""
    entry: str = ""
    exit: str = ""
    do: str = ""
    hooks: Hooks = field(default_factory=Hooks)
    # Id of the initial top-level state.
    initial: Optional[str] = None
    initial_marker: Optional[MarkerGeometry] = None
    history_marker: Optional[MarkerGeometry] = None


def default_machine_properties() -> MachineProperties:
    return MachineProperties()


class LoadedMachine(NamedTuple):
    """Everything the editor needs to make a freshly loaded document current."""
    nodes: List[GraphNode]
    edges: List[Transition]
    root_history: bool
    machine_properties: MachineProperties
