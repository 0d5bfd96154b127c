# hsm_designer_project/__init__.py
"""
Document codec and graph-consistency core of the Hierarchical State Machine
Designer: converts the editor's flat node forest to and from its nested YAML
document, and checks the forest's id references.
"""

from .core.hsm_ir import (
    Point, NodeGeometry, MarkerGeometry, EdgeGraphics,
    GraphNode, StateNode, DecisionNode, ProxyNode, Transition,
    Hooks, MachineProperties, LoadedMachine, default_machine_properties,
)
from .core.exceptions import HsmDesignerError, DocumentFormatError, ModelConsistencyError, GraphEditError
from .core.path_resolver import absolute_path, relative_path, resolve_target_path
from .core.yaml_serializer import serialize_machine
from .core.yaml_deserializer import deserialize_machine
from .core.model_consistency import (
    ConsistencyError, ConsistencyErrorKind, check_model_consistency, assert_model_consistent
)
from .utils.config import APP_VERSION

__version__ = APP_VERSION

__all__ = [
    "Point", "NodeGeometry", "MarkerGeometry", "EdgeGraphics",
    "GraphNode", "StateNode", "DecisionNode", "ProxyNode", "Transition",
    "Hooks", "MachineProperties", "LoadedMachine", "default_machine_properties",
    "HsmDesignerError", "DocumentFormatError", "ModelConsistencyError", "GraphEditError",
    "absolute_path", "relative_path", "resolve_target_path",
    "serialize_machine", "deserialize_machine",
    "ConsistencyError", "ConsistencyErrorKind", "check_model_consistency", "assert_model_consistent",
]
