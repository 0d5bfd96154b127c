# hsm_designer_project/core/yaml_deserializer.py
"""
Reads a YAML state machine document back into the flat node forest.

Loading runs in two passes. The structural pass walks the nested records,
mints a fresh id for every state and decision and lays out nodes that carry
no saved geometry. Only once every node exists does the reference pass
resolve transition targets and initial-state names, because documents freely
refer forward to siblings and decisions defined later.

References that cannot be resolved are dropped without error; the
consistency checker is the place where such gaps become visible.
"""

import logging
from typing import Dict, List, Optional, Tuple

import yaml

from .exceptions import DocumentFormatError
from .hsm_ir import (
    GraphNode, StateNode, DecisionNode, Transition, MachineProperties, Hooks,
    NodeGeometry, MarkerGeometry, EdgeGraphics, Point, LoadedMachine
)
from .path_resolver import resolve_target_path, PATH_SEPARATOR
from .yaml_serializer import DECISION_REFERENCE_PREFIX
from ..utils.config import (
    NODE_ID_PREFIX, DEFAULT_STATE_WIDTH, DEFAULT_STATE_HEIGHT, DEFAULT_DECISION_SIZE,
    LAYOUT_TOP_LEVEL_X, LAYOUT_TOP_LEVEL_Y, LAYOUT_HORIZONTAL_GAP,
    LAYOUT_CHILD_OFFSET_X, LAYOUT_CHILD_OFFSET_Y, LAYOUT_PARENT_MARGIN_X, LAYOUT_PARENT_MARGIN_BOTTOM,
    HISTORY_MARKER_POS_RATIO, HISTORY_MARKER_SIZE_RATIO, ROOT_HISTORY_MARKER_POS, ROOT_HISTORY_MARKER_SIZE
)

logger = logging.getLogger(__name__)


def load_document(text: str) -> dict:
    """
    Parses document text. Raises DocumentFormatError with the parser's message
    when the text is not valid YAML or its root is not a mapping.
    """
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DocumentFormatError(str(e)) from e
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise DocumentFormatError(f"Expected a mapping at the document root, got {type(doc).__name__}.")
    return doc


def _mapping(value) -> dict:
    return value if isinstance(value, dict) else {}


def _text(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _number(value, default):
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else default


def _marker(graphics: dict, prefix: str) -> Optional[MarkerGeometry]:
    pos = Point.from_dict(graphics.get(f"{prefix}MarkerPos"))
    if pos is None:
        return None
    return MarkerGeometry(pos=pos, size=graphics.get(f"{prefix}MarkerSize"))


def _decision_transitions(decision_data) -> list:
    """A decision is either a bare transition list or {transitions, graphics}."""
    if isinstance(decision_data, list):
        return decision_data
    if isinstance(decision_data, dict):
        transitions = decision_data.get("transitions")
        return transitions if isinstance(transitions, list) else []
    return []


def _edge_graphics(transition: dict) -> Optional[EdgeGraphics]:
    # "geometry" is accepted as an older spelling of "graphics".
    graphics = transition.get("graphics") or transition.get("geometry")
    if not isinstance(graphics, dict):
        return None
    control_points = [p for p in (Point.from_dict(cp) for cp in graphics.get("controlPoints") or []) if p]
    edge_graphics = EdgeGraphics(
        source_handle=graphics.get("sourceHandle"),
        target_handle=graphics.get("targetHandle"),
        control_points=control_points,
        label_position=graphics.get("labelPosition"),
    )
    return None if edge_graphics.is_empty() else edge_graphics


class _DocumentLoader:
    """State for one deserialization run."""

    def __init__(self, doc: dict):
        self.doc = doc
        self.nodes: List[GraphNode] = []
        self.edges: List[Transition] = []
        self.node_index: Dict[str, GraphNode] = {}
        self.path_to_id: Dict[str, str] = {}
        self.decision_name_to_id: Dict[str, str] = {}
        # (containing state id, name) -> id; names are only unique per scope.
        self.scoped_decision_ids: Dict[Tuple[Optional[str], str], str] = {}
        self._id_counter = 1

    def _next_id(self) -> str:
        node_id = f"{NODE_ID_PREFIX}{self._id_counter}"
        self._id_counter += 1
        return node_id

    def _add_node(self, node: GraphNode):
        # Parents are appended before their children.
        self.nodes.append(node)
        self.node_index[node.id] = node

    # ==========================================================================
    # Pass 1: structure and layout
    # ==========================================================================

    def process_state(self, name: str, state_data, parent_id: Optional[str], parent_path: str,
                      layout_x: float, layout_y: float) -> Tuple[float, float]:
        """Creates the state and its subtree; returns the state's (width, height)."""
        data = _mapping(state_data)
        node_id = self._next_id()
        full_path = f"{parent_path}{PATH_SEPARATOR}{name}" if parent_path else name
        self.path_to_id[full_path] = node_id

        graphics = data.get("graphics") if isinstance(data.get("graphics"), dict) else None
        has_saved_geometry = graphics is not None
        if has_saved_geometry:
            geometry = NodeGeometry(
                x=_number(graphics.get("x"), layout_x), y=_number(graphics.get("y"), layout_y),
                width=_number(graphics.get("width"), DEFAULT_STATE_WIDTH),
                height=_number(graphics.get("height"), DEFAULT_STATE_HEIGHT))
        else:
            geometry = NodeGeometry(x=layout_x, y=layout_y)
        graphics = graphics or {}

        state = StateNode(
            id=node_id, label=name, parent_id=parent_id, geometry=geometry,
            entry=_text(data.get("entry")), exit=_text(data.get("exit")), do=_text(data.get("do")),
            annotation=_text(data.get("annotation")),
            history=bool(data.get("history", False)), orthogonal=bool(data.get("orthogonal", False)),
            initial_marker=_marker(graphics, "initial"), history_marker=_marker(graphics, "history"),
            show_annotation=bool(graphics.get("showAnnotation", False)),
            show_entry=bool(graphics.get("showEntry", False)),
            show_do=bool(graphics.get("showDo", False)),
            show_exit=bool(graphics.get("showExit", False)),
        )
        if state.history and state.history_marker is None:
            state.history_marker = MarkerGeometry(
                pos=Point(geometry.width * HISTORY_MARKER_POS_RATIO, geometry.height * HISTORY_MARKER_POS_RATIO),
                size=min(geometry.width, geometry.height) * HISTORY_MARKER_SIZE_RATIO)
        self._add_node(state)

        child_x = LAYOUT_CHILD_OFFSET_X
        child_y = LAYOUT_CHILD_OFFSET_Y
        max_child_height = 0
        total_children_width = 0
        children = _mapping(data.get("states"))
        for child_name, child_data in children.items():
            child_width, child_height = self.process_state(
                str(child_name), child_data, node_id, full_path, child_x, child_y)
            child_x += child_width + LAYOUT_HORIZONTAL_GAP
            total_children_width = child_x - LAYOUT_HORIZONTAL_GAP
            max_child_height = max(max_child_height, child_height)

        decisions = _mapping(data.get("decisions"))
        if decisions:
            self.process_decisions(decisions, node_id, child_x, child_y)

        if not has_saved_geometry and children:
            geometry.width = max(DEFAULT_STATE_WIDTH, total_children_width + LAYOUT_PARENT_MARGIN_X)
            geometry.height = max(DEFAULT_STATE_HEIGHT,
                                  max_child_height + child_y + LAYOUT_PARENT_MARGIN_BOTTOM)
        return geometry.width, geometry.height

    def process_decisions(self, decisions: dict, parent_id: Optional[str], layout_x: float, layout_y: float):
        dx = layout_x
        for decision_name, decision_data in decisions.items():
            decision_name = str(decision_name)
            node_id = self._next_id()
            if decision_name in self.decision_name_to_id:
                logger.warning(f"YAML Import: Decision name '{decision_name}' is used more than once; "
                               f"'@{decision_name}' refers to the last one.")
            self.decision_name_to_id[decision_name] = node_id
            self.scoped_decision_ids[(parent_id, decision_name)] = node_id

            x, y, size = dx, layout_y, DEFAULT_DECISION_SIZE
            if isinstance(decision_data, dict) and isinstance(decision_data.get("graphics"), dict):
                graphics = decision_data["graphics"]
                x = _number(graphics.get("x"), x)
                y = _number(graphics.get("y"), y)
                size = _number(graphics.get("size"), 0) or DEFAULT_DECISION_SIZE

            self._add_node(DecisionNode(
                id=node_id, label=decision_name, parent_id=parent_id,
                geometry=NodeGeometry(x=x, y=y, width=size, height=size)))
            dx += size + LAYOUT_HORIZONTAL_GAP

    def build_structure(self):
        top_level_x = LAYOUT_TOP_LEVEL_X
        for state_name, state_data in _mapping(self.doc.get("states")).items():
            width, _ = self.process_state(str(state_name), state_data, None, "",
                                          top_level_x, LAYOUT_TOP_LEVEL_Y)
            top_level_x += width + LAYOUT_HORIZONTAL_GAP

        root_decisions = _mapping(self.doc.get("decisions"))
        if root_decisions:
            self.process_decisions(root_decisions, None, top_level_x, LAYOUT_TOP_LEVEL_Y)

    # ==========================================================================
    # Pass 2: references
    # ==========================================================================

    def resolve_transition_target(self, raw_target: str, source_path: str) -> Optional[str]:
        if raw_target.startswith(DECISION_REFERENCE_PREFIX):
            return self.decision_name_to_id.get(raw_target[len(DECISION_REFERENCE_PREFIX):])

        target_id = self.path_to_id.get(resolve_target_path(raw_target, source_path))
        if target_id is None and not raw_target.startswith("."):
            # A bare name outside the sibling scope may still be an absolute path.
            target_id = self.path_to_id.get(raw_target)
        return target_id

    def create_edge(self, source_id: str, target_id: str, transition: dict):
        edge = Transition(
            id=f"e{source_id}-{target_id}-{len(self.edges)}",
            source_id=source_id, target_id=target_id,
            guard=_text(transition.get("guard")), action=_text(transition.get("action")),
            graphics=_edge_graphics(transition),
        )
        self.edges.append(edge)

    def _process_transition_list(self, source_id: str, transitions, source_path: str):
        if not isinstance(transitions, list):
            return
        for transition in transitions:
            if not isinstance(transition, dict) or not transition.get("to"):
                continue
            raw_target = _text(transition["to"])
            target_id = self.resolve_transition_target(raw_target, source_path)
            if target_id is None:
                logger.debug(f"YAML Import: Dropping transition from '{source_path or '/'}' to unresolved '{raw_target}'.")
                continue
            self.create_edge(source_id, target_id, transition)

    def _process_decision_transitions(self, decisions: dict, parent_id: Optional[str], context_path: str):
        # A decision has no path of its own; its references are written
        # relative to the state that contains it.
        for decision_name, decision_data in decisions.items():
            decision_id = self.scoped_decision_ids.get((parent_id, str(decision_name)))
            if decision_id is None:
                continue
            self._process_transition_list(decision_id, _decision_transitions(decision_data), context_path)

    def process_references(self, state_data, state_path: str):
        data = _mapping(state_data)
        state_id = self.path_to_id.get(state_path)
        if state_id is None:
            return

        self._process_transition_list(state_id, data.get("transitions"), state_path)
        self._process_decision_transitions(_mapping(data.get("decisions")), state_id, state_path)

        children = _mapping(data.get("states"))
        if data.get("initial") is not None and children:
            initial_id = self.path_to_id.get(f"{state_path}{PATH_SEPARATOR}{_text(data['initial'])}")
            if initial_id is not None:
                self.node_index[state_id].initial = initial_id
            else:
                logger.debug(f"YAML Import: Dropping unresolved initial '{data['initial']}' of '{state_path}'.")

        for child_name, child_data in children.items():
            self.process_references(child_data, f"{state_path}{PATH_SEPARATOR}{child_name}")

    def resolve_references(self):
        for state_name, state_data in _mapping(self.doc.get("states")).items():
            self.process_references(state_data, str(state_name))
        self._process_decision_transitions(_mapping(self.doc.get("decisions")), None, "")

    # ==========================================================================
    # Machine-wide fields
    # ==========================================================================

    def build_machine_properties(self, root_history: bool) -> MachineProperties:
        doc = self.doc
        hooks = _mapping(doc.get("hooks"))
        graphics = _mapping(doc.get("graphics"))
        root_initial = None
        if doc.get("initial") is not None:
            root_initial = self.path_to_id.get(_text(doc["initial"]))

        props = MachineProperties(
            language=_text(doc.get("language")), includes=_text(doc.get("includes")),
            context=_text(doc.get("context")), context_init=_text(doc.get("context_init")),
            entry=_text(doc.get("entry")), exit=_text(doc.get("exit")), do=_text(doc.get("do")),
            hooks=Hooks(entry=_text(hooks.get("entry")), exit=_text(hooks.get("exit")),
                        do=_text(hooks.get("do")), transition=_text(hooks.get("transition"))),
            initial=root_initial,
            initial_marker=_marker(graphics, "initial"),
            history_marker=_marker(graphics, "history"),
        )
        if root_history and props.history_marker is None:
            props.history_marker = MarkerGeometry(pos=Point(*ROOT_HISTORY_MARKER_POS), size=ROOT_HISTORY_MARKER_SIZE)
        return props


def deserialize_machine(text: str) -> LoadedMachine:
    """
    Builds a fresh graph snapshot from document text.

    Raises DocumentFormatError for unparseable text; dangling references
    inside a well-formed document are dropped.
    """
    doc = load_document(text)
    loader = _DocumentLoader(doc)
    loader.build_structure()
    loader.resolve_references()

    root_history = bool(doc.get("history", False))
    machine_properties = loader.build_machine_properties(root_history)
    logger.info(f"YAML Import: Loaded {len(loader.nodes)} nodes and {len(loader.edges)} transitions.")
    return LoadedMachine(loader.nodes, loader.edges, root_history, machine_properties)
