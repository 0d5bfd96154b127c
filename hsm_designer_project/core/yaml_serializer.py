# hsm_designer_project/core/yaml_serializer.py
"""
Writes the node forest out as a nested YAML document.

The flat, id-keyed model is turned into one nested record per state. Node ids
never appear in the document: states are addressed by label path (relative to
the transition's source where possible) and decisions by "@name".
"""

import logging
from typing import Dict, List, Optional

import yaml

from .hsm_ir import (
    GraphNode, StateNode, DecisionNode, ProxyNode, Transition, MachineProperties,
    MarkerGeometry, default_machine_properties
)
from .path_resolver import build_node_path_map, relative_path
from ..utils.config import YAML_INDENT, YAML_LINE_WIDTH

logger = logging.getLogger(__name__)

DECISION_REFERENCE_PREFIX = "@"


class _DocumentDumper(yaml.SafeDumper):
    """Block-style dumper: multi-line code as literal blocks, never anchors."""

    def ignore_aliases(self, data):
        return True


def _represent_str(dumper, data):
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_DocumentDumper.add_representer(str, _represent_str)


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def _marker_fields(prefix: str, marker: Optional[MarkerGeometry]) -> dict:
    if marker is None:
        return {}
    fields = {f"{prefix}MarkerPos": marker.pos.to_dict()}
    if marker.size is not None:
        fields[f"{prefix}MarkerSize"] = marker.size
    return fields


class _DocumentBuilder:
    """Holds the lookups for one serialization run; discarded afterwards."""

    def __init__(self, nodes: List[GraphNode], edges: List[Transition], include_geometry: bool):
        self.include_geometry = include_geometry
        self.node_index: Dict[str, GraphNode] = {n.id: n for n in nodes}
        self.path_map = build_node_path_map(nodes)
        self.children: Dict[Optional[str], List[GraphNode]] = {}
        for node in nodes:
            self.children.setdefault(node.parent_id or None, []).append(node)
        self.edges_by_source: Dict[str, List[Transition]] = {}
        for edge in edges:
            self.edges_by_source.setdefault(edge.source_id, []).append(edge)
        self._warn_about_unreachable(nodes, edges)

    def _warn_about_unreachable(self, nodes: List[GraphNode], edges: List[Transition]):
        for node in nodes:
            if node.parent_id and node.parent_id not in self.node_index:
                logger.warning(f"YAML Export: '{node.label}' ({node.id}) has a missing parent "
                               f"'{node.parent_id}' and is not written.")
            elif node.parent_id and not self.node_index[node.parent_id].is_state:
                logger.warning(f"YAML Export: '{node.label}' ({node.id}) is nested under a "
                               f"non-state node and is not written.")
        for edge in edges:
            source = self.node_index.get(edge.source_id)
            if source is None:
                logger.warning(f"YAML Export: Skipping transition '{edge.id}' with missing source '{edge.source_id}'.")
            elif isinstance(source, ProxyNode):
                logger.warning(f"YAML Export: Skipping transition '{edge.id}' leaving proxy '{source.label}'.")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _source_context(self, source: GraphNode) -> Optional[str]:
        """Path the target is written relative to; "" is the forest root."""
        if isinstance(source, DecisionNode):
            if not source.parent_id:
                return ""
            return self.path_map.get(source.parent_id)
        return self.path_map.get(source.id)

    def resolve_edge_target(self, edge: Transition) -> Optional[str]:
        target = self.node_index.get(edge.target_id)
        if isinstance(target, DecisionNode):
            return f"{DECISION_REFERENCE_PREFIX}{target.label}"
        if isinstance(target, ProxyNode):
            real_target = self.node_index.get(target.target_id) if not target.broken else None
            if real_target is None or isinstance(real_target, ProxyNode):
                logger.warning(f"YAML Export: Skipping transition '{edge.id}' to broken proxy '{target.label}'.")
                return None
            if isinstance(real_target, DecisionNode):
                return f"{DECISION_REFERENCE_PREFIX}{real_target.label}"
            target = real_target

        target_path = self.path_map.get(target.id) if target is not None else None
        if target_path is None:
            logger.warning(f"YAML Export: Skipping transition '{edge.id}': target '{edge.target_id}' not found.")
            return None

        source_context = self._source_context(self.node_index[edge.source_id])
        if source_context is None:
            logger.warning(f"YAML Export: Skipping transition '{edge.id}': source has no path context.")
            return None
        if source_context == "":
            return target_path
        return relative_path(source_context, target_path)

    def _edge_graphics(self, edge: Transition) -> Optional[dict]:
        graphics = edge.graphics
        if not self.include_geometry or graphics is None or graphics.is_empty():
            return None
        record = {}
        if graphics.source_handle:
            record["sourceHandle"] = graphics.source_handle
        if graphics.target_handle:
            record["targetHandle"] = graphics.target_handle
        if graphics.control_points:
            record["controlPoints"] = [p.to_dict() for p in graphics.control_points]
        if graphics.label_position is not None:
            record["labelPosition"] = graphics.label_position
        return record

    def build_transitions(self, source_id: str) -> List[dict]:
        transitions = []
        for edge in self.edges_by_source.get(source_id, []):
            to = self.resolve_edge_target(edge)
            if to is None:
                continue
            record = {"to": to}
            if edge.guard:
                record["guard"] = edge.guard
            if edge.action:
                record["action"] = edge.action
            graphics = self._edge_graphics(edge)
            if graphics:
                record["graphics"] = graphics
            transitions.append(record)
        return transitions

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def build_decisions(self, parent_id: Optional[str]) -> Dict[str, object]:
        decisions = {}
        for decision in self.children.get(parent_id, []):
            if not isinstance(decision, DecisionNode):
                continue
            transitions = self.build_transitions(decision.id)
            if self.include_geometry:
                decisions[decision.label] = {
                    "transitions": transitions,
                    "graphics": {"x": decision.geometry.x, "y": decision.geometry.y, "size": decision.size},
                }
            else:
                decisions[decision.label] = transitions
        return decisions

    def _state_graphics(self, state: StateNode, initial_written: bool) -> dict:
        geometry = state.geometry
        graphics = {"x": geometry.x, "y": geometry.y, "width": geometry.width, "height": geometry.height}
        if initial_written:
            graphics.update(_marker_fields("initial", state.initial_marker))
        if state.history:
            graphics.update(_marker_fields("history", state.history_marker))
        for flag, key in (("show_annotation", "showAnnotation"), ("show_entry", "showEntry"),
                          ("show_do", "showDo"), ("show_exit", "showExit")):
            if getattr(state, flag):
                graphics[key] = True
        return graphics

    def build_state(self, state: StateNode) -> dict:
        record = {}
        for field_name in ("entry", "exit", "do", "annotation"):
            value = getattr(state, field_name)
            if _has_text(value):
                record[field_name] = value
        if state.history:
            record["history"] = True
        if state.orthogonal:
            record["orthogonal"] = True

        state_children = [c for c in self.children.get(state.id, []) if isinstance(c, StateNode)]
        initial_child = next((c for c in state_children if c.id == state.initial), None) if state.initial else None
        if initial_child is not None:
            record["initial"] = initial_child.label

        if self.include_geometry:
            record["graphics"] = self._state_graphics(state, initial_child is not None)

        decisions = self.build_decisions(state.id)
        if decisions:
            record["decisions"] = decisions

        if state_children:
            record["states"] = {child.label: self.build_state(child) for child in state_children}

        transitions = self.build_transitions(state.id)
        if transitions:
            record["transitions"] = transitions
        return record


def build_document(nodes: List[GraphNode], edges: List[Transition], root_history: bool,
                   machine_properties: Optional[MachineProperties] = None,
                   include_geometry: bool = False) -> dict:
    """
    Builds the nested document record for the given snapshot. Keys are
    inserted in the canonical order, so dumping the result is deterministic.
    """
    props = machine_properties or default_machine_properties()
    builder = _DocumentBuilder(nodes, edges, include_geometry)
    doc = {}

    for field_name in ("language", "includes", "context", "context_init"):
        value = getattr(props, field_name)
        if _has_text(value):
            doc[field_name] = value

    hooks = {name: getattr(props.hooks, name) for name in ("entry", "exit", "do", "transition")
             if _has_text(getattr(props.hooks, name))}
    if hooks:
        doc["hooks"] = hooks

    for field_name in ("entry", "exit", "do"):
        value = getattr(props, field_name)
        if _has_text(value):
            doc[field_name] = value

    root_graphics = {}
    if root_history:
        doc["history"] = True
        if include_geometry:
            root_graphics.update(_marker_fields("history", props.history_marker))

    if props.initial:
        initial_node = builder.node_index.get(props.initial)
        if isinstance(initial_node, StateNode) and not initial_node.parent_id:
            doc["initial"] = initial_node.label
            if include_geometry:
                root_graphics.update(_marker_fields("initial", props.initial_marker))
        else:
            logger.warning(f"YAML Export: Root initial '{props.initial}' is not a top-level state; omitted.")

    if root_graphics:
        doc["graphics"] = root_graphics

    top_level_states = [n for n in builder.children.get(None, []) if isinstance(n, StateNode)]
    if top_level_states:
        doc["states"] = {state.label: builder.build_state(state) for state in top_level_states}

    root_decisions = builder.build_decisions(None)
    if root_decisions:
        doc["decisions"] = root_decisions

    return doc


def dump_document(doc: dict) -> str:
    return yaml.dump(doc, Dumper=_DocumentDumper, sort_keys=False, allow_unicode=True,
                     default_flow_style=False, indent=YAML_INDENT, width=YAML_LINE_WIDTH)


def serialize_machine(nodes: List[GraphNode], edges: List[Transition], root_history: bool,
                      machine_properties: Optional[MachineProperties] = None,
                      include_geometry: bool = False) -> str:
    """Serializes a graph snapshot to document text. The snapshot is left untouched."""
    doc = build_document(nodes, edges, root_history, machine_properties, include_geometry)
    text = dump_document(doc)
    logger.debug("Generated YAML document: \n%s", text)
    return text
