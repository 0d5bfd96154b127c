# hsm_designer_project/export_utils.py
import logging
from typing import Dict, List, Optional, Tuple

import yaml

from .core.hsm_ir import GraphNode, StateNode, DecisionNode, Transition
from .utils.node_utils import compute_node_path
from .utils.config import YAML_LINE_WIDTH

logger = logging.getLogger(__name__)

UNGUARDED_BRANCH_KEY = "else"


def _code_lines(code: str) -> List[str]:
    """Splits a code fragment into trimmed, non-empty lines."""
    return [line.strip() for line in code.strip().split("\n") if line.strip()]


def generate_phoenix_yaml(nodes: List[GraphNode], edges: List[Transition]) -> Tuple[str, List[str]]:
    """
    Generates the two-level Phoenix YAML representation of the machine.

    Phoenix only knows top-level states containing second-level states, so
    everything else (decisions, deeper nesting, code it has no slot for) is
    left out and reported in the returned list of warnings.

    Returns:
        A tuple of (yaml_text, warnings).
    """
    warnings: List[str] = []
    node_index: Dict[str, GraphNode] = {n.id: n for n in nodes}

    top_level_states = [n for n in nodes if isinstance(n, StateNode) and not n.parent_id]
    top_level_ids = {n.id for n in top_level_states}
    second_level_states = [n for n in nodes
                           if isinstance(n, StateNode) and n.parent_id in top_level_ids]
    second_level_ids = {n.id for n in second_level_states}

    for decision in (n for n in nodes if isinstance(n, DecisionNode)):
        warnings.append(f'Decision node "{decision.label}" was skipped')

    for node in nodes:
        if isinstance(node, StateNode) and node.parent_id and node.parent_id not in top_level_ids:
            warnings.append(f'State "{compute_node_path(node.id, nodes)}" is deeper than 2 levels and was skipped')

    for state in top_level_states:
        for field_name, display in (("entry", "entry"), ("exit", "exit"), ("do", "'do'")):
            if getattr(state, field_name).strip():
                warnings.append(f'Top-level state "{state.label}" has {display} code that was ignored')

    for state in second_level_states:
        if state.do.strip():
            parent_label = node_index[state.parent_id].label
            warnings.append(f"State \"{parent_label}/{state.label}\" has 'do' code that was ignored")

    edges_by_source: Dict[str, List[Transition]] = {}
    for edge in edges:
        edges_by_source.setdefault(edge.source_id, []).append(edge)

    for state in top_level_states:
        if edges_by_source.get(state.id):
            warnings.append(f'Top-level state "{state.label}" has transitions that were ignored')

    def resolve_phoenix_target(target_id: str) -> Optional[str]:
        target = node_index.get(target_id)
        if not isinstance(target, StateNode):
            return None
        if target_id in top_level_ids:
            return target.label
        if target_id in second_level_ids:
            return f"{node_index[target.parent_id].label} {target.label}"
        return None

    doc: Dict[str, Optional[dict]] = {}
    for top_state in top_level_states:
        children = [n for n in second_level_states if n.parent_id == top_state.id]
        if not children:
            doc[top_state.label] = None
            continue

        child_map: Dict[str, Optional[dict]] = {}
        for child in children:
            child_obj = {}
            if child.entry.strip():
                child_obj["in"] = _code_lines(child.entry)
            if child.exit.strip():
                child_obj["out"] = _code_lines(child.exit)

            routed = []
            for edge in edges_by_source.get(child.id, []):
                target = resolve_phoenix_target(edge.target_id)
                if target is None:
                    target_node = node_index.get(edge.target_id)
                    if target_node is not None:
                        target_path = compute_node_path(target_node.id, nodes)
                        warnings.append(f'Transition from "{top_state.label}/{child.label}" to "{target_path}" '
                                        f'was skipped (target not in top 2 levels)')
                    continue
                routed.append((edge.guard.strip(), target))

            if len(routed) == 1:
                guard, target = routed[0]
                child_obj["next"] = {guard: target} if guard else target
            elif len(routed) > 1:
                child_obj["next"] = {(guard or UNGUARDED_BRANCH_KEY): target for guard, target in routed}

            child_map[child.label] = child_obj or None
        doc[top_state.label] = child_map

    text = yaml.safe_dump(doc, sort_keys=False, allow_unicode=True, default_flow_style=False,
                          width=YAML_LINE_WIDTH)
    logger.debug("Generated Phoenix YAML: \n%s", text)
    if warnings:
        logger.warning(f"Phoenix Export: completed with {len(warnings)} warning(s).")
    return text, warnings
