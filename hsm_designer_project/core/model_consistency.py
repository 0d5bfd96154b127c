# hsm_designer_project/core/model_consistency.py
"""
Referential integrity checks over a graph snapshot.

check_model_consistency() never raises; it returns one ConsistencyError per
violation. assert_model_consistent() is the structural gate used after
compound edits (paste, duplicate, cascade delete): it raises a single
ModelConsistencyError listing every violation at once.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List

from .exceptions import ModelConsistencyError
from .hsm_ir import GraphNode, StateNode, ProxyNode, Transition

logger = logging.getLogger(__name__)


class ConsistencyErrorKind(str, Enum):
    DANGLING_EDGE_SOURCE = "dangling_edge_source"
    DANGLING_EDGE_TARGET = "dangling_edge_target"
    DANGLING_PARENT = "dangling_parent"
    BROKEN_PROXY_TARGET = "broken_proxy_target"
    DANGLING_INITIAL = "dangling_initial"
    PARENT_CYCLE = "parent_cycle"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ConsistencyError:
    kind: ConsistencyErrorKind
    message: str


def _find_parent_cycles(nodes: List[GraphNode], node_index: dict) -> List[List[str]]:
    """Each cycle in the parent relation, reported once, as the ids on the loop."""
    cycles = []
    settled = set()
    for node in nodes:
        chain = []
        position = {}
        current = node
        while current is not None and current.id not in settled and current.id not in position:
            position[current.id] = len(chain)
            chain.append(current.id)
            current = node_index.get(current.parent_id) if current.parent_id else None
        if current is not None and current.id in position:
            cycles.append(chain[position[current.id]:])
        settled.update(chain)
    return cycles


def check_model_consistency(nodes: List[GraphNode], edges: List[Transition]) -> List[ConsistencyError]:
    """
    Returns every violated id reference in the snapshot (empty list = clean):
    edge endpoints, parent links, proxy targets and state initial children.
    """
    errors: List[ConsistencyError] = []
    node_index = {n.id: n for n in nodes}

    for edge in edges:
        if edge.source_id not in node_index:
            errors.append(ConsistencyError(
                ConsistencyErrorKind.DANGLING_EDGE_SOURCE,
                f'Edge "{edge.id}" has source "{edge.source_id}" which does not exist'))
        if edge.target_id not in node_index:
            errors.append(ConsistencyError(
                ConsistencyErrorKind.DANGLING_EDGE_TARGET,
                f'Edge "{edge.id}" has target "{edge.target_id}" which does not exist'))

    for node in nodes:
        if node.parent_id and node.parent_id not in node_index:
            errors.append(ConsistencyError(
                ConsistencyErrorKind.DANGLING_PARENT,
                f'Node "{node.id}" ("{node.label}") has parentId "{node.parent_id}" which does not exist'))

        if isinstance(node, ProxyNode):
            if node.target_id and not node.broken and node.target_id not in node_index:
                errors.append(ConsistencyError(
                    ConsistencyErrorKind.BROKEN_PROXY_TARGET,
                    f'Proxy node "{node.id}" has targetId "{node.target_id}" which does not exist'))

        if isinstance(node, StateNode) and node.initial:
            initial = node_index.get(node.initial)
            if initial is None:
                errors.append(ConsistencyError(
                    ConsistencyErrorKind.DANGLING_INITIAL,
                    f'Node "{node.id}" ("{node.label}") has initial "{node.initial}" which does not exist'))
            elif initial.parent_id != node.id:
                errors.append(ConsistencyError(
                    ConsistencyErrorKind.DANGLING_INITIAL,
                    f'Node "{node.id}" ("{node.label}") has initial "{node.initial}" '
                    f'which is not one of its direct children'))

    for cycle in _find_parent_cycles(nodes, node_index):
        errors.append(ConsistencyError(
            ConsistencyErrorKind.PARENT_CYCLE,
            f'Nodes {" -> ".join(cycle)} form a parent cycle'))

    return errors


def assert_model_consistent(nodes: List[GraphNode], edges: List[Transition]) -> None:
    """Raises ModelConsistencyError listing all violations, if there are any."""
    errors = check_model_consistency(nodes, edges)
    if errors:
        lines = "\n".join(f"  [{e.kind.value}] {e.message}" for e in errors)
        logger.error(f"Model consistency check failed with {len(errors)} violation(s).")
        raise ModelConsistencyError(errors, f"Model consistency violations:\n{lines}")
