# hsm_designer_project/utils/node_utils.py
"""Read-only helpers over the flat node forest."""

import logging
from collections import deque
from typing import Dict, List, Optional, Iterable, Tuple

from ..core.hsm_ir import GraphNode

logger = logging.getLogger(__name__)


def build_node_index(nodes: Iterable[GraphNode]) -> Dict[str, GraphNode]:
    return {node.id: node for node in nodes}


def get_children(parent_id: Optional[str], nodes: Iterable[GraphNode], kind: Optional[str] = None) -> List[GraphNode]:
    """Direct children of parent_id (None selects the top level), in model order."""
    return [n for n in nodes if n.parent_id == parent_id and (kind is None or n.kind == kind)]


def calculate_node_depth(node_id: str, nodes: List[GraphNode], cache: Optional[Dict[str, int]] = None) -> int:
    """
    Number of ancestors above node_id. Unknown ids and top-level nodes are at
    depth 0. The optional cache is filled for every node on the walked chain.
    """
    if cache is None:
        cache = {}
    index = build_node_index(nodes)

    chain = []
    seen = set()
    current = index.get(node_id)
    current_id = node_id
    depth = 0
    while current_id not in cache:
        chain.append(current_id)
        seen.add(current_id)
        if current is None or not current.parent_id or current.parent_id not in index \
                or current.parent_id in seen:
            # A parent we cannot follow counts as the top of the chain.
            depth = 0
            break
        current_id = current.parent_id
        current = index.get(current_id)
    else:
        depth = cache[current_id] + 1

    for cid in reversed(chain):
        if cid not in cache:
            cache[cid] = depth
            depth += 1
    return cache[node_id]


def iter_ancestor_ids(node_id: str, index: Dict[str, GraphNode]):
    """Yields parent ids from the immediate parent upwards; stops on a dangling parent or a cycle."""
    seen = {node_id}
    current = index.get(node_id)
    while current is not None and current.parent_id and current.parent_id not in seen:
        seen.add(current.parent_id)
        yield current.parent_id
        current = index.get(current.parent_id)


def is_ancestor_of(ancestor_id: str, descendant_id: str, nodes: List[GraphNode]) -> bool:
    return ancestor_id in iter_ancestor_ids(descendant_id, build_node_index(nodes))


def get_all_descendants(parent_id: str, nodes: List[GraphNode]) -> List[GraphNode]:
    """Breadth-first list of every node nested (at any depth) under parent_id."""
    children_by_parent: Dict[str, List[GraphNode]] = {}
    for node in nodes:
        if node.parent_id:
            children_by_parent.setdefault(node.parent_id, []).append(node)

    descendants = []
    visited = set()
    queue = deque([parent_id])
    while queue:
        current_id = queue.popleft()
        if current_id in visited:
            continue
        visited.add(current_id)
        for child in children_by_parent.get(current_id, []):
            descendants.append(child)
            queue.append(child.id)
    return descendants


def generate_unique_node_label(base_label: str, parent_id: Optional[str], nodes: List[GraphNode],
                               exclude_id: Optional[str] = None) -> str:
    """
    Returns base_label, or "base_label N" with the smallest N >= 2 that does
    not clash with a sibling under parent_id. Comparison ignores surrounding
    whitespace.
    """
    taken = {n.label.strip() for n in nodes if n.parent_id == parent_id and n.id != exclude_id}
    new_label = base_label
    counter = 1
    while new_label.strip() in taken:
        counter += 1
        new_label = f"{base_label} {counter}"
    return new_label


def compute_node_path(node_id: str, nodes: List[GraphNode]) -> str:
    """Slash-joined labels from the forest root down to node_id ("" if unknown)."""
    index = build_node_index(nodes)
    node = index.get(node_id)
    if node is None:
        return ""
    parts = [index[pid].label for pid in iter_ancestor_ids(node_id, index) if pid in index]
    parts.reverse()
    parts.append(node.label)
    return "/".join(parts)


def absolute_position(node_id: str, nodes: List[GraphNode]) -> Tuple[float, float]:
    """Canvas position of a node; stored positions are relative to the parent."""
    index = build_node_index(nodes)
    node = index.get(node_id)
    if node is None:
        return 0.0, 0.0
    x, y = node.geometry.x, node.geometry.y
    for pid in iter_ancestor_ids(node_id, index):
        parent = index.get(pid)
        if parent is None:
            break
        x += parent.geometry.x
        y += parent.geometry.y
    return x, y


def build_tree_data(nodes: List[GraphNode]) -> List[dict]:
    """
    Builds the nested structure shown by the state tree view: state nodes only,
    under a synthetic "/" root entry.
    """
    state_nodes = [n for n in nodes if n.is_state]
    children_by_parent: Dict[str, List[GraphNode]] = {}
    state_ids = {n.id for n in state_nodes}
    for node in state_nodes:
        if node.parent_id and node.parent_id in state_ids:
            children_by_parent.setdefault(node.parent_id, []).append(node)

    def build_subtree(node: GraphNode, visiting: set) -> dict:
        entry = {"id": node.id, "label": node.label, "type": "state", "children": []}
        if node.id in visiting:
            logger.warning(f"State tree: parent cycle detected at '{node.label}' ({node.id}).")
            return entry
        visiting = visiting | {node.id}
        for child in children_by_parent.get(node.id, []):
            entry["children"].append(build_subtree(child, visiting))
        return entry

    tree = [build_subtree(n, set()) for n in state_nodes if not n.parent_id]
    return [{"id": "/", "label": "/", "type": "root", "children": tree}]
