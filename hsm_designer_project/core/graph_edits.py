# hsm_designer_project/core/graph_edits.py
"""
Structural edits on a graph snapshot: delete, move, rename.

Every function returns new collections and leaves the caller's snapshot
untouched, so the editor decides when the edited graph becomes current.
"""

import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Set, Tuple

from .exceptions import GraphEditError
from .hsm_ir import GraphNode, StateNode, ProxyNode, Transition
from .path_resolver import build_node_path_map
from ..utils.node_utils import (
    build_node_index, get_all_descendants, is_ancestor_of, absolute_position
)

logger = logging.getLogger(__name__)


def collect_removal_set(nodes: List[GraphNode], selected_ids: Iterable[str]) -> Set[str]:
    """
    Every id that disappears when selected_ids are deleted: the selection, all
    of its descendants, and any proxy forwarding to one of those (together
    with that proxy's own descendants).
    """
    remove_ids = set(selected_ids)
    pending = list(remove_ids)
    while pending:
        for node_id in pending:
            for descendant in get_all_descendants(node_id, nodes):
                remove_ids.add(descendant.id)
        added = [n.id for n in nodes
                 if isinstance(n, ProxyNode) and n.target_id in remove_ids and n.id not in remove_ids]
        remove_ids.update(added)
        pending = added
    return remove_ids


def cascade_delete(nodes: List[GraphNode], edges: List[Transition],
                   selected_ids: Iterable[str]) -> Tuple[List[GraphNode], List[Transition]]:
    """
    Deletes the selection with everything hanging off it. The full removal set
    is computed first so that edges attached to cascaded proxies and
    descendants go too, not only edges of the selected nodes.
    """
    remove_ids = collect_removal_set(nodes, selected_ids)
    new_nodes = [_without_stale_initial(n, remove_ids) for n in nodes if n.id not in remove_ids]
    new_edges = [e for e in edges if e.source_id not in remove_ids and e.target_id not in remove_ids]
    logger.info(f"Cascade delete removed {len(nodes) - len(new_nodes)} node(s) "
                f"and {len(edges) - len(new_edges)} transition(s).")
    return new_nodes, new_edges


def _without_stale_initial(node: GraphNode, removed_ids: Set[str]) -> GraphNode:
    if isinstance(node, StateNode) and node.initial in removed_ids:
        return replace(node, initial=None, initial_marker=None)
    return node


def _check_sibling_label(nodes: List[GraphNode], node_id: str, parent_id: Optional[str], label: str):
    for sibling in nodes:
        if sibling.id != node_id and sibling.parent_id == parent_id and sibling.label.strip() == label.strip():
            raise GraphEditError(f"A sibling named '{label}' already exists under this parent.")


def reparent_node(nodes: List[GraphNode], node_id: str, new_parent_id: Optional[str]) -> List[GraphNode]:
    """
    Moves node_id under new_parent_id (None = top level), keeping its canvas
    position. Raises GraphEditError if the move would create a cycle, nest
    under a non-state node, or clash with a sibling's label.
    """
    index = build_node_index(nodes)
    node = index.get(node_id)
    if node is None:
        raise GraphEditError(f"Cannot move unknown node '{node_id}'.")
    if node.parent_id == new_parent_id:
        return list(nodes)

    if new_parent_id is not None:
        new_parent = index.get(new_parent_id)
        if new_parent is None:
            raise GraphEditError(f"Cannot move '{node.label}' under unknown node '{new_parent_id}'.")
        if not new_parent.is_state:
            raise GraphEditError(f"Only states can contain other nodes; '{new_parent.label}' is a {new_parent.kind}.")
        if new_parent_id == node_id or is_ancestor_of(node_id, new_parent_id, nodes):
            raise GraphEditError(f"Cannot move '{node.label}' into its own subtree.")
    _check_sibling_label(nodes, node_id, new_parent_id, node.label)

    abs_x, abs_y = absolute_position(node_id, nodes)
    parent_x, parent_y = absolute_position(new_parent_id, nodes) if new_parent_id else (0.0, 0.0)
    geometry = replace(node.geometry, x=abs_x - parent_x, y=abs_y - parent_y)
    old_parent_id = node.parent_id

    result = []
    for n in nodes:
        if n.id == node_id:
            n = replace(n, parent_id=new_parent_id, geometry=geometry)
        elif n.id == old_parent_id and isinstance(n, StateNode) and n.initial == node_id:
            n = replace(n, initial=None, initial_marker=None)
        result.append(n)
    return refresh_proxies(result)


def rename_node(nodes: List[GraphNode], node_id: str, new_label: str) -> List[GraphNode]:
    """Renames a node; labels stay unique among siblings."""
    new_label = new_label.strip()
    if not new_label:
        raise GraphEditError("A node label cannot be empty.")
    index = build_node_index(nodes)
    node = index.get(node_id)
    if node is None:
        raise GraphEditError(f"Cannot rename unknown node '{node_id}'.")
    _check_sibling_label(nodes, node_id, node.parent_id, new_label)
    renamed = [replace(n, label=new_label) if n.id == node_id else n for n in nodes]
    return refresh_proxies(renamed)


def refresh_proxies(nodes: List[GraphNode]) -> List[GraphNode]:
    """
    Recomputes each proxy's cached target path and flags proxies whose target
    is gone as broken. A broken proxy keeps its last known path for display.
    """
    path_map = build_node_path_map(nodes)
    node_ids = {n.id for n in nodes}
    result = []
    for node in nodes:
        if isinstance(node, ProxyNode) and node.target_id:
            if node.target_id in node_ids:
                target_path = path_map.get(node.target_id, node.target_path)
                if target_path != node.target_path or node.broken:
                    node = replace(node, target_path=target_path, broken=False)
            elif not node.broken:
                logger.warning(f"Proxy '{node.label}' lost its target '{node.target_path}'.")
                node = replace(node, broken=True)
        result.append(node)
    return result
