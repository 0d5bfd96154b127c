# hsm_designer_project/core/path_resolver.py
"""
Absolute and relative path references between state nodes.

Labels are only unique among siblings, so a document refers to states by
their label path. Transitions are written relative to their source:

    .               the source itself
    ./Child/Leaf    a descendant of the source
    Sibling         a state sharing the source's parent (bare name)
    ../../Uncle     up some levels, then down
    /Top/Inner      absolute, from the forest root

All functions here are total: unknown ids or odd inputs produce a path that
simply fails to resolve later, never an exception.
"""

from typing import Dict, List, Iterable, Optional

from .hsm_ir import GraphNode

PATH_SEPARATOR = "/"
SELF_REFERENCE = "."
PARENT_REFERENCE = ".."


def absolute_path(node_id: str, nodes: Iterable[GraphNode]) -> str:
    """
    Walks the parent chain of node_id up to the forest root and joins the
    labels with "/". Returns "" for an unknown id. A dangling parent ends the
    walk at the last node that exists.
    """
    index = {n.id: n for n in nodes}
    node = index.get(node_id)
    if node is None:
        return ""
    parts = [node.label]
    seen = {node.id}
    while node.parent_id and node.parent_id in index and node.parent_id not in seen:
        node = index[node.parent_id]
        seen.add(node.id)
        parts.append(node.label)
    return PATH_SEPARATOR.join(reversed(parts))


def build_node_path_map(nodes: Iterable[GraphNode]) -> Dict[str, str]:
    """
    Maps every state node id to its absolute path. Decisions and proxies have
    no path. Neither does a state that cannot be reached from the forest root
    through state parents (missing or non-state parent, parent cycle); such a
    state is left out rather than mistaken for a top-level one.
    """
    state_nodes = {n.id: n for n in nodes if n.is_state}
    path_map: Dict[str, str] = {}
    unplaced = set()

    def get_path(node: GraphNode, visiting: set) -> Optional[str]:
        if node.id in path_map:
            return path_map[node.id]
        if node.id in unplaced:
            return None
        if not node.parent_id:
            path = node.label
        else:
            parent = state_nodes.get(node.parent_id)
            parent_path = None
            if parent is not None and parent.id not in visiting:
                parent_path = get_path(parent, visiting | {node.id})
            if parent_path is None:
                unplaced.add(node.id)
                return None
            path = f"{parent_path}{PATH_SEPARATOR}{node.label}"
        path_map[node.id] = path
        return path

    for state in state_nodes.values():
        get_path(state, set())
    return path_map


def _split(path: str) -> List[str]:
    return path.split(PATH_SEPARATOR) if path else []


def relative_path(source_path: str, target_path: str) -> str:
    """
    Shortest reference from source_path to target_path (both absolute).

    When the two paths share no leading segment the result is the absolute
    form "/target/path" rather than a chain of ".." that climbs past the
    forest root.
    """
    if source_path == target_path:
        return SELF_REFERENCE

    if target_path.startswith(source_path + PATH_SEPARATOR):
        return f"{SELF_REFERENCE}{PATH_SEPARATOR}{target_path[len(source_path) + 1:]}"

    source_parts = _split(source_path)
    target_parts = _split(target_path)

    if source_parts[:-1] == target_parts[:-1]:
        return target_parts[-1]

    common_len = 0
    for source_part, target_part in zip(source_parts, target_parts):
        if source_part != target_part:
            break
        common_len += 1

    if common_len == 0:
        return PATH_SEPARATOR + target_path

    ups = [PARENT_REFERENCE] * (len(source_parts) - common_len)
    downs = target_parts[common_len:]
    return PATH_SEPARATOR.join(ups + downs)


def resolve_target_path(target: str, source_path: str) -> str:
    """
    Inverse of relative_path(): turns a reference written in the context of
    source_path back into an absolute path. An empty source_path stands for
    the forest root (used by top-level decisions).
    """
    if target.startswith(PATH_SEPARATOR):
        return target[1:]

    if target == SELF_REFERENCE:
        return source_path

    prefix = SELF_REFERENCE + PATH_SEPARATOR
    if target.startswith(prefix):
        rest = target[len(prefix):]
        return f"{source_path}{PATH_SEPARATOR}{rest}" if source_path else rest

    segments = target.split(PATH_SEPARATOR)
    if segments[0] == PARENT_REFERENCE:
        source_parts = _split(source_path)
        ups = 0
        while ups < len(segments) and segments[ups] == PARENT_REFERENCE:
            ups += 1
        depth = max(len(source_parts) - ups, 0)
        return PATH_SEPARATOR.join(source_parts[:depth] + segments[ups:])

    # Bare name: sibling scope, i.e. relative to the source's parent.
    parent_path, _, _ = source_path.rpartition(PATH_SEPARATOR)
    return f"{parent_path}{PATH_SEPARATOR}{target}" if parent_path else target
