# hsm_designer_project/utils/id_counters.py
import re
import logging
from typing import Iterable

from ..core.hsm_ir import GraphNode
from .config import NODE_ID_PREFIX, STATE_NAME_PREFIX, DECISION_NAME_PREFIX, PROXY_NAME_PREFIX

logger = logging.getLogger(__name__)


class IdAllocator:
    """Hands out node ids and default S#/D#/P# labels for newly created nodes."""

    def __init__(self):
        self.reset()

    def reset(self):
        self._node_counter = 1
        self._state_counter = 1
        self._decision_counter = 1
        self._proxy_counter = 1

    def next_node_id(self) -> str:
        node_id = f"{NODE_ID_PREFIX}{self._node_counter}"
        self._node_counter += 1
        return node_id

    def next_state_name(self) -> str:
        name = f"{STATE_NAME_PREFIX}{self._state_counter}"
        self._state_counter += 1
        return name

    def next_decision_name(self) -> str:
        name = f"{DECISION_NAME_PREFIX}{self._decision_counter}"
        self._decision_counter += 1
        return name

    def next_proxy_name(self) -> str:
        name = f"{PROXY_NAME_PREFIX}{self._proxy_counter}"
        self._proxy_counter += 1
        return name

    def sync_with(self, nodes: Iterable[GraphNode]):
        """Moves every counter past the ids and default names already in use."""
        nodes = list(nodes)
        self._node_counter = max(self._node_counter, _max_suffix(
            (n.id for n in nodes), NODE_ID_PREFIX, anchored_start=False) + 1)
        self._state_counter = max(self._state_counter, _max_suffix(
            (n.label for n in nodes if n.kind == "state"), STATE_NAME_PREFIX) + 1)
        self._decision_counter = max(self._decision_counter, _max_suffix(
            (n.label for n in nodes if n.kind == "decision"), DECISION_NAME_PREFIX) + 1)
        self._proxy_counter = max(self._proxy_counter, _max_suffix(
            (n.label for n in nodes if n.kind == "proxy"), PROXY_NAME_PREFIX) + 1)
        logger.debug(f"IdAllocator synced: next id {NODE_ID_PREFIX}{self._node_counter}, "
                     f"next state {STATE_NAME_PREFIX}{self._state_counter}")


def _max_suffix(values: Iterable[str], prefix: str, anchored_start: bool = True) -> int:
    pattern = re.compile(("^" if anchored_start else "") + re.escape(prefix) + r"(\d+)$")
    highest = 0
    for value in values:
        match = pattern.search(value)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest
