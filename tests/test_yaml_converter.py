# tests/test_yaml_converter.py
import copy
import logging

import pytest
import yaml
from hsm_designer_project.core.hsm_ir import (
    StateNode, DecisionNode, ProxyNode, Transition, MachineProperties, Hooks,
    NodeGeometry, MarkerGeometry, EdgeGraphics, Point
)
from hsm_designer_project.core.exceptions import DocumentFormatError
from hsm_designer_project.core.model_consistency import check_model_consistency
from hsm_designer_project.core.yaml_serializer import build_document, serialize_machine
from hsm_designer_project.core.yaml_deserializer import deserialize_machine
from hsm_designer_project.utils.node_utils import compute_node_path


def edge_summary(nodes, edges):
    """Id-free view of the transitions: (source path, target path, guard, action)."""
    return sorted((compute_node_path(e.source_id, nodes), compute_node_path(e.target_id, nodes),
                   e.guard, e.action) for e in edges)


def node_by_path(nodes, path):
    return next(n for n in nodes if compute_node_path(n.id, nodes) == path)


@pytest.fixture
def controller():
    """Root with three children cycling Idle -> Running -> Done."""
    nodes = [
        StateNode(id="r", label="Root", initial="i"),
        StateNode(id="i", label="Idle", parent_id="r"),
        StateNode(id="u", label="Running", parent_id="r", entry="motor_on()"),
        StateNode(id="d", label="Done", parent_id="r"),
    ]
    edges = [
        Transition(id="e1", source_id="i", target_id="u", guard="start"),
        Transition(id="e2", source_id="u", target_id="d", guard="finish", action="cleanup()"),
        Transition(id="e3", source_id="u", target_id="i", guard="abort"),
    ]
    return nodes, edges


@pytest.fixture
def decisions_at_depth():
    nodes = [
        StateNode(id="t", label="Top"),
        StateNode(id="m", label="Mid", parent_id="t"),
        StateNode(id="l", label="Leaf", parent_id="m"),
        StateNode(id="o", label="Other", parent_id="t"),
        DecisionNode(id="c", label="Check"),
        DecisionNode(id="n", label="Inner", parent_id="m"),
    ]
    edges = [
        Transition(id="e1", source_id="l", target_id="c", guard="x"),
        Transition(id="e2", source_id="c", target_id="o", guard="a"),
        Transition(id="e3", source_id="c", target_id="l", guard="b"),
        Transition(id="e4", source_id="l", target_id="n"),
        Transition(id="e5", source_id="n", target_id="l"),
        Transition(id="e6", source_id="n", target_id="o"),
    ]
    return nodes, edges

# ==============================================================================
# Serialization
# ==============================================================================

def test_serialize_nests_states_and_uses_relative_targets(controller):
    nodes, edges = controller
    doc = yaml.safe_load(serialize_machine(nodes, edges, False))
    assert doc == {
        "states": {
            "Root": {
                "initial": "Idle",
                "states": {
                    "Idle": {"transitions": [{"to": "Running", "guard": "start"}]},
                    "Running": {
                        "entry": "motor_on()",
                        "transitions": [
                            {"to": "Done", "guard": "finish", "action": "cleanup()"},
                            {"to": "Idle", "guard": "abort"},
                        ],
                    },
                    "Done": {},
                },
            }
        }
    }


def test_serialize_never_writes_node_ids():
    nodes = [StateNode(id="zz-id-1", label="A"), StateNode(id="zz-id-2", label="B", parent_id="zz-id-1")]
    edges = [Transition(id="zz-edge", source_id="zz-id-2", target_id="zz-id-1")]
    text = serialize_machine(nodes, edges, False, include_geometry=True)
    assert "zz-" not in text


def test_serialize_leaves_snapshot_untouched(controller):
    nodes, edges = controller
    before = copy.deepcopy((nodes, edges))
    serialize_machine(nodes, edges, True, include_geometry=True)
    assert (nodes, edges) == before


def test_serialize_is_deterministic(decisions_at_depth):
    nodes, edges = decisions_at_depth
    assert serialize_machine(nodes, edges, False) == serialize_machine(nodes, edges, False)


def test_decision_references_use_at_names(decisions_at_depth):
    nodes, edges = decisions_at_depth
    doc = yaml.safe_load(serialize_machine(nodes, edges, False))
    leaf = doc["states"]["Top"]["states"]["Mid"]["states"]["Leaf"]
    assert leaf["transitions"] == [{"to": "@Check", "guard": "x"}, {"to": "@Inner"}]
    # Root decisions address states by absolute path.
    assert doc["decisions"] == {"Check": [{"to": "Top/Other", "guard": "a"},
                                          {"to": "Top/Mid/Leaf", "guard": "b"}]}
    # Nested decisions are written relative to the state containing them.
    assert doc["states"]["Top"]["states"]["Mid"]["decisions"] == {"Inner": [{"to": "./Leaf"}, {"to": "Other"}]}


def test_edges_into_proxies_are_forwarded_to_the_real_target():
    nodes = [
        StateNode(id="a", label="A"),
        StateNode(id="b", label="B"),
        ProxyNode(id="p", label="P1", target_id="a", target_path="A"),
    ]
    edges = [Transition(id="e1", source_id="b", target_id="p", guard="go")]
    doc = yaml.safe_load(serialize_machine(nodes, edges, False))
    assert doc["states"]["B"]["transitions"] == [{"to": "A", "guard": "go"}]
    assert "P1" not in doc["states"]


def test_edges_into_broken_proxies_and_from_proxies_are_dropped(caplog):
    nodes = [
        StateNode(id="a", label="A"),
        ProxyNode(id="p", label="P1", target_id="gone", target_path="Gone", broken=True),
        ProxyNode(id="q", label="P2", target_id="a", target_path="A"),
    ]
    edges = [
        Transition(id="e1", source_id="a", target_id="p"),
        Transition(id="e2", source_id="q", target_id="a"),
    ]
    with caplog.at_level(logging.WARNING):
        doc = yaml.safe_load(serialize_machine(nodes, edges, False))
    assert doc == {"states": {"A": {}}}
    assert "broken proxy" in caplog.text
    assert "leaving proxy" in caplog.text


def test_top_level_transition_without_common_ancestor_is_absolute():
    nodes = [
        StateNode(id="a", label="A"), StateNode(id="x", label="X", parent_id="a"),
        StateNode(id="b", label="B"), StateNode(id="y", label="Y", parent_id="b"),
    ]
    edges = [Transition(id="e1", source_id="x", target_id="y")]
    doc = yaml.safe_load(serialize_machine(nodes, edges, False))
    assert doc["states"]["A"]["states"]["X"]["transitions"] == [{"to": "/B/Y"}]


def test_blank_fields_are_omitted():
    nodes = [StateNode(id="a", label="A", entry="   ", exit="", annotation="\n")]
    doc = yaml.safe_load(serialize_machine(nodes, [], False))
    assert doc == {"states": {"A": {}}}


def test_multi_line_code_is_written_as_literal_block():
    code = "count = 0\nstart_timer()"
    nodes = [StateNode(id="a", label="A", entry=code)]
    text = serialize_machine(nodes, [], False)
    assert "entry: |" in text
    loaded = deserialize_machine(text)
    assert loaded.nodes[0].entry == code


def test_document_key_order():
    props = MachineProperties(
        language="python", includes="import os", context="count = 0", context_init="count = 1",
        entry="boot()", exit="halt()", do="poll()",
        hooks=Hooks(entry="log_entry()", transition="log_transition()"),
        initial="a", initial_marker=MarkerGeometry(Point(1, 2), 10),
        history_marker=MarkerGeometry(Point(3, 4), 20),
    )
    nodes = [
        StateNode(id="a", label="A", entry="e()", exit="x()", do="d()", annotation="note",
                  history=True, orthogonal=True, initial="c"),
        StateNode(id="c", label="C", parent_id="a"),
        DecisionNode(id="d", label="D", parent_id="a"),
        DecisionNode(id="rd", label="RD"),
    ]
    edges = [Transition(id="e1", source_id="a", target_id="c")]
    doc = build_document(nodes, edges, True, props, include_geometry=True)
    assert list(doc) == ["language", "includes", "context", "context_init", "hooks", "entry", "exit",
                         "do", "history", "initial", "graphics", "states", "decisions"]
    assert list(doc["hooks"]) == ["entry", "transition"]
    assert list(doc["graphics"]) == ["historyMarkerPos", "historyMarkerSize",
                                     "initialMarkerPos", "initialMarkerSize"]
    assert list(doc["states"]["A"]) == ["entry", "exit", "do", "annotation", "history", "orthogonal",
                                        "initial", "graphics", "decisions", "states", "transitions"]


def test_root_initial_must_be_top_level():
    nodes = [StateNode(id="a", label="A"), StateNode(id="c", label="C", parent_id="a")]
    doc = build_document(nodes, [], False, MachineProperties(initial="c"))
    assert "initial" not in doc

# ==============================================================================
# Deserialization
# ==============================================================================

def test_deserialize_controller_document():
    text = """
states:
  Root:
    initial: Idle
    states:
      Idle:
        transitions:
          - to: Running
            guard: start
      Running:
        transitions:
          - {to: Done, guard: finish, action: cleanup()}
          - {to: ., guard: tick}
      Done:
"""
    loaded = deserialize_machine(text)
    assert [n.label for n in loaded.nodes] == ["Root", "Idle", "Running", "Done"]
    assert [n.id for n in loaded.nodes] == ["node_1", "node_2", "node_3", "node_4"]
    root = loaded.nodes[0]
    assert root.initial == "node_2"
    assert edge_summary(loaded.nodes, loaded.edges) == [
        ("Root/Idle", "Root/Running", "start", ""),
        ("Root/Running", "Root/Done", "finish", "cleanup()"),
        ("Root/Running", "Root/Running", "tick", ""),
    ]
    assert loaded.edges[0].id == "enode_2-node_3-0"
    assert check_model_consistency(loaded.nodes, loaded.edges) == []


def test_deserialize_empty_document():
    loaded = deserialize_machine("")
    assert loaded.nodes == []
    assert loaded.edges == []
    assert loaded.root_history is False
    assert loaded.machine_properties == MachineProperties()


@pytest.mark.parametrize("text", ["states: [unclosed", "states:\n  A: {to: [\n"])
def test_malformed_yaml_raises_document_format_error(text):
    with pytest.raises(DocumentFormatError):
        deserialize_machine(text)


def test_non_mapping_root_raises_document_format_error():
    with pytest.raises(DocumentFormatError):
        deserialize_machine("- A\n- B\n")
    with pytest.raises(ValueError):
        deserialize_machine("just a string")


def test_unresolved_references_are_dropped():
    text = """
states:
  A:
    initial: Nope
    states:
      Inner: {}
    transitions:
      - to: Nowhere
      - to: '@Missing'
      - to: B
      - guard: no target
  B: {}
"""
    loaded = deserialize_machine(text)
    assert edge_summary(loaded.nodes, loaded.edges) == [("A", "B", "", "")]
    assert node_by_path(loaded.nodes, "A").initial is None


def test_bare_name_falls_back_to_absolute_path():
    text = """
states:
  P:
    states:
      C:
        transitions:
          - to: Q
          - to: P/C
  Q: {}
"""
    loaded = deserialize_machine(text)
    assert edge_summary(loaded.nodes, loaded.edges) == [("P/C", "P/C", "", ""), ("P/C", "Q", "", "")]


def test_null_state_records_are_empty_states():
    loaded = deserialize_machine("states:\n  A:\n  B: ~\n  C:\n    states:\n      D:\n")
    assert [compute_node_path(n.id, loaded.nodes) for n in loaded.nodes] == ["A", "B", "C", "C/D"]
    assert all(isinstance(n, StateNode) for n in loaded.nodes)


def test_initial_references_resolve_at_root_and_in_states():
    text = """
initial: Idle
states:
  Idle: {}
  Busy:
    initial: Two
    states:
      One: {}
      Two: {}
"""
    loaded = deserialize_machine(text)
    assert loaded.machine_properties.initial == node_by_path(loaded.nodes, "Idle").id
    assert node_by_path(loaded.nodes, "Busy").initial == node_by_path(loaded.nodes, "Busy/Two").id


def test_duplicate_decision_names_last_one_wins(caplog):
    text = """
states:
  A:
    decisions:
      D: []
    transitions:
      - to: '@D'
  B:
    decisions:
      D: []
"""
    with caplog.at_level(logging.WARNING):
        loaded = deserialize_machine(text)
    decisions = [n for n in loaded.nodes if isinstance(n, DecisionNode)]
    assert len(decisions) == 2
    target = next(n for n in loaded.nodes if n.id == loaded.edges[0].target_id)
    assert target.parent_id == node_by_path(loaded.nodes, "B").id
    assert "used more than once" in caplog.text


def test_same_named_decisions_keep_their_own_transitions():
    nodes = [
        StateNode(id="a", label="A"),
        StateNode(id="ax", label="X", parent_id="a"),
        DecisionNode(id="ac", label="Check", parent_id="a"),
        StateNode(id="b", label="B"),
        StateNode(id="by", label="Y", parent_id="b"),
        DecisionNode(id="bc", label="Check", parent_id="b"),
    ]
    edges = [
        Transition(id="e1", source_id="ac", target_id="ax", guard="ga"),
        Transition(id="e2", source_id="bc", target_id="by", guard="gb"),
    ]
    loaded = deserialize_machine(serialize_machine(nodes, edges, False))
    by_id = {n.id: n for n in loaded.nodes}
    owners = sorted((compute_node_path(by_id[e.source_id].parent_id, loaded.nodes), e.guard)
                    for e in loaded.edges)
    assert owners == [("A", "ga"), ("B", "gb")]
    assert edge_summary(loaded.nodes, loaded.edges) == [
        ("A/Check", "A/X", "ga", ""),
        ("B/Check", "B/Y", "gb", ""),
    ]


def test_auto_layout_without_saved_geometry():
    text = """
states:
  Root:
    states:
      A: {}
      B: {}
    decisions:
      D: []
  Second: {}
"""
    loaded = deserialize_machine(text)
    root, a, b, d, second = loaded.nodes
    assert root.geometry == NodeGeometry(x=50, y=50, width=410, height=110)
    assert a.geometry == NodeGeometry(x=20, y=40, width=150, height=50)
    assert b.geometry == NodeGeometry(x=220, y=40, width=150, height=50)
    assert isinstance(d, DecisionNode)
    assert d.parent_id == root.id
    assert d.geometry == NodeGeometry(x=420, y=40, width=15, height=15)
    assert second.geometry == NodeGeometry(x=510, y=50, width=150, height=50)


def test_history_markers_get_default_placement():
    loaded = deserialize_machine("history: true\nstates:\n  S:\n    history: true\n")
    assert loaded.root_history is True
    assert loaded.machine_properties.history_marker == MarkerGeometry(pos=Point(20, 20), size=20)
    marker = loaded.nodes[0].history_marker
    assert marker.pos.x == pytest.approx(7.5)
    assert marker.pos.y == pytest.approx(2.5)
    assert marker.size == pytest.approx(7.5)


def test_legacy_geometry_key_on_transitions():
    text = """
states:
  A:
    transitions:
      - to: B
        geometry:
          sourceHandle: top
          controlPoints:
            - {x: 5, y: 6}
  B: {}
"""
    loaded = deserialize_machine(text)
    assert loaded.edges[0].graphics == EdgeGraphics(source_handle="top", control_points=[Point(5, 6)])


def test_machine_properties_are_read():
    text = """
language: python
includes: import math
context: |
  count = 0
  limit = 3
hooks:
  transition: trace()
entry: boot()
states: {}
"""
    props = deserialize_machine(text).machine_properties
    assert props.language == "python"
    assert props.includes == "import math"
    assert props.context == "count = 0\nlimit = 3\n"
    assert props.hooks == Hooks(transition="trace()")
    assert props.entry == "boot()"

# ==============================================================================
# Round trips
# ==============================================================================

def test_round_trip_preserves_structure_and_code(controller):
    nodes, edges = controller
    loaded = deserialize_machine(serialize_machine(nodes, edges, False))
    assert edge_summary(loaded.nodes, loaded.edges) == edge_summary(nodes, edges)
    running = node_by_path(loaded.nodes, "Root/Running")
    assert running.entry == "motor_on()"
    assert node_by_path(loaded.nodes, "Root").initial == node_by_path(loaded.nodes, "Root/Idle").id


def test_round_trip_preserves_decisions_at_depth(decisions_at_depth):
    nodes, edges = decisions_at_depth
    loaded = deserialize_machine(serialize_machine(nodes, edges, False))
    assert edge_summary(loaded.nodes, loaded.edges) == edge_summary(nodes, edges)
    inner = next(n for n in loaded.nodes if n.label == "Inner")
    assert inner.parent_id == node_by_path(loaded.nodes, "Top/Mid").id
    assert check_model_consistency(loaded.nodes, loaded.edges) == []


def test_round_trip_with_geometry_restores_layout():
    props = MachineProperties(
        initial="s",
        initial_marker=MarkerGeometry(Point(3, 4), 10),
        history_marker=MarkerGeometry(Point(30, 40), 25),
    )
    nodes = [
        StateNode(id="s", label="S", geometry=NodeGeometry(10, 20, 300, 200), history=True,
                  history_marker=MarkerGeometry(Point(5, 6), 12), initial="c",
                  initial_marker=MarkerGeometry(Point(1, 2)), show_entry=True),
        StateNode(id="c", label="C", parent_id="s", geometry=NodeGeometry(30, 40, 120, 60)),
        DecisionNode(id="d", label="D", parent_id="s", geometry=NodeGeometry(7, 8, 20, 20)),
    ]
    edges = [
        Transition(id="e1", source_id="c", target_id="d",
                   graphics=EdgeGraphics(source_handle="right", control_points=[Point(1, 2)],
                                         label_position=0.5)),
        Transition(id="e2", source_id="d", target_id="c", guard="again"),
    ]
    loaded = deserialize_machine(serialize_machine(nodes, edges, True, props, include_geometry=True))

    s, c, d = loaded.nodes
    assert s.geometry == NodeGeometry(10, 20, 300, 200)
    assert s.history_marker == MarkerGeometry(Point(5, 6), 12)
    assert s.initial_marker == MarkerGeometry(Point(1, 2))
    assert s.show_entry is True and s.show_exit is False
    assert c.geometry == NodeGeometry(30, 40, 120, 60)
    assert d.geometry == NodeGeometry(7, 8, 20, 20)
    from_child = next(e for e in loaded.edges if e.source_id == c.id)
    from_decision = next(e for e in loaded.edges if e.source_id == d.id)
    assert from_child.target_id == d.id
    assert from_child.graphics == EdgeGraphics(source_handle="right", control_points=[Point(1, 2)],
                                               label_position=0.5)
    assert from_decision.target_id == c.id
    assert from_decision.guard == "again"
    assert from_decision.graphics is None
    assert loaded.root_history is True
    assert loaded.machine_properties.initial == s.id
    assert loaded.machine_properties.initial_marker == MarkerGeometry(Point(3, 4), 10)
    assert loaded.machine_properties.history_marker == MarkerGeometry(Point(30, 40), 25)


def test_round_trip_preserves_machine_properties():
    props = MachineProperties(
        language="python",
        includes="import math\nimport time",
        context="count = 0\nlimit = 3",
        context_init="count = 1",
        entry="boot()",
        exit="halt()",
        do="poll()\nsleep(1)",
        hooks=Hooks(entry="log_entry()", exit="log_exit()", do="log_do()", transition="trace()"),
    )
    nodes = [StateNode(id="s", label="S")]
    loaded = deserialize_machine(serialize_machine(nodes, [], False, props))
    assert loaded.machine_properties == props


def test_edges_into_unwritten_states_are_skipped(caplog):
    nodes = [
        StateNode(id="top", label="Twin"),
        StateNode(id="lost", label="Twin", parent_id="gone"),
        StateNode(id="src", label="Src"),
    ]
    edges = [Transition(id="e1", source_id="src", target_id="lost")]
    with caplog.at_level(logging.WARNING):
        doc = yaml.safe_load(serialize_machine(nodes, edges, False))
    assert "transitions" not in doc["states"]["Src"]
    assert "not found" in caplog.text


def test_geometry_is_omitted_unless_requested():
    nodes = [StateNode(id="s", label="S", geometry=NodeGeometry(10, 20, 300, 200))]
    doc = yaml.safe_load(serialize_machine(nodes, [], False))
    assert "graphics" not in doc["states"]["S"]
