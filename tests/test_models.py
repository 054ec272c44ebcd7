"""
Unit tests for the program graph models.
"""

import pytest
from hypothesis import given, strategies as st

from visual_build_core.exceptions import MalformedInputError, NotFoundError
from visual_build_core.models import (
    ChangeEvent, ChangeEventType, Node, ProgramGraph, ValidationResult
)


@pytest.fixture
def graph():
    return ProgramGraph()


@pytest.fixture
def events(graph):
    received = []
    graph.add_change_listener(received.append)
    return received


def _tree(graph):
    """root -> body -> leaf"""
    graph.add_node(Node(id="root", kind="rust_fn"))
    graph.add_node(Node(id="body", kind="rust_block"), parent_id="root", slot="body")
    graph.add_node(Node(id="leaf", kind="rust_expr", fields={"value": 1}),
                   parent_id="body", slot="expr")


class TestNode:
    """Test cases for Node."""

    def test_node_creation_defaults(self):
        node = Node(kind="rust_fn")
        assert node.id
        assert node.disabled is False
        assert node.fields == {}
        assert node.connections == {}

    def test_kind_is_immutable(self):
        node = Node(id="n1", kind="rust_fn")
        with pytest.raises(AttributeError):
            node.kind = "wgsl_fn"

    def test_other_attributes_are_mutable(self):
        node = Node(id="n1", kind="rust_fn")
        node.disabled = True
        assert node.disabled is True

    def test_dict_round_trip(self):
        node = Node(id="n1", kind="bevy_system", disabled=True,
                    fields={"name": "move"}, connections={"body": "n2"})
        restored = Node.from_dict(node.to_dict())
        assert restored == node

    def test_from_dict_rejects_non_mapping(self):
        with pytest.raises(MalformedInputError):
            Node.from_dict(["not", "a", "dict"])


class TestValidationResult:
    """Test cases for ValidationResult."""

    def test_from_dict_defaults(self):
        result = ValidationResult.from_dict({})
        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_to_dict(self):
        result = ValidationResult(valid=False, errors=["bad"], warnings=["meh"])
        assert result.to_dict() == {'valid': False, 'errors': ["bad"], 'warnings': ["meh"]}


class TestProgramGraph:
    """Test cases for ProgramGraph mutation and queries."""

    def test_add_node_fires_create(self, graph, events):
        graph.add_node(Node(id="n1", kind="rust_fn"))
        assert graph.node_count == 1
        assert "n1" in graph
        assert events == [ChangeEvent(ChangeEventType.CREATE, "n1", {'kind': "rust_fn"})]

    def test_add_node_rejects_duplicate_id(self, graph):
        graph.add_node(Node(id="n1", kind="rust_fn"))
        with pytest.raises(MalformedInputError):
            graph.add_node(Node(id="n1", kind="rust_fn"))

    def test_add_node_rejects_empty_kind(self, graph):
        with pytest.raises(MalformedInputError):
            graph.add_node(Node(id="n1", kind=""))

    def test_add_node_rejects_non_scalar_field(self, graph):
        with pytest.raises(MalformedInputError) as exc_info:
            graph.add_node(Node(id="n1", kind="rust_fn", fields={"items": [1, 2]}))
        assert exc_info.value.details == {'field': 'items'}

    def test_add_node_rejects_dangling_connection(self, graph):
        with pytest.raises(MalformedInputError):
            graph.add_node(Node(id="n1", kind="rust_fn", connections={"body": "missing"}))
        assert graph.node_count == 0

    def test_add_node_under_missing_parent(self, graph):
        with pytest.raises(NotFoundError):
            graph.add_node(Node(id="n1", kind="rust_fn"), parent_id="ghost", slot="body")

    def test_add_node_with_parent_requires_slot(self, graph):
        graph.add_node(Node(id="root", kind="rust_fn"))
        with pytest.raises(MalformedInputError):
            graph.add_node(Node(id="n1", kind="rust_fn"), parent_id="root")

    def test_roots_and_parents(self, graph):
        _tree(graph)
        assert [node.id for node in graph.roots()] == ["root"]
        assert graph.get_parent("leaf") == "body"
        assert graph.get_node("root").connections == {"body": "body"}

    def test_iter_subtree(self, graph):
        _tree(graph)
        assert [node.id for node in graph.iter_subtree("root")] == ["root", "body", "leaf"]

    def test_remove_node_removes_subtree(self, graph, events):
        _tree(graph)
        events.clear()

        assert graph.remove_node("body") is True
        assert graph.node_count == 1
        assert graph.get_node("root").connections == {}
        assert events[0].type == ChangeEventType.DELETE
        assert sorted(events[0].detail['removed']) == ["body", "leaf"]

    def test_remove_missing_node(self, graph):
        assert graph.remove_node("ghost") is False

    def test_set_field_fires_change(self, graph, events):
        graph.add_node(Node(id="n1", kind="rust_fn"))
        events.clear()
        graph.set_field("n1", "x", 1)
        assert graph.get_node("n1").fields == {"x": 1}
        assert events[0].type == ChangeEventType.CHANGE

    def test_set_field_same_value_is_silent(self, graph, events):
        graph.add_node(Node(id="n1", kind="rust_fn", fields={"x": 1}))
        events.clear()
        graph.set_field("n1", "x", 1)
        assert events == []

    def test_set_field_type_change_is_a_change(self, graph, events):
        graph.add_node(Node(id="n1", kind="rust_fn", fields={"x": 1}))
        events.clear()
        graph.set_field("n1", "x", True)
        assert len(events) == 1

    def test_set_field_missing_node(self, graph):
        with pytest.raises(NotFoundError):
            graph.set_field("ghost", "x", 1)

    def test_set_disabled(self, graph, events):
        graph.add_node(Node(id="n1", kind="rust_fn"))
        events.clear()
        graph.set_disabled("n1", True)
        graph.set_disabled("n1", True)
        assert graph.get_node("n1").disabled is True
        assert len(events) == 1

    def test_connect_moves_child(self, graph, events):
        graph.add_node(Node(id="a", kind="rust_fn"))
        graph.add_node(Node(id="b", kind="rust_fn"))
        graph.add_node(Node(id="c", kind="rust_expr"), parent_id="a", slot="body")
        events.clear()

        graph.connect("b", "body", "c")
        assert graph.get_parent("c") == "b"
        assert graph.get_node("a").connections == {}
        assert events[0].type == ChangeEventType.MOVE

    def test_connect_rejects_cycle(self, graph):
        _tree(graph)
        with pytest.raises(MalformedInputError):
            graph.connect("leaf", "next", "root")
        with pytest.raises(MalformedInputError):
            graph.connect("root", "self", "root")

    def test_disconnect(self, graph):
        _tree(graph)
        assert graph.disconnect("root", "body") == "body"
        assert graph.get_parent("body") is None
        assert graph.disconnect("root", "body") is None

    def test_clear(self, graph, events):
        _tree(graph)
        events.clear()
        graph.clear()
        assert graph.node_count == 0
        assert events[0].type == ChangeEventType.DELETE
        graph.clear()
        assert len(events) == 1

    def test_ui_events(self, graph, events):
        graph.add_node(Node(id="n1", kind="rust_fn"))
        events.clear()
        graph.select("n1")
        graph.move_viewport(10, 5)
        assert [event.type for event in events] == [ChangeEventType.UI, ChangeEventType.UI]
        assert all(event.is_presentation_only for event in events)
        assert graph.viewport == (10, 5)

    def test_failing_listener_does_not_break_mutation(self, graph):
        def broken(event):
            raise RuntimeError("boom")

        graph.add_change_listener(broken)
        graph.add_node(Node(id="n1", kind="rust_fn"))
        assert graph.has_node("n1")

    def test_remove_change_listener(self, graph):
        received = []
        listener_id = graph.add_change_listener(received.append)
        assert graph.remove_change_listener(listener_id) is True
        graph.add_node(Node(id="n1", kind="rust_fn"))
        assert received == []
        assert graph.remove_change_listener(listener_id) is False


class TestGraphSerialization:
    """Test cases for ProgramGraph documents."""

    def test_round_trip(self, graph):
        _tree(graph)
        restored = ProgramGraph.from_dict(graph.to_dict())
        assert restored.to_dict() == graph.to_dict()
        assert restored.get_parent("leaf") == "body"

    def test_load_fires_only_finished_loading(self, graph, events):
        source = ProgramGraph()
        _tree(source)
        graph.load_dict(source.to_dict())
        assert [event.type for event in events] == [ChangeEventType.FINISHED_LOADING]

    def test_load_rejects_cycle_without_touching_graph(self, graph):
        graph.add_node(Node(id="keep", kind="rust_fn"))
        document = {'nodes': [
            {'id': 'a', 'kind': 'rust_fn', 'connections': {'next': 'b'}},
            {'id': 'b', 'kind': 'rust_fn', 'connections': {'next': 'a'}},
        ]}
        with pytest.raises(MalformedInputError):
            graph.load_dict(document)
        assert [node.id for node in graph.nodes()] == ["keep"]

    def test_load_rejects_two_parents(self, graph):
        document = {'nodes': [
            {'id': 'a', 'kind': 'rust_fn', 'connections': {'x': 'c'}},
            {'id': 'b', 'kind': 'rust_fn', 'connections': {'x': 'c'}},
            {'id': 'c', 'kind': 'rust_expr'},
        ]}
        with pytest.raises(MalformedInputError):
            graph.load_dict(document)

    def test_load_rejects_missing_nodes_list(self, graph):
        with pytest.raises(MalformedInputError):
            graph.load_dict({'nodes': 'nope'})


@given(st.integers(min_value=1, max_value=15))
def test_chain_removal_leaves_no_dangling_edges(length):
    """Property test: removing any chain head leaves no connections to missing nodes."""
    graph = ProgramGraph()
    graph.add_node(Node(id="n0", kind="rust_fn"))
    for i in range(1, length + 1):
        graph.add_node(Node(id=f"n{i}", kind="rust_expr"), parent_id=f"n{i - 1}", slot="next")

    graph.remove_node(f"n{length // 2}")

    for node in graph.nodes():
        for child_id in node.connections.values():
            assert graph.has_node(child_id)
    assert graph.node_count == length // 2
