"""
Tests for canonical state hashing.
"""

import pytest
from hypothesis import given, strategies as st

from visual_build_core.exceptions import MalformedInputError
from visual_build_core.models import Node, ProgramGraph
from visual_build_core.state_hasher import (
    EMPTY_GRAPH_HASH, HASH_ALGORITHMS, StateHasher, _rolling32_digest, _to_base36, hash_graph
)


scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-10**6, max_value=10**6),
    st.text(max_size=12),
)
field_maps = st.dictionaries(st.text(min_size=1, max_size=6), scalars, max_size=4)


def _graph_with(fields):
    graph = ProgramGraph()
    graph.add_node(Node(id="n1", kind="rust_fn", fields=dict(fields)))
    return graph


@pytest.fixture(params=sorted(HASH_ALGORITHMS))
def hasher(request):
    return StateHasher(request.param)


class TestStateHasher:
    """Test cases for StateHasher."""

    def test_empty_graph_sentinel(self, hasher):
        assert hasher.compute(ProgramGraph()) == EMPTY_GRAPH_HASH
        assert hasher.compute(None) == EMPTY_GRAPH_HASH

    def test_empty_after_history(self, hasher):
        graph = _graph_with({"x": 1})
        graph.set_field("n1", "x", 2)
        graph.remove_node("n1")
        assert hasher.compute(graph) == EMPTY_GRAPH_HASH

    def test_non_empty_hash_carries_algorithm(self, hasher):
        digest = hasher.compute(_graph_with({"x": 1}))
        assert digest.startswith(f"{hasher.algorithm}:")
        assert digest != EMPTY_GRAPH_HASH

    def test_field_change_and_revert(self, hasher):
        graph = _graph_with({"x": 1})
        original = hasher.compute(graph)

        graph.set_field("n1", "x", 2)
        changed = hasher.compute(graph)
        assert changed != original

        graph.set_field("n1", "x", 1)
        assert hasher.compute(graph) == original

    def test_separate_graphs_with_different_fields(self, hasher):
        assert hasher.compute(_graph_with({"x": 1})) != hasher.compute(_graph_with({"x": 2}))

    def test_insertion_order_does_not_matter(self, hasher):
        first = ProgramGraph()
        first.add_node(Node(id="a", kind="rust_fn"))
        first.add_node(Node(id="b", kind="wgsl_fn"))

        second = ProgramGraph()
        second.add_node(Node(id="b", kind="wgsl_fn"))
        second.add_node(Node(id="a", kind="rust_fn"))

        assert hasher.compute(first) == hasher.compute(second)

    def test_connection_changes_hash(self, hasher):
        graph = ProgramGraph()
        graph.add_node(Node(id="a", kind="rust_fn"))
        graph.add_node(Node(id="b", kind="rust_expr"))
        before = hasher.compute(graph)
        graph.connect("a", "body", "b")
        assert hasher.compute(graph) != before

    def test_disabled_flag_changes_hash(self, hasher):
        graph = _graph_with({})
        before = hasher.compute(graph)
        graph.set_disabled("n1", True)
        assert hasher.compute(graph) != before

    def test_presentation_state_is_not_hashed(self, hasher):
        graph = _graph_with({"x": 1})
        before = hasher.compute(graph)
        graph.select("n1")
        graph.move_viewport(40, -3)
        assert hasher.compute(graph) == before

    def test_lone_surrogate_field_hashes(self, hasher):
        graph = ProgramGraph()
        graph.load_dict({'nodes': [{'id': 'a', 'kind': 'rust_fn', 'fields': {'s': '\ud800'}}]})
        plain = ProgramGraph()
        plain.load_dict({'nodes': [{'id': 'a', 'kind': 'rust_fn', 'fields': {'s': 'x'}}]})

        digest = hasher.compute(graph)
        assert digest.startswith(f"{hasher.algorithm}:")
        assert digest != hasher.compute(plain)

    def test_add_node_changes_hash(self, hasher):
        graph = _graph_with({})
        before = hasher.compute(graph)
        graph.add_node(Node(id="n2", kind="rust_fn"))
        assert hasher.compute(graph) != before

    def test_unknown_algorithm(self):
        with pytest.raises(MalformedInputError):
            StateHasher("md4")

    def test_snapshot_is_sorted_and_compact(self):
        graph = ProgramGraph()
        graph.add_node(Node(id="b", kind="rust_fn"))
        graph.add_node(Node(id="a", kind="rust_fn"))
        snapshot = StateHasher().snapshot(graph)
        assert snapshot.index('"id":"a"') < snapshot.index('"id":"b"')
        assert ", " not in snapshot

    def test_hash_graph_wrapper(self):
        graph = _graph_with({"x": 1})
        assert hash_graph(graph) == StateHasher().compute(graph)


class TestRolling32:
    """Test cases for the legacy 32-bit rolling digest."""

    def test_known_values(self):
        assert _rolling32_digest("") == "0"
        assert _rolling32_digest("a") == _to_base36(97)
        assert _rolling32_digest("ab") == _to_base36(97 * 31 + 98)

    def test_wraps_to_signed_32_bit(self):
        digest = _rolling32_digest("x" * 50)
        value = int(digest, 36)
        assert -2**31 <= value < 2**31

    def test_base36(self):
        assert _to_base36(0) == "0"
        assert _to_base36(35) == "z"
        assert _to_base36(36) == "10"
        assert _to_base36(-36) == "-10"


@given(field_maps)
def test_hash_is_deterministic_property(fields):
    """Property test: hashing the same state twice yields the same value."""
    graph = _graph_with(fields)
    hasher = StateHasher()
    assert hasher.compute(graph) == hasher.compute(graph)
    assert hasher.compute(graph) == hasher.compute(_graph_with(fields))


@given(field_maps, st.integers(min_value=-1000, max_value=1000))
def test_single_field_change_changes_hash_property(fields, value):
    """Property test: changing one field value changes the hash."""
    graph = _graph_with(fields)
    before = StateHasher().compute(graph)
    name = "delta"
    if fields.get(name) == value and type(fields.get(name)) is int:
        value += 1
    graph.set_field("n1", name, value)
    assert StateHasher().compute(graph) != before
