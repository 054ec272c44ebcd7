"""
Core data models for the Visual Build Core.

This module defines the program graph the user edits: nodes (visual program
fragments), the tree formed by their slot connections, and the change events
the graph raises whenever it is mutated.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Callable, Iterator, Optional, Tuple
from enum import Enum
import logging
import uuid

from .exceptions import MalformedInputError, NotFoundError


_SCALAR_TYPES = (str, int, float, bool, type(None))


class ChangeEventType(Enum):
    """Kinds of notifications raised by a ProgramGraph."""
    CREATE = "create"
    DELETE = "delete"
    CHANGE = "change"                  # field value or disabled flag
    MOVE = "move"                      # slot connection attached/detached
    UI = "ui"                          # selection, viewport
    FINISHED_LOADING = "finished_loading"


@dataclass(frozen=True)
class ChangeEvent:
    """A single graph mutation notification."""
    type: ChangeEventType
    node_id: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_presentation_only(self) -> bool:
        return self.type == ChangeEventType.UI


@dataclass
class Node:
    """One visual program fragment."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    kind: str = ""
    disabled: bool = False
    fields: Dict[str, Any] = field(default_factory=dict)
    connections: Dict[str, str] = field(default_factory=dict)  # slot -> child id

    def __setattr__(self, name: str, value: Any):
        if name == 'kind' and 'kind' in self.__dict__:
            raise AttributeError("Node kind is immutable after creation")
        super().__setattr__(name, value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'kind': self.kind,
            'disabled': self.disabled,
            'fields': dict(self.fields),
            'connections': dict(self.connections),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Node':
        if not isinstance(data, dict):
            raise MalformedInputError("Node record must be a mapping")
        return cls(
            id=data.get('id') or str(uuid.uuid4()),
            kind=data.get('kind', ''),
            disabled=bool(data.get('disabled', False)),
            fields=dict(data.get('fields') or {}),
            connections=dict(data.get('connections') or {}),
        )


@dataclass
class ValidationResult:
    """Outcome of validating a whole program graph."""
    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'errors': list(self.errors),
            'warnings': list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValidationResult':
        return cls(
            valid=bool(data.get('valid', True)),
            errors=list(data.get('errors', [])),
            warnings=list(data.get('warnings', [])),
        )


def _validate_scalar(name: str, value: Any):
    if not isinstance(name, str) or not name:
        raise MalformedInputError("Field name must be a non-empty string")
    if not isinstance(value, _SCALAR_TYPES):
        raise MalformedInputError(
            f"Field '{name}' must hold a scalar value, got {type(value).__name__}",
            details={'field': name},
        )


class ProgramGraph:
    """
    The mutable forest of nodes in a workspace.

    Nodes are linked through their ``connections`` slots into trees: every
    connection target exists in the graph, a node has at most one parent and
    no node is its own ancestor. All mutation goes through the graph so that
    listeners see every change.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._nodes: Dict[str, Node] = {}
        self._parents: Dict[str, Tuple[str, str]] = {}  # child id -> (parent id, slot)
        self._listeners: Dict[int, Callable[[ChangeEvent], None]] = {}
        self._listener_counter = 0

        # Presentation state, never hashed
        self.selected_node_id: Optional[str] = None
        self.viewport: Tuple[float, float] = (0.0, 0.0)

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def add_change_listener(self, callback: Callable[[ChangeEvent], None]) -> int:
        """Register a change listener and return its id."""
        self._listener_counter += 1
        self._listeners[self._listener_counter] = callback
        return self._listener_counter

    def remove_change_listener(self, listener_id: int) -> bool:
        return self._listeners.pop(listener_id, None) is not None

    def _fire(self, event: ChangeEvent):
        for callback in list(self._listeners.values()):
            try:
                callback(event)
            except Exception as e:
                self.logger.warning(f"Change listener failed on {event.type.value}: {e}")

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def nodes(self) -> List[Node]:
        """All nodes in insertion order."""
        return list(self._nodes.values())

    def get_parent(self, node_id: str) -> Optional[str]:
        parent = self._parents.get(node_id)
        return parent[0] if parent else None

    def roots(self) -> List[Node]:
        """Top-level nodes (one per file container)."""
        return [node for node_id, node in self._nodes.items() if node_id not in self._parents]

    def iter_subtree(self, node_id: str) -> Iterator[Node]:
        """Yield a node and all its descendants, depth-first."""
        stack = [node_id]
        while stack:
            current = self._nodes.get(stack.pop())
            if current is None:
                continue
            yield current
            stack.extend(reversed(list(current.connections.values())))

    def _require_node(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFoundError(f"Node not found: {node_id}", resource_id=node_id)
        return node

    def _is_ancestor(self, candidate_id: str, node_id: str) -> bool:
        """True if candidate_id is node_id or one of its ancestors."""
        current = node_id
        while current is not None:
            if current == candidate_id:
                return True
            current = self.get_parent(current)
        return False

    # =========================================================================
    # MUTATION
    # =========================================================================

    def add_node(self, node: Node, parent_id: Optional[str] = None, slot: Optional[str] = None) -> str:
        """Add a node, optionally plugging it into a parent's slot."""
        if not isinstance(node, Node):
            raise MalformedInputError("add_node expects a Node")
        if not node.id or not isinstance(node.id, str):
            raise MalformedInputError("Node id must be a non-empty string")
        if not node.kind or not isinstance(node.kind, str):
            raise MalformedInputError("Node kind must be a non-empty string")
        if node.id in self._nodes:
            raise MalformedInputError(f"Duplicate node id: {node.id}", details={'node_id': node.id})
        for name, value in node.fields.items():
            _validate_scalar(name, value)
        for child_slot, child_id in node.connections.items():
            if child_id not in self._nodes:
                raise MalformedInputError(f"Slot '{child_slot}' references missing node: {child_id}")
            if child_id in self._parents:
                raise MalformedInputError(f"Node {child_id} already has a parent")
        if parent_id is not None:
            self._require_node(parent_id)
            if not slot:
                raise MalformedInputError("A slot name is required when a parent is given")

        self._nodes[node.id] = node
        for child_slot, child_id in node.connections.items():
            self._parents[child_id] = (node.id, child_slot)
        if parent_id is not None:
            self._attach(parent_id, slot, node.id)

        self._fire(ChangeEvent(ChangeEventType.CREATE, node.id, {'kind': node.kind}))
        return node.id

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and its whole subtree."""
        if node_id not in self._nodes:
            return False

        self._detach(node_id)
        removed = [n.id for n in self.iter_subtree(node_id)]
        for removed_id in removed:
            self._parents.pop(removed_id, None)
            del self._nodes[removed_id]
            if self.selected_node_id == removed_id:
                self.selected_node_id = None

        self._fire(ChangeEvent(ChangeEventType.DELETE, node_id, {'removed': removed}))
        return True

    def set_field(self, node_id: str, name: str, value: Any):
        node = self._require_node(node_id)
        _validate_scalar(name, value)
        old = node.fields.get(name)
        if name in node.fields and type(old) is type(value) and old == value:
            return
        node.fields[name] = value
        self._fire(ChangeEvent(ChangeEventType.CHANGE, node_id,
                               {'element': 'field', 'name': name, 'old': old, 'new': value}))

    def set_disabled(self, node_id: str, disabled: bool):
        node = self._require_node(node_id)
        disabled = bool(disabled)
        if node.disabled == disabled:
            return
        node.disabled = disabled
        self._fire(ChangeEvent(ChangeEventType.CHANGE, node_id,
                               {'element': 'disabled', 'new': disabled}))

    def connect(self, parent_id: str, slot: str, child_id: str):
        """Plug child into parent's slot, moving it from any previous parent."""
        self._require_node(parent_id)
        self._require_node(child_id)
        if not slot or not isinstance(slot, str):
            raise MalformedInputError("Slot name must be a non-empty string")
        if self._is_ancestor(child_id, parent_id):
            raise MalformedInputError(
                f"Connecting {child_id} under {parent_id} would create a cycle",
                details={'parent_id': parent_id, 'child_id': child_id},
            )
        self._attach(parent_id, slot, child_id)
        self._fire(ChangeEvent(ChangeEventType.MOVE, child_id,
                               {'parent_id': parent_id, 'slot': slot}))

    def disconnect(self, parent_id: str, slot: str) -> Optional[str]:
        """Unplug whatever is in parent's slot; returns the detached child id."""
        parent = self._require_node(parent_id)
        child_id = parent.connections.get(slot)
        if child_id is None:
            return None
        self._detach(child_id)
        self._fire(ChangeEvent(ChangeEventType.MOVE, child_id,
                               {'parent_id': None, 'old_parent_id': parent_id, 'slot': slot}))
        return child_id

    def clear(self):
        """Remove every node."""
        removed = list(self._nodes)
        self._nodes.clear()
        self._parents.clear()
        self.selected_node_id = None
        if removed:
            self._fire(ChangeEvent(ChangeEventType.DELETE, None, {'removed': removed}))

    def _attach(self, parent_id: str, slot: str, child_id: str):
        self._detach(child_id)
        parent = self._nodes[parent_id]
        previous = parent.connections.get(slot)
        if previous is not None and previous != child_id:
            self._parents.pop(previous, None)
        parent.connections[slot] = child_id
        self._parents[child_id] = (parent_id, slot)

    def _detach(self, child_id: str):
        parent = self._parents.pop(child_id, None)
        if parent is None:
            return
        parent_id, slot = parent
        parent_node = self._nodes.get(parent_id)
        if parent_node is not None and parent_node.connections.get(slot) == child_id:
            del parent_node.connections[slot]

    # =========================================================================
    # PRESENTATION (not part of the hashed state)
    # =========================================================================

    def select(self, node_id: Optional[str]):
        if node_id is not None:
            self._require_node(node_id)
        self.selected_node_id = node_id
        self._fire(ChangeEvent(ChangeEventType.UI, node_id, {'element': 'selected'}))

    def move_viewport(self, delta_x: float, delta_y: float):
        x, y = self.viewport
        self.viewport = (x + delta_x, y + delta_y)
        self._fire(ChangeEvent(ChangeEventType.UI, None, {'element': 'viewport'}))

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {'nodes': [node.to_dict() for node in self._nodes.values()]}

    def load_dict(self, data: Dict[str, Any]):
        """
        Replace the whole graph with a deserialized document.

        The new state is validated before anything is swapped in; listeners
        receive a single FINISHED_LOADING event instead of per-node events.
        """
        if not isinstance(data, dict) or not isinstance(data.get('nodes', []), list):
            raise MalformedInputError("Graph document must be a mapping with a 'nodes' list")

        nodes: Dict[str, Node] = {}
        for record in data.get('nodes', []):
            node = Node.from_dict(record)
            if not node.kind:
                raise MalformedInputError(f"Node {node.id} has no kind")
            if node.id in nodes:
                raise MalformedInputError(f"Duplicate node id: {node.id}")
            for name, value in node.fields.items():
                _validate_scalar(name, value)
            nodes[node.id] = node

        parents: Dict[str, Tuple[str, str]] = {}
        for node in nodes.values():
            for slot, child_id in node.connections.items():
                if child_id not in nodes:
                    raise MalformedInputError(f"Node {node.id} slot '{slot}' references missing node: {child_id}")
                if child_id in parents:
                    raise MalformedInputError(f"Node {child_id} has more than one parent")
                parents[child_id] = (node.id, slot)

        for node_id in nodes:
            seen = set()
            current = node_id
            while current in parents:
                if current in seen:
                    raise MalformedInputError(f"Cycle detected through node {node_id}")
                seen.add(current)
                current = parents[current][0]

        self._nodes = nodes
        self._parents = parents
        self.selected_node_id = None
        self._fire(ChangeEvent(ChangeEventType.FINISHED_LOADING, None, {'node_count': len(nodes)}))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProgramGraph':
        graph = cls()
        graph.load_dict(data)
        return graph
