"""
Invalidation Coordinator - dirty tracking and save/load baseline for a workspace.

The coordinator listens to the program graph. Content and structure events
mark the workspace dirty; selection/viewport events and the bulk
"finished loading" notification are ignored. It never evicts the
workspace-keyed caches on its own: the next content hash differs, so the
stale entries stop being hit. ``invalidate_all()`` forces the drop for
changes the hash cannot see.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Union

from .exceptions import MalformedInputError
from .models import ChangeEvent, ChangeEventType, ProgramGraph, ValidationResult
from .performance_cache import PerformanceCache


Validator = Callable[[ProgramGraph], Union[ValidationResult, Dict[str, Any]]]


def default_serializer(graph: ProgramGraph) -> str:
    return json.dumps(graph.to_dict(), indent=2, sort_keys=True)


def default_deserializer(text: str) -> Dict[str, Any]:
    return json.loads(text)


class InvalidationCoordinator:
    """Tracks unsaved changes of a ProgramGraph and fronts cached validation."""

    IGNORED_EVENTS = (ChangeEventType.UI, ChangeEventType.FINISHED_LOADING)

    def __init__(self, graph: ProgramGraph,
                 cache: Optional[PerformanceCache] = None,
                 validator: Optional[Validator] = None,
                 serializer: Callable[[ProgramGraph], str] = default_serializer,
                 deserializer: Callable[[str], Dict[str, Any]] = default_deserializer):
        if graph is None:
            raise MalformedInputError("A program graph is required")

        self.logger = logging.getLogger(__name__)
        self.graph = graph
        self.cache = cache
        self.validator = validator
        self.serializer = serializer
        self.deserializer = deserializer

        self.dirty = False
        self.mutation_count = 0
        self.last_saved_state: Optional[str] = None

        self._listener_id: Optional[int] = self.graph.add_change_listener(self.handle_event)

    # =========================================================================
    # CHANGE TRACKING
    # =========================================================================

    def handle_event(self, event: ChangeEvent):
        if event.type in self.IGNORED_EVENTS:
            return
        self.dirty = True
        self.mutation_count += 1

    def has_unsaved_changes(self) -> bool:
        return self.dirty

    def invalidate_all(self):
        """Force-drop the code and validation caches."""
        if self.cache is not None:
            self.cache.invalidate_all()

    def mark_saved(self):
        self.dirty = False
        self.last_saved_state = self.get_current_state()

    def get_current_state(self) -> str:
        return self.serializer(self.graph)

    def has_changed_since_last_save(self) -> bool:
        """Compares serialized snapshots, not hashes."""
        if self.last_saved_state is None:
            return self.graph.node_count > 0
        return self.get_current_state() != self.last_saved_state

    def get_node_count(self) -> int:
        return self.graph.node_count

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def save(self) -> str:
        """Serialize the graph and make it the saved baseline."""
        start_time = time.perf_counter()
        text = self.get_current_state()
        self.last_saved_state = text
        self.dirty = False
        duration_ms = (time.perf_counter() - start_time) * 1000
        self.logger.info(f"Workspace saved in {duration_ms:.2f}ms")
        return text

    def load(self, text: str) -> bool:
        """Replace the graph with a serialized document."""
        if not text or not isinstance(text, str):
            raise MalformedInputError("Workspace document must be a non-empty string")

        start_time = time.perf_counter()
        try:
            data = self.deserializer(text)
        except ValueError as e:
            raise MalformedInputError(f"Failed to load workspace: {e}")
        self.graph.load_dict(data)

        self.last_saved_state = self.get_current_state()
        self.dirty = False
        duration_ms = (time.perf_counter() - start_time) * 1000
        self.logger.info(f"Workspace loaded in {duration_ms:.2f}ms ({self.graph.node_count} nodes)")
        return True

    def clear(self):
        self.graph.clear()
        self.last_saved_state = None
        self.dirty = False
        self.logger.info("Workspace cleared")

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate_workspace(self) -> ValidationResult:
        """Validate the graph, reusing a cached result when the workspace key matches."""
        if self.cache is not None:
            cached = self.cache.get_cached_validation(self.graph)
            if cached is not None:
                self.logger.debug("Using cached validation result")
                return cached

        if self.graph.node_count == 0:
            result = ValidationResult(valid=True, warnings=["Workspace is empty"])
        elif self.validator is None:
            result = ValidationResult(valid=True)
        else:
            try:
                outcome = self.validator(self.graph)
                result = outcome if isinstance(outcome, ValidationResult) else ValidationResult.from_dict(outcome)
            except Exception as e:
                self.logger.error(f"Error during validation: {e}")
                result = ValidationResult(valid=False, errors=[f"Validation failed: {e}"])

        self.logger.info(f"Validation complete: {len(result.errors)} errors, "
                         f"{len(result.warnings)} warnings")

        if self.cache is not None:
            self.cache.set_cached_validation(self.graph, result)
        return result

    def dispose(self):
        if self._listener_id is not None:
            self.graph.remove_change_listener(self._listener_id)
            self._listener_id = None
        self.logger.info("Disposed")
