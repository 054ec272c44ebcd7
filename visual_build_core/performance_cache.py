"""
Performance cache for generated code, validation results and static lookups.

Generated code and validation results depend on the workspace: they are keyed
by a ``WorkspaceKey`` made of the graph's content hash and the reference
graph's version counter, so any graph edit or reference edit yields a new key
and the old entry simply stops being hit. Toolbox structures (by mode) and
node definitions (by kind) do not depend on the workspace and are only
dropped by ``clear_all()`` or their own invalidate calls.
"""

import logging
from typing import Any, Callable, Dict, NamedTuple, Optional

from .artifact_cache import ArtifactCache
from .config import CacheConfig
from .models import ProgramGraph, ValidationResult
from .state_hasher import StateHasher


class WorkspaceKey(NamedTuple):
    """Cache key for workspace-dependent artifacts."""
    content_hash: str
    reference_version: int = 0

    def __str__(self) -> str:
        return f"{self.content_hash}@r{self.reference_version}"


class PerformanceCache:
    """The four artifact caches of the editor, behind one facade."""

    def __init__(self, config: Optional[CacheConfig] = None,
                 hasher: Optional[StateHasher] = None,
                 reference_manager: Any = None):
        self.config = config or CacheConfig()
        self.logger = logging.getLogger(__name__)
        self.hasher = hasher or StateHasher(self.config.hash_algorithm)
        self.reference_manager = reference_manager

        self.code_cache = ArtifactCache('code', self.config.code_cache_size,
                                        self.config.eviction_policy)
        self.validation_cache = ArtifactCache('validation', self.config.validation_cache_size,
                                              self.config.eviction_policy)
        self.toolbox_cache = ArtifactCache('toolbox')
        self.node_definition_cache = ArtifactCache('node_definition')

        self.logger.info("PerformanceCache initialized")

    def attach_reference_manager(self, reference_manager: Any):
        """Make reference edits part of the workspace key."""
        self.reference_manager = reference_manager

    def workspace_key(self, graph: ProgramGraph) -> WorkspaceKey:
        version = self.reference_manager.version if self.reference_manager is not None else 0
        return WorkspaceKey(self.hasher.compute(graph), version)

    # =========================================================================
    # CODE GENERATION CACHE
    # =========================================================================

    def get_cached_code(self, graph: ProgramGraph) -> Optional[Dict[str, str]]:
        """Cached filename -> code mapping for the graph, or None."""
        return self.code_cache.get(self.workspace_key(graph))

    def set_cached_code(self, graph: ProgramGraph, code_files: Dict[str, str]):
        self.code_cache.put(self.workspace_key(graph), dict(code_files))

    def invalidate_code_cache(self) -> int:
        return self.code_cache.invalidate_all()

    # =========================================================================
    # VALIDATION CACHE
    # =========================================================================

    def get_cached_validation(self, graph: ProgramGraph) -> Optional[ValidationResult]:
        return self.validation_cache.get(self.workspace_key(graph))

    def set_cached_validation(self, graph: ProgramGraph, result: ValidationResult):
        self.validation_cache.put(self.workspace_key(graph), result)

    def invalidate_validation_cache(self) -> int:
        return self.validation_cache.invalidate_all()

    # =========================================================================
    # TOOLBOX CACHE
    # =========================================================================

    def get_cached_toolbox(self, mode: str) -> Optional[Any]:
        return self.toolbox_cache.get(mode)

    def set_cached_toolbox(self, mode: str, toolbox: Any):
        self.toolbox_cache.put(mode, toolbox)

    def get_toolbox(self, mode: str, loader: Callable[[], Any]) -> Any:
        """Toolbox for a mode, building it with loader on first use."""
        return self.toolbox_cache.get_or_load(mode, loader)

    def invalidate_toolbox_cache(self, mode: Optional[str] = None):
        if mode:
            self.toolbox_cache.invalidate(mode)
        else:
            self.toolbox_cache.invalidate_all()

    # =========================================================================
    # NODE DEFINITION CACHE
    # =========================================================================

    def get_cached_node_definition(self, kind: str) -> Optional[Any]:
        return self.node_definition_cache.get(kind)

    def set_cached_node_definition(self, kind: str, definition: Any):
        self.node_definition_cache.put(kind, definition)

    def get_node_definition(self, kind: str, loader: Callable[[], Any]) -> Any:
        return self.node_definition_cache.get_or_load(kind, loader)

    def invalidate_node_definition_cache(self, kind: Optional[str] = None):
        if kind:
            self.node_definition_cache.invalidate(kind)
        else:
            self.node_definition_cache.invalidate_all()

    # =========================================================================
    # INVALIDATION
    # =========================================================================

    def invalidate_all(self):
        """Drop the workspace-dependent caches (code and validation)."""
        self.invalidate_code_cache()
        self.invalidate_validation_cache()
        self.logger.info("Invalidated all workspace-dependent caches")

    def clear_all(self):
        """Drop every cache, including toolbox and node definitions."""
        self.invalidate_all()
        self.invalidate_toolbox_cache()
        self.invalidate_node_definition_cache()
        self.logger.info("Cleared all caches")

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            'code': self.code_cache.stats().to_dict(),
            'validation': self.validation_cache.stats().to_dict(),
            'toolbox': self.toolbox_cache.stats().to_dict(),
            'node_definition': self.node_definition_cache.stats().to_dict(),
        }

    def log_stats(self):
        stats = self.get_stats()
        self.logger.info("Cache statistics:")
        for name, values in stats.items():
            self.logger.info(f"  {name}: hits={values['hits']} misses={values['misses']} "
                             f"rate={values['hit_rate_display']} size={values['cache_size']}")

    def reset_stats(self):
        for cache in (self.code_cache, self.validation_cache,
                      self.toolbox_cache, self.node_definition_cache):
            cache.reset_stats()
        self.logger.info("Statistics reset")
