"""
Visual Build Core - incremental build/cache layer for the multi-mode visual editor.

This package sits between the mutable visual program (a forest of nodes in the
Rust, WGSL, Bevy and Biospheres modes) and the generated source files. It
hashes the program state, caches generated code and validation results by
that hash, tracks explicit cross-file references between fragments and
synthesizes the import lines they require.
"""

__version__ = "0.1.0"
__author__ = "VPyD Development Team"

from .models import Node, ProgramGraph, ChangeEvent, ChangeEventType, ValidationResult
from .modes import Mode, ModeConfig, ModeClassifier, MODES, resolve_mode, get_default_file
from .state_hasher import StateHasher, EMPTY_GRAPH_HASH, hash_graph
from .artifact_cache import ArtifactCache, CacheStats, EvictionPolicy
from .performance_cache import PerformanceCache, WorkspaceKey
from .reference_manager import (
    Reference, ReferenceManager, ImportReport, UNSET, generate_import_statement
)
from .invalidation import InvalidationCoordinator
from .multi_file_generator import MultiFileGenerator
from .config import CacheConfig, configure_logging, load_env_file, resolve_setting
from .exceptions import (
    BuildCoreError, NotFoundError, MalformedInputError,
    ReferenceImportError, ImportValidationError
)

__all__ = [
    "Node",
    "ProgramGraph",
    "ChangeEvent",
    "ChangeEventType",
    "ValidationResult",
    "Mode",
    "ModeConfig",
    "ModeClassifier",
    "MODES",
    "resolve_mode",
    "get_default_file",
    "StateHasher",
    "EMPTY_GRAPH_HASH",
    "hash_graph",
    "ArtifactCache",
    "CacheStats",
    "EvictionPolicy",
    "PerformanceCache",
    "WorkspaceKey",
    "Reference",
    "ReferenceManager",
    "ImportReport",
    "UNSET",
    "generate_import_statement",
    "InvalidationCoordinator",
    "MultiFileGenerator",
    "CacheConfig",
    "configure_logging",
    "load_env_file",
    "resolve_setting",
    "BuildCoreError",
    "NotFoundError",
    "MalformedInputError",
    "ReferenceImportError",
    "ImportValidationError",
]
