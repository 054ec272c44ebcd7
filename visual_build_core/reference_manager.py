"""
Reference Manager - explicit cross-file / cross-mode references between fragments.

A reference is a directed edge from a source node to a target file (and
optionally a symbol inside it), possibly in a different mode: a Bevy system
pointing at a WGSL compute shader, a Rust function using a Biospheres cell
type. References form an overlay graph that is independent of the program
graph's slot tree and may contain cycles.

Two stores are kept in step:
    _references      reference id -> Reference
    _node_references node id -> {reference id: None}   (reverse index, creation order,
                                                        no empty buckets)

Every mutation bumps ``version`` so caches keyed on it stop hitting once
the references that feed code generation change.
"""

import copy
import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .exceptions import (
    ImportValidationError,
    MalformedInputError,
    NotFoundError,
    ReferenceImportError,
)
from .models import Node, ProgramGraph
from .modes import (
    MODES,
    Mode,
    ModeClassifier,
    get_default_file,
    resolve_mode,
)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass
class Reference:
    """A directed edge from a source node to a target file/symbol."""
    id: str
    source_node_id: str
    source_mode: Mode
    target_file: str
    target_mode: Mode
    target_symbol: Optional[str] = None
    description: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_cross_mode(self) -> bool:
        return self.source_mode != self.target_mode

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['source_mode'] = self.source_mode.value
        data['target_mode'] = self.target_mode.value
        return data


@dataclass
class ImportReport:
    """Summary of the last bulk import."""
    imported: int = 0
    skipped: List[ImportValidationError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'imported': self.imported,
            'skipped': [error.to_dict() for error in self.skipped],
        }


# =============================================================================
# IMPORT STATEMENT RULES
# =============================================================================

def _file_to_module(filename: str) -> str:
    """`physics/solver.rs` -> `physics::solver`."""
    module = filename
    for extension in ('.rs', '.wgsl'):
        if module.endswith(extension):
            module = module[:-len(extension)]
            break
    return module.replace('/', '::').replace('\\', '::')


def _supports_use(mode: Mode) -> bool:
    config = MODES.get(mode)
    return bool(config and config.supports_use)


def _use_statement(reference: Reference) -> str:
    module = _file_to_module(reference.target_file)
    if reference.target_symbol:
        return f"use crate::{module}::{reference.target_symbol};"
    return f"use crate::{module}::*;"


def _shader_marker(reference: Reference) -> str:
    return f"// Shader reference: {reference.target_file}"


def _generic_marker(reference: Reference) -> str:
    symbol = f" ({reference.target_symbol})" if reference.target_symbol else ""
    return f"// Reference to {reference.target_file}{symbol}"


# First matching rule wins.
IMPORT_RULES: Tuple[Tuple[str, Callable[[Reference], bool], Callable[[Reference], str]], ...] = (
    ('shader_target',
     lambda r: r.target_mode == Mode.WGSL and r.source_mode != Mode.WGSL,
     _shader_marker),
    ('same_mode_use',
     lambda r: r.source_mode == r.target_mode and _supports_use(r.source_mode),
     _use_statement),
    ('cross_mode_symbol_use',
     lambda r: (r.source_mode != r.target_mode and bool(r.target_symbol)
                and _supports_use(r.source_mode) and _supports_use(r.target_mode)),
     _use_statement),
    ('generic_comment',
     lambda r: True,
     _generic_marker),
)


def generate_import_statement(reference: Reference) -> str:
    """Import/use line for a single reference."""
    for _name, matches, render in IMPORT_RULES:
        if matches(reference):
            return render(reference)
    return _generic_marker(reference)


# =============================================================================
# REFERENCE MANAGER
# =============================================================================

class ReferenceManager:
    """Creates, updates, deletes and queries cross-fragment references."""

    ID_PREFIX = "ref_"

    def __init__(self, graph: ProgramGraph,
                 classifier: Optional[ModeClassifier] = None,
                 file_resolver: Optional[Callable[[Node], str]] = None,
                 default_mode: Union[str, Mode] = Mode.RUST,
                 clock: Optional[Callable[[], datetime]] = None):
        self.logger = logging.getLogger(__name__)
        self.graph = graph
        self.classifier = classifier or ModeClassifier()
        self.file_resolver = file_resolver
        self.default_mode = resolve_mode(default_mode)
        if self.default_mode == Mode.UNKNOWN:
            raise MalformedInputError(f"Unknown default mode: {default_mode}")
        self._clock = clock or datetime.now

        self._references: Dict[str, Reference] = {}
        self._node_references: Dict[str, Dict[str, None]] = {}
        self._reference_counter = 0
        self._version = 0
        self.last_import_report = ImportReport()

        # Visual indicator hooks
        self.on_references_changed: Optional[Callable[[List[Reference]], None]] = None
        self.on_references_cleared: Optional[Callable[[], None]] = None

        self.logger.info("ReferenceManager initialized")

    @property
    def version(self) -> int:
        """Counter bumped on every reference mutation."""
        return self._version

    @property
    def reference_count(self) -> int:
        return len(self._references)

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_reference(self, source_node: Union[Node, str], target_file: str,
                         target_mode: Union[str, Mode, None] = None,
                         target_symbol: Optional[str] = None,
                         description: Optional[str] = None) -> Reference:
        """
        Create a reference from a source node to a target file.

        Args:
            source_node: The source Node or its id.
            target_file: Path-like name of the referenced file.
            target_mode: Mode of the target; inferred from target_file if omitted.
            target_symbol: Specific symbol inside the target file.
            description: Free text; defaults to "Reference to <target_file>".

        Raises:
            MalformedInputError: empty source id, empty target file or unknown mode.
            NotFoundError: the source node does not exist.
        """
        source_node_id = source_node.id if isinstance(source_node, Node) else source_node
        if not source_node_id or not isinstance(source_node_id, str):
            raise MalformedInputError("Source node id is required")
        if not target_file or not isinstance(target_file, str):
            raise MalformedInputError("Target file must be a non-empty string")

        node = self.graph.get_node(source_node_id)
        if node is None:
            raise NotFoundError(f"Node not found: {source_node_id}", resource_id=source_node_id)

        resolved_target_mode = self._resolve_target_mode(target_file, target_mode)
        now = self._now()
        self._reference_counter += 1
        reference = Reference(
            id=f"{self.ID_PREFIX}{self._reference_counter:06d}",
            source_node_id=source_node_id,
            source_mode=self._mode_for_node(node),
            target_file=target_file,
            target_mode=resolved_target_mode,
            target_symbol=target_symbol or None,
            description=description if description else f"Reference to {target_file}",
            created_at=now,
            updated_at=now,
        )

        self._references[reference.id] = reference
        self._node_references.setdefault(source_node_id, {})[reference.id] = None
        self._touch()

        self.logger.info(f"Created reference {reference.id}: {source_node_id} -> "
                         f"{target_file} ({reference.target_mode.value})")
        return copy.copy(reference)

    def update_reference(self, reference_id: str, new_target: Optional[str] = None,
                         target_mode: Union[str, Mode, None] = None,
                         target_symbol: Any = UNSET,
                         description: Any = UNSET) -> Optional[Reference]:
        """
        Update the supplied fields of a reference.

        Returns the updated reference, or None if the id is unknown.
        """
        if not reference_id:
            raise MalformedInputError("Reference id is required")

        reference = self._references.get(reference_id)
        if reference is None:
            self.logger.warning(f"Reference not found: {reference_id}")
            return None

        if new_target is not None and (not isinstance(new_target, str) or not new_target):
            raise MalformedInputError("Target file must be a non-empty string")
        target_file = new_target if new_target is not None else reference.target_file
        resolved_mode = reference.target_mode
        if new_target is not None or target_mode is not None:
            resolved_mode = self._resolve_target_mode(target_file, target_mode)

        reference.target_file = target_file
        reference.target_mode = resolved_mode

        if target_symbol is not UNSET:
            reference.target_symbol = target_symbol or None
        if description is not UNSET:
            reference.description = description or ""

        reference.updated_at = self._now()
        self._touch()

        self.logger.info(f"Updated reference {reference_id}")
        return copy.copy(reference)

    def delete_reference(self, reference_id: str) -> bool:
        if not reference_id:
            raise MalformedInputError("Reference id is required")

        reference = self._references.pop(reference_id, None)
        if reference is None:
            self.logger.warning(f"Reference not found: {reference_id}")
            return False

        self._unindex(reference)
        self._touch()
        self.logger.info(f"Deleted reference {reference_id}")
        return True

    def remove_references_for_node(self, node_id: str) -> int:
        """Delete every reference whose source is node_id."""
        reference_ids = list(self._node_references.pop(node_id, {}))
        for reference_id in reference_ids:
            self._references.pop(reference_id, None)
        if reference_ids:
            self._touch()
            self.logger.info(f"Removed {len(reference_ids)} references of node {node_id}")
        return len(reference_ids)

    def prune_missing_sources(self) -> int:
        """Delete references whose source node is no longer in the graph."""
        missing = [node_id for node_id in self._node_references if not self.graph.has_node(node_id)]
        return sum(self.remove_references_for_node(node_id) for node_id in missing)

    def clear_all(self):
        self._references.clear()
        self._node_references.clear()
        self._version += 1
        if self.on_references_cleared:
            self.on_references_cleared()
        self.logger.info("Cleared all references")

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_reference(self, reference_id: str) -> Optional[Reference]:
        reference = self._references.get(reference_id)
        return copy.copy(reference) if reference else None

    def get_references(self, node_id: str) -> List[Reference]:
        """Copies of the references declared by node_id, in creation order."""
        if not node_id:
            return []
        reference_ids = self._node_references.get(node_id)
        if not reference_ids:
            return []
        return [copy.copy(self._references[rid]) for rid in reference_ids
                if rid in self._references]

    def get_all_references(self) -> List[Reference]:
        return [copy.copy(reference) for reference in self._references.values()]

    def get_referencing_nodes(self) -> List[str]:
        return list(self._node_references.keys())

    def get_statistics(self) -> Dict[str, Any]:
        by_source: Dict[str, int] = {}
        by_target: Dict[str, int] = {}
        cross_mode = 0
        for reference in self._references.values():
            by_source[reference.source_mode.value] = by_source.get(reference.source_mode.value, 0) + 1
            by_target[reference.target_mode.value] = by_target.get(reference.target_mode.value, 0) + 1
            if reference.is_cross_mode:
                cross_mode += 1
        return {
            'total_references': len(self._references),
            'referencing_nodes': len(self._node_references),
            'cross_mode_references': cross_mode,
            'by_source_mode': by_source,
            'by_target_mode': by_target,
            'version': self._version,
        }

    # =========================================================================
    # IMPORT SYNTHESIS
    # =========================================================================

    def generate_imports(self, references: Optional[List[Reference]] = None) -> Dict[str, List[str]]:
        """
        Import/use statements per source file.

        Statements are unique per file and keep first-seen order; references
        whose source node has been removed are skipped.
        """
        refs = references if references is not None else list(self._references.values())
        imports_by_file: Dict[str, List[str]] = {}

        for reference in refs:
            node = self.graph.get_node(reference.source_node_id)
            if node is None:
                continue

            source_file = self.get_file_for_node(node)
            statement = generate_import_statement(reference)
            statements = imports_by_file.setdefault(source_file, [])
            if statement not in statements:
                statements.append(statement)

        return imports_by_file

    def get_file_for_node(self, node: Node) -> str:
        if self.file_resolver is not None:
            return self.file_resolver(node)
        return get_default_file(self._mode_for_node(node))

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def export_references(self) -> str:
        data = {
            'references': [reference.to_dict() for reference in self._references.values()],
            'exported_at': self._now(),
            'version': self._version,
        }
        return json.dumps(data, indent=2)

    def import_references(self, text: str) -> int:
        """
        Recreate references from ``export_references`` output.

        Malformed records and records whose source node is missing are
        skipped and listed in ``last_import_report``; an unparseable document
        raises ReferenceImportError and imports nothing.
        """
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise ReferenceImportError(f"Invalid reference data: {e}")

        if not isinstance(data, dict) or not isinstance(data.get('references'), list):
            raise ReferenceImportError("Invalid reference data format: expected a 'references' list")

        report = ImportReport()
        for index, record in enumerate(data['references']):
            skipped = self._import_record(index, record)
            if skipped is not None:
                self.logger.warning(f"Skipping reference record {index}: {skipped.reason}")
                report.skipped.append(skipped)
            else:
                report.imported += 1

        self.last_import_report = report
        self.logger.info(f"Imported {report.imported} references ({len(report.skipped)} skipped)")
        return report.imported

    def _import_record(self, index: int, record: Any) -> Optional[ImportValidationError]:
        if not isinstance(record, dict):
            return ImportValidationError("Reference record is not a mapping", index, 'malformed')

        source_node_id = (record.get('source_node_id') or record.get('sourceNodeId')
                          or record.get('sourceBlockId'))
        target_file = record.get('target_file') or record.get('targetFile')
        if not isinstance(source_node_id, str) or not source_node_id:
            return ImportValidationError("Missing source node id", index, 'missing_source', {'record': record})
        if not isinstance(target_file, str) or not target_file:
            return ImportValidationError("Missing target file", index, 'missing_target', {'record': record})
        if not self.graph.has_node(source_node_id):
            return ImportValidationError(f"Source node not found: {source_node_id}", index,
                                         'source_not_found', {'source_node_id': source_node_id})

        try:
            self.create_reference(
                source_node_id,
                target_file,
                target_mode=record.get('target_mode') or record.get('targetMode'),
                target_symbol=record.get('target_symbol') or record.get('targetSymbol'),
                description=record.get('description'),
            )
        except MalformedInputError as e:
            return ImportValidationError(str(e), index, 'malformed', {'record': record})
        return None

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _mode_for_node(self, node: Node) -> Mode:
        mode = self.classifier.classify_kind(node.kind)
        return mode if mode != Mode.UNKNOWN else self.default_mode

    def _resolve_target_mode(self, target_file: str, explicit: Union[str, Mode, None]) -> Mode:
        if explicit:
            mode = resolve_mode(explicit)
            if mode == Mode.UNKNOWN:
                raise MalformedInputError(f"Unknown target mode: {explicit}")
            return mode
        mode = self.classifier.classify_filename(target_file)
        return mode if mode != Mode.UNKNOWN else self.default_mode

    def _unindex(self, reference: Reference):
        bucket = self._node_references.get(reference.source_node_id)
        if bucket is None:
            return
        bucket.pop(reference.id, None)
        if not bucket:
            del self._node_references[reference.source_node_id]

    def _touch(self):
        self._version += 1
        if self.on_references_changed:
            self.on_references_changed(self.get_all_references())

    def _now(self) -> str:
        return self._clock().isoformat()

    def __repr__(self) -> str:
        return (f"ReferenceManager(references={len(self._references)}, "
                f"nodes={len(self._node_references)}, version={self._version})")
