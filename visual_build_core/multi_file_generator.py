"""
Multi-file code generation on top of the performance cache.

Top-level nodes are grouped by output file (an explicit assignment, or the
default file of the node's mode) and then by mode. Each mode's generator is
called only when the code cache misses for the current workspace key; the
reference manager's import lines are prepended to each file.
"""

import io
import logging
import zipfile
from typing import Callable, Dict, List, Optional, Union

from .exceptions import MalformedInputError
from .models import Node, ProgramGraph
from .modes import Mode, ModeClassifier, get_default_file, resolve_mode
from .performance_cache import PerformanceCache


ModeGenerator = Callable[[List[Node], ProgramGraph], str]


class MultiFileGenerator:
    """Generates one text file per output target from a ProgramGraph."""

    def __init__(self, generators: Optional[Dict[Union[str, Mode], ModeGenerator]] = None,
                 cache: Optional[PerformanceCache] = None,
                 reference_manager=None,
                 classifier: Optional[ModeClassifier] = None,
                 default_mode: Union[str, Mode] = Mode.RUST):
        self.logger = logging.getLogger(__name__)
        self.generators: Dict[Mode, ModeGenerator] = {
            resolve_mode(mode): generator for mode, generator in (generators or {}).items()
        }
        self.cache = cache
        self.reference_manager = reference_manager
        self.classifier = classifier or ModeClassifier()
        self.default_mode = resolve_mode(default_mode)

        self._node_file_assignments: Dict[str, str] = {}
        self._generated: Dict[str, str] = {}

        if self.reference_manager is not None and self.reference_manager.file_resolver is None:
            self.reference_manager.file_resolver = self.get_file_for_node
        if self.cache is not None and self.reference_manager is not None:
            self.cache.attach_reference_manager(self.reference_manager)

    def register_generator(self, mode: Union[str, Mode], generator: ModeGenerator):
        self.generators[resolve_mode(mode)] = generator
        self.invalidate_cache()

    def generate_all(self, graph: ProgramGraph) -> Dict[str, str]:
        """Filename -> generated code for every file in the graph."""
        if graph is None:
            raise MalformedInputError("A program graph is required")

        if self.cache is not None:
            cached = self.cache.get_cached_code(graph)
            if cached is not None:
                self.logger.debug("Using cached code")
                self._generated = dict(cached)
                return dict(cached)

        imports_by_file = (self.reference_manager.generate_imports()
                           if self.reference_manager is not None else {})

        files: Dict[str, str] = {}
        for filename, nodes_by_mode in self._group_nodes_by_file(graph).items():
            file_code = ''
            for mode, nodes in nodes_by_mode.items():
                generator = self.generators.get(mode)
                if generator is None:
                    self.logger.warning(f"No generator found for mode: {mode.value}")
                    continue

                mode_code = generator(nodes, graph)
                if mode_code and mode_code.strip():
                    if file_code and len(nodes_by_mode) > 1:
                        file_code += f"\n// ========== {mode.value.upper()} CODE ==========\n\n"
                    file_code += mode_code

            if file_code.strip():
                header = imports_by_file.get(filename, [])
                if header:
                    file_code = '\n'.join(header) + '\n\n' + file_code
                files[filename] = file_code

        self._generated = files
        if self.cache is not None:
            self.cache.set_cached_code(graph, files)
        return dict(files)

    def get_file_for_node(self, node: Node) -> str:
        if node is None:
            raise MalformedInputError("Node is required")
        if node.id in self._node_file_assignments:
            return self._node_file_assignments[node.id]
        return get_default_file(self._mode_for_node(node))

    def set_file_for_node(self, node: Node, filename: str):
        """Route a node's code into a specific output file."""
        if node is None:
            raise MalformedInputError("Node is required")
        if not filename or not isinstance(filename, str):
            raise MalformedInputError("Filename must be a non-empty string")
        self._node_file_assignments[node.id] = filename
        # File assignment is not part of the content hash.
        self.invalidate_cache()

    def clear(self):
        self._node_file_assignments.clear()
        self._generated.clear()

    def invalidate_cache(self):
        if self.cache is not None:
            self.cache.invalidate_code_cache()

    def get_generated_files(self) -> List[str]:
        return list(self._generated.keys())

    def has_file(self, filename: str) -> bool:
        return filename in self._generated

    def get_file_code(self, filename: str) -> Optional[str]:
        return self._generated.get(filename)

    @staticmethod
    def export_as_zip(files: Dict[str, str]) -> bytes:
        """Bundle generated files into an in-memory ZIP archive."""
        if not isinstance(files, dict):
            raise MalformedInputError("Files must be a mapping of filename to code")
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
            for filename, content in files.items():
                archive.writestr(filename, content)
        return buffer.getvalue()

    def _mode_for_node(self, node: Node) -> Mode:
        mode = self.classifier.classify_kind(node.kind)
        return mode if mode != Mode.UNKNOWN else self.default_mode

    def _group_nodes_by_file(self, graph: ProgramGraph) -> Dict[str, Dict[Mode, List[Node]]]:
        grouped: Dict[str, Dict[Mode, List[Node]]] = {}
        for node in graph.roots():
            if node.disabled:
                continue
            filename = self.get_file_for_node(node)
            grouped.setdefault(filename, {}).setdefault(self._mode_for_node(node), []).append(node)
        return grouped
