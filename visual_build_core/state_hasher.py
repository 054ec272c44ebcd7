"""
Canonical state hashing of a program graph.

The hash is a pure function of each node's ``{id, kind, disabled, fields,
connections}`` projection: records are sorted by id, serialized to canonical
JSON and digested. Two graphs with the same projection always hash the same,
whatever their object identity or insertion order.

Collisions are possible (the digest is fixed-width) and are not detected.
"""

import hashlib
import json
from typing import Any, Callable, Dict, List

from .exceptions import MalformedInputError
from .models import ProgramGraph


EMPTY_GRAPH_HASH = "empty"


def _blake2b_digest(text: str) -> str:
    return hashlib.blake2b(text.encode('utf-8', errors='surrogatepass'), digest_size=16).hexdigest()


def _to_base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return sign + "".join(reversed(out))


def _rolling32_digest(text: str) -> str:
    """32-bit multiplicative rolling hash over UTF-16 code units, signed base 36."""
    data = text.encode('utf-16-le', errors='surrogatepass')
    h = 0
    for i in range(0, len(data), 2):
        h = (h * 31 + (data[i] | (data[i + 1] << 8))) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(h)


HASH_ALGORITHMS: Dict[str, Callable[[str], str]] = {
    'blake2b': _blake2b_digest,
    'rolling32': _rolling32_digest,
}


class StateHasher:
    """Computes the content hash of a ProgramGraph."""

    def __init__(self, algorithm: str = 'blake2b'):
        if algorithm not in HASH_ALGORITHMS:
            raise MalformedInputError(
                f"Unknown hash algorithm: {algorithm}",
                details={'available': sorted(HASH_ALGORITHMS)},
            )
        self.algorithm = algorithm
        self._digest = HASH_ALGORITHMS[algorithm]

    @staticmethod
    def records(graph: ProgramGraph) -> List[Dict[str, Any]]:
        """Projected node records, sorted by id in code-point order."""
        records = [
            {
                'id': node.id,
                'kind': node.kind,
                'disabled': node.disabled,
                'fields': dict(node.fields),
                'connections': dict(node.connections),
            }
            for node in graph.nodes()
        ]
        records.sort(key=lambda record: record['id'])
        return records

    def snapshot(self, graph: ProgramGraph) -> str:
        """Canonical text the digest is computed from."""
        return json.dumps(self.records(graph), sort_keys=True,
                          separators=(',', ':'), ensure_ascii=False)

    def compute(self, graph: ProgramGraph) -> str:
        if graph is None or graph.node_count == 0:
            return EMPTY_GRAPH_HASH
        return f"{self.algorithm}:{self._digest(self.snapshot(graph))}"


def hash_graph(graph: ProgramGraph, algorithm: str = 'blake2b') -> str:
    """Convenience wrapper around StateHasher.compute."""
    return StateHasher(algorithm).compute(graph)
