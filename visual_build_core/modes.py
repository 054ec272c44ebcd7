"""
Editor modes - the sub-languages a fragment or file can belong to.

Modes are resolved two ways: from a node's kind prefix (``bevy_spawn`` is a
Bevy fragment) and from a file name (``shader.wgsl`` is a WGSL file). Both
heuristics live in ``ModeClassifier`` so they can be replaced without
touching the graph, cache or reference code.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple, Union


class Mode(Enum):
    """Sub-languages supported by the editor."""
    RUST       = "rust"
    WGSL       = "wgsl"
    BEVY       = "bevy"
    BIOSPHERES = "biospheres"
    UNKNOWN    = "unknown"


@dataclass(frozen=True)
class ModeConfig:
    """Static per-mode settings."""
    mode: Mode
    display_name: str
    file_extension: str
    default_file: str
    supports_use: bool = True          # can import with `use crate::...;`
    color: str = "#888888"
    imports: Tuple[str, ...] = field(default_factory=tuple)


MODES: Dict[Mode, ModeConfig] = {
    Mode.RUST: ModeConfig(
        mode=Mode.RUST,
        display_name="Rust",
        file_extension="rs",
        default_file="main.rs",
        color="#CE422B",
        imports=("use std::collections::*;", "use std::fmt;"),
    ),
    Mode.WGSL: ModeConfig(
        mode=Mode.WGSL,
        display_name="WGSL",
        file_extension="wgsl",
        default_file="shader.wgsl",
        supports_use=False,
        color="#5C2E91",
    ),
    Mode.BEVY: ModeConfig(
        mode=Mode.BEVY,
        display_name="Bevy",
        file_extension="rs",
        default_file="systems.rs",
        color="#4EC9B0",
        imports=("use bevy::prelude::*;", "use bevy::ecs::system::*;"),
    ),
    Mode.BIOSPHERES: ModeConfig(
        mode=Mode.BIOSPHERES,
        display_name="Biospheres",
        file_extension="rs",
        default_file="cells.rs",
        color="#00BCD4",
    ),
}

FALLBACK_FILE = "output.txt"

MODE_STRING_TO_MODE: Dict[str, Mode] = {m.value: m for m in Mode}


def resolve_mode(value: Union[str, Mode, None]) -> Mode:
    """Resolve a mode string (or Mode) to a Mode, defaulting to UNKNOWN."""
    if isinstance(value, Mode):
        return value
    if not isinstance(value, str):
        return Mode.UNKNOWN
    return MODE_STRING_TO_MODE.get(value.lower().strip(), Mode.UNKNOWN)


def get_mode_config(mode: Union[str, Mode]) -> Union[ModeConfig, None]:
    return MODES.get(resolve_mode(mode))


def get_default_file(mode: Union[str, Mode]) -> str:
    """Default output file for a mode, ``output.txt`` for unknown modes."""
    config = get_mode_config(mode)
    return config.default_file if config else FALLBACK_FILE


def get_default_imports(mode: Union[str, Mode]) -> List[str]:
    config = get_mode_config(mode)
    return list(config.imports) if config else []


class ModeClassifier:
    """
    String-heuristic classification of kinds and file names into modes.

    Subclass and override ``classify_kind`` / ``classify_filename`` (or pass
    different tables) to change the heuristic.
    """

    KIND_PREFIXES: Tuple[Tuple[str, Mode], ...] = (
        ("wgsl_", Mode.WGSL),
        ("bevy_", Mode.BEVY),
        ("bio_", Mode.BIOSPHERES),
        ("rust_", Mode.RUST),
    )

    # Checked in order; first match wins.
    FILENAME_RULES: Tuple[Tuple[str, str, Mode], ...] = (
        ("suffix", ".wgsl", Mode.WGSL),
        ("contains", "shader", Mode.WGSL),
        ("contains", "system", Mode.BEVY),
        ("contains", "bevy", Mode.BEVY),
        ("contains", "cell", Mode.BIOSPHERES),
        ("contains", "genome", Mode.BIOSPHERES),
        ("contains", "bio", Mode.BIOSPHERES),
        ("suffix", ".rs", Mode.RUST),
    )

    def __init__(self, kind_prefixes=None, filename_rules=None):
        if kind_prefixes is not None:
            self.KIND_PREFIXES = tuple(kind_prefixes)
        if filename_rules is not None:
            self.FILENAME_RULES = tuple(filename_rules)

    def classify_kind(self, kind: str) -> Mode:
        """Mode of a fragment from its kind prefix."""
        if not kind:
            return Mode.UNKNOWN
        lower = kind.lower()
        for prefix, mode in self.KIND_PREFIXES:
            if lower.startswith(prefix):
                return mode
        return Mode.UNKNOWN

    def classify_filename(self, filename: str) -> Mode:
        """Mode of a target file from its name or extension."""
        if not filename:
            return Mode.UNKNOWN
        lower = filename.lower()
        for rule, needle, mode in self.FILENAME_RULES:
            if rule == "suffix" and lower.endswith(needle):
                return mode
            if rule == "contains" and needle in lower:
                return mode
        return Mode.UNKNOWN

    def classify(self, kind_or_filename: str) -> Mode:
        """Classify a value that may be either a kind or a file name."""
        if not kind_or_filename:
            return Mode.UNKNOWN
        if '.' in kind_or_filename or '/' in kind_or_filename or '\\' in kind_or_filename:
            return self.classify_filename(kind_or_filename)
        return self.classify_kind(kind_or_filename)
