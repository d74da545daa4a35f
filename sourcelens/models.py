"""Core data models shared by the decoding, graph, and projection layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

# (start_line, end_line) in generated coordinates, inclusive.
RelevantRange = Tuple[int, int]


@dataclass(frozen=True)
class Finding:
    """A reported code location in original-source coordinates.

    ``line`` is 1-based, ``column`` 0-based when present.
    """

    line: int
    severity: str = "medium"
    column: Optional[int] = None


@dataclass(frozen=True)
class MappedFinding:
    """A finding whose line has been translated into generated coordinates."""

    line: int
    severity: str
    column: Optional[int] = None
    original_line: Optional[int] = None


class FunctionKind(str, Enum):
    DECLARATION = "declaration"
    EXPRESSION = "expression"
    CLASS = "class"
    METHOD = "method"


@dataclass(frozen=True)
class FunctionSite:
    """Parser-independent record of one function-like AST node."""

    kind: FunctionKind
    start_line: int
    end_line: int
    callee_names: FrozenSet[str] = frozenset()
    name: Optional[str] = None
    start_column: int = 0


@dataclass(frozen=True)
class FunctionRange:
    start_line: int
    end_line: int
    callee_names: FrozenSet[str] = frozenset()
    name: Optional[str] = None
    start_column: int = 0

    @property
    def span(self) -> int:
        return self.end_line - self.start_line

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    def as_range(self) -> RelevantRange:
        return (self.start_line, self.end_line)


@dataclass
class CodeGraph:
    """Name-based call graph of one generated program.

    ``def_map`` and ``func_map`` are last-write-wins by name; ``all_ranges``
    holds every function-like span, named or anonymous.
    """

    def_map: Dict[str, int] = field(default_factory=dict)
    func_map: Dict[str, FunctionRange] = field(default_factory=dict)
    all_ranges: List[FunctionRange] = field(default_factory=list)
    parsed: bool = False

    @classmethod
    def empty(cls) -> "CodeGraph":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.all_ranges


@dataclass(frozen=True)
class DefinitionHit:
    """Where another source defines a name, in that source's raw coordinates."""

    source_id: str
    line: int
    column: Optional[int] = None


@dataclass
class SourceResponse:
    """Payload returned by a source repository for one source identifier."""

    source_id: str
    code: str
    findings: List[Finding] = field(default_factory=list)
    context: Dict[str, str] = field(default_factory=dict)
