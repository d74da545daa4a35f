"""Code graph builder for generated JavaScript, built on Tree-sitter.

Tree-sitter gives an error-tolerant concrete syntax tree, so a graph can be
extracted even from bundles with minor syntax errors. Raw tree nodes are
decoded once into :class:`~sourcelens.models.FunctionSite` records; nothing
downstream sees the parser's node types.

Call edges are purely textual: ``foo()`` contributes ``foo`` and
``obj.bar()`` contributes ``bar``. No scope resolution is attempted, so two
unrelated functions with the same name share one graph node.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, Iterator, List, Optional, Set

from .models import CodeGraph, FunctionKind, FunctionRange, FunctionSite

logger = logging.getLogger(__name__)

# Tree-sitter node type -> decoded kind
_SITE_KINDS: Dict[str, FunctionKind] = {
    "function_declaration": FunctionKind.DECLARATION,
    "generator_function_declaration": FunctionKind.DECLARATION,
    "function_expression": FunctionKind.EXPRESSION,
    "function": FunctionKind.EXPRESSION,  # named node only in grammars before 0.21
    "generator_function": FunctionKind.EXPRESSION,
    "arrow_function": FunctionKind.EXPRESSION,
    "class_declaration": FunctionKind.CLASS,
    "method_definition": FunctionKind.METHOD,
}


class CodeGraphBuilder:
    """Extracts function spans, names and callee names from program text."""

    # Map language name -> module that provides the tree-sitter Language
    _GRAMMAR_MODULES: Dict[str, str] = {
        "javascript": "tree_sitter_javascript",
    }

    def __init__(self, language: str = "javascript") -> None:
        self.language = language
        self._parser: Any = None
        self._init_parser()

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def _init_parser(self) -> None:
        mod_name = self._GRAMMAR_MODULES.get(self.language)
        if mod_name is None:
            logger.warning("No grammar module mapped for language '%s'", self.language)
            return
        try:
            from tree_sitter import Language, Parser as TSParser

            mod = importlib.import_module(mod_name)
            # tree-sitter >=0.22 per-language packages expose a
            # language() function that returns the Language capsule.
            self._parser = TSParser(Language(mod.language()))
            logger.debug("Loaded tree-sitter parser for %s", self.language)
        except ImportError:
            logger.warning(
                "Grammar package '%s' not installed for language '%s'. "
                "Install with: pip install %s",
                mod_name, self.language, mod_name.replace("_", "-"),
            )
        except Exception as exc:
            logger.warning("Could not load tree-sitter grammar for %s: %s", self.language, exc)

    def supports_language(self, language: str) -> bool:
        return self._parser is not None and language == self.language

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract_sites(self, text: str) -> List[FunctionSite]:
        """Decode every function-like node of *text*, in document order.

        Raises whatever the underlying parser raises; :meth:`build` is the
        soft-failing entry point.
        """
        if self._parser is None:
            raise RuntimeError(f"no parser available for {self.language}")
        data = text.encode("utf-8")
        tree = self._parser.parse(data)
        sites: List[FunctionSite] = []
        for ts_node in _walk(tree.root_node):
            site = _decode_site(ts_node, data)
            if site is not None:
                sites.append(site)
        return sites

    def build(self, text: str) -> CodeGraph:
        """Build the code graph for *text*.

        Never raises: a parser failure yields an empty, unparsed graph so
        rendering can proceed without focus mode or definition links.
        """
        try:
            sites = self.extract_sites(text)
        except Exception as exc:
            logger.warning("Code graph failed: %s", exc)
            return CodeGraph.empty()
        return graph_from_sites(sites)


def graph_from_sites(sites: List[FunctionSite]) -> CodeGraph:
    """Fold decoded sites into a :class:`CodeGraph` (last write wins by name)."""
    graph = CodeGraph(parsed=True)
    for site in sites:
        entry = FunctionRange(
            start_line=site.start_line,
            end_line=site.end_line,
            callee_names=site.callee_names,
            name=site.name,
            start_column=site.start_column,
        )
        graph.all_ranges.append(entry)
        if site.name:
            graph.func_map[site.name] = entry
            graph.def_map[site.name] = site.start_line
    return graph


# ===================================================================
# Tree-sitter helpers
# ===================================================================

def _walk(root: Any) -> Iterator[Any]:
    """Pre-order traversal with an explicit stack."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace")


def _char_column(data: bytes, byte_offset: int) -> int:
    """Character column of *byte_offset*; tree-sitter points count bytes."""
    line_start = data.rfind(b"\n", 0, byte_offset) + 1
    return len(data[line_start:byte_offset].decode("utf-8", errors="replace"))


def _decode_site(node: Any, data: bytes) -> Optional[FunctionSite]:
    # anonymous tokens such as the `function` keyword share node type names
    if not node.is_named:
        return None
    kind = _SITE_KINDS.get(node.type)
    if kind is None:
        return None
    return FunctionSite(
        kind=kind,
        start_line=node.start_point[0] + 1,
        end_line=node.end_point[0] + 1,
        callee_names=frozenset(_collect_calls(node)),
        name=_site_name(kind, node),
        start_column=_char_column(data, node.start_byte),
    )


def _site_name(kind: FunctionKind, node: Any) -> Optional[str]:
    if kind in (FunctionKind.DECLARATION, FunctionKind.CLASS):
        name_node = node.child_by_field_name("name")
        return _text(name_node) if name_node is not None else None

    if kind is FunctionKind.METHOD:
        name_node = node.child_by_field_name("name")
        if name_node is not None and name_node.type == "property_identifier":
            return _text(name_node)
        return None

    # Expressions are named only by a direct binding.
    parent = node.parent
    if parent is None:
        return None
    if parent.type == "variable_declarator" and parent.child_by_field_name("value") == node:
        target = parent.child_by_field_name("name")
        if target is not None and target.type == "identifier":
            return _text(target)
    elif parent.type == "assignment_expression" and parent.child_by_field_name("right") == node:
        target = parent.child_by_field_name("left")
        if target is not None and target.type == "identifier":
            return _text(target)
    return None


def _collect_calls(func_node: Any) -> Set[str]:
    """Return every callee name inside *func_node*, nested functions included."""
    calls: Set[str] = set()
    for node in _walk(func_node):
        if node.type != "call_expression":
            continue
        arguments = node.child_by_field_name("arguments")
        if arguments is not None and arguments.type == "template_string":
            continue  # tagged template
        name = _callee_name(node.child_by_field_name("function"))
        if name:
            calls.add(name)
    return calls


def _callee_name(callee: Any) -> Optional[str]:
    if callee is None:
        return None
    if callee.type == "identifier":
        return _text(callee)
    if callee.type == "member_expression":
        prop = callee.child_by_field_name("property")
        if prop is not None and prop.type == "property_identifier":
            return _text(prop)
    return None
