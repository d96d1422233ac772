"""
tree-sitter compiler backend.

Parses sources with the tree-sitter JavaScript grammar and reads module
structure off the concrete syntax tree. This is the preferred backend: it
rejects any source the grammar cannot parse, not only lexical errors.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

import tree_sitter_javascript
from tree_sitter import Language, Node, Parser

from systranslate.compilers import (
    BaseCompiler,
    CompilerType,
    ModuleAnalysis,
    ModuleFormat,
    line_and_column,
    register_compiler,
)
from systranslate.core.result import CompileError

JS_LANGUAGE = Language(tree_sitter_javascript.language())
_QUOTES = ("'", '"')


def _walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal in source order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def _arguments(call: Node) -> list[Node]:
    args = call.child_by_field_name("arguments")
    if args is None:
        return []
    return [child for child in args.named_children if child.type != "comment"]


def _callee_name(call: Node, data: bytes) -> str | None:
    callee = call.child_by_field_name("function")
    if callee is None or callee.type != "identifier":
        return None
    return data[callee.start_byte : callee.end_byte].decode("utf-8")


def _string_value(node: Node, data: bytes) -> str:
    return data[node.start_byte + 1 : node.end_byte - 1].decode("utf-8")


@register_compiler(CompilerType.TREE_SITTER)
class TreeSitterCompiler(BaseCompiler):
    """Syntax-tree analysis of CommonJS and AMD sources."""

    def analyze(self, source: str, path: str) -> ModuleAnalysis:
        data = source.encode("utf-8")
        # Parser objects are not shared between threads.
        tree = Parser(JS_LANGUAGE).parse(data)
        root = tree.root_node
        to_char = self._char_offsets(source, data)

        if root.has_error:
            raise self._syntax_error(root, source, data, to_char)

        amd = self._find_amd_define(root, data, to_char)
        if amd is not None:
            return amd

        dependencies: list[str] = []
        offsets: list[int] = []
        for callee, specifier in self._require_calls(root, data):
            dependencies.append(specifier)
            offsets.append(to_char(callee.start_byte))

        return ModuleAnalysis(
            format=ModuleFormat.CJS,
            dependencies=tuple(dependencies),
            require_offsets=tuple(offsets),
        )

    @staticmethod
    def _char_offsets(source: str, data: bytes) -> Callable[[int], int]:
        if len(data) == len(source):
            return lambda byte_offset: byte_offset
        return lambda byte_offset: len(data[:byte_offset].decode("utf-8", errors="ignore"))

    def _require_calls(self, root: Node, data: bytes) -> Iterator[tuple[Node, str]]:
        for node in _walk(root):
            if node.type != "call_expression" or _callee_name(node, data) != "require":
                continue
            args = _arguments(node)
            if len(args) == 1 and args[0].type == "string":
                callee = node.child_by_field_name("function")
                assert callee is not None
                yield callee, _string_value(args[0], data)

    def _find_amd_define(
        self, root: Node, data: bytes, to_char: Callable[[int], int]
    ) -> ModuleAnalysis | None:
        for statement in root.named_children:
            if statement.type != "expression_statement" or not statement.named_children:
                continue
            call = statement.named_children[0]
            if call.type != "call_expression" or _callee_name(call, data) != "define":
                continue

            args = _arguments(call)
            named = len(args) > 1 and args[0].type == "string"
            if named:
                args = args[1:]

            if args and args[0].type == "array":
                dependencies = [
                    _string_value(element, data)
                    for element in args[0].named_children
                    if element.type == "string"
                ]
            else:
                dependencies = [specifier for _, specifier in self._require_calls(call, data)]

            arguments_node = call.child_by_field_name("arguments")
            define_offset = None
            if not named and arguments_node is not None:
                define_offset = to_char(arguments_node.start_byte + 1)
            return ModuleAnalysis(
                format=ModuleFormat.AMD,
                dependencies=tuple(dependencies),
                define_offset=define_offset,
            )
        return None

    def _syntax_error(
        self, root: Node, source: str, data: bytes, to_char: Callable[[int], int]
    ) -> CompileError:
        culprit = next(
            (node for node in _walk(root) if node.type == "ERROR" or node.is_missing), root
        )

        quote = self._stray_quote(culprit)
        if quote is not None:
            line, column = line_and_column(source, to_char(quote.start_byte))
            return CompileError(f"Unterminated string literal at line {line}, column {column}")

        line, column = line_and_column(source, to_char(culprit.start_byte))
        if culprit.is_missing:
            return CompileError(f"Missing {culprit.type!r} at line {line}, column {column}")
        snippet = data[culprit.start_byte : culprit.end_byte].decode("utf-8", errors="replace")
        snippet = snippet.strip().splitlines()[0][:40] if snippet.strip() else ""
        return CompileError(f"Unexpected token {snippet!r} at line {line}, column {column}")

    @staticmethod
    def _stray_quote(culprit: Node) -> Node | None:
        """The opening quote of an unterminated string near ``culprit``."""
        if culprit.is_missing and culprit.type in _QUOTES:
            parent = culprit.parent
            return parent if parent is not None and parent.type == "string" else culprit
        for node in _walk(culprit):
            if node.type in _QUOTES:
                return node
            if node.type == "string" and node.has_error:
                return node
        return None


__all__ = ["JS_LANGUAGE", "TreeSitterCompiler"]
