"""
Pygments-based compiler backend.

Tokenizes sources with Pygments' ``JavascriptLexer`` and pattern-matches
the token stream. No syntax tree is built, so only lexical errors are
reported (unterminated strings, stray characters). Used when tree-sitter
is not installed.
"""

from __future__ import annotations

from dataclasses import dataclass

from pygments.lexers.javascript import JavascriptLexer
from pygments.token import Comment, Error, Name, Punctuation, String, Text, _TokenType

from systranslate.compilers import (
    BaseCompiler,
    CompilerType,
    ModuleAnalysis,
    ModuleFormat,
    line_and_column,
    register_compiler,
)
from systranslate.core.result import CompileError

_OPENERS = frozenset("{([")
_CLOSERS = frozenset("})]")


@dataclass(frozen=True, slots=True)
class _Token:
    pos: int
    ttype: _TokenType
    value: str


def _is_quoted_string(token: _Token) -> bool:
    return token.ttype in String.Single or token.ttype in String.Double


def _string_value(token: _Token) -> str:
    return token.value[1:-1]


def _has_raw_newline(literal: str) -> bool:
    # Backslash-newline is a line continuation; anything else ends the literal.
    stripped = literal.replace("\\\\", "").replace("\\\r\n", "").replace("\\\n", "")
    return "\n" in stripped


def _is_punct(token: _Token | None, value: str) -> bool:
    return token is not None and token.ttype in Punctuation and token.value == value


def _unterminated(source: str, pos: int) -> CompileError:
    line, column = line_and_column(source, pos)
    return CompileError(f"Unterminated string literal at line {line}, column {column}")


@register_compiler(CompilerType.LEXER)
class LexerCompiler(BaseCompiler):
    """Token-stream analysis of CommonJS and AMD sources."""

    def analyze(self, source: str, path: str) -> ModuleAnalysis:
        tokens = self._significant_tokens(source)

        amd = self._find_amd_define(tokens)
        if amd is not None:
            return amd

        dependencies: list[str] = []
        offsets: list[int] = []
        for index, token in enumerate(tokens):
            specifier = self._require_argument(tokens, index)
            if specifier is not None:
                dependencies.append(specifier)
                offsets.append(token.pos)

        return ModuleAnalysis(
            format=ModuleFormat.CJS,
            dependencies=tuple(dependencies),
            require_offsets=tuple(offsets),
        )

    def _significant_tokens(self, source: str) -> list[_Token]:
        """Tokens minus whitespace/comments; raises CompileError on lexical errors."""
        # get_tokens_unprocessed skips newline/tab preprocessing, so offsets match source.
        lexer = JavascriptLexer()
        tokens: list[_Token] = []
        for pos, ttype, value in lexer.get_tokens_unprocessed(source):
            if not value or ttype in Text or ttype in Comment:
                continue
            token = _Token(pos, ttype, value)
            if ttype in Error:
                if value in ("'", '"'):
                    raise _unterminated(source, pos)
                line, column = line_and_column(source, pos)
                raise CompileError(
                    f"Unexpected character {value!r} at line {line}, column {column}"
                )
            if _is_quoted_string(token) and _has_raw_newline(value):
                raise _unterminated(source, pos)
            tokens.append(token)
        return tokens

    def _require_argument(self, tokens: list[_Token], index: int) -> str | None:
        """Specifier of a ``require('x')`` call starting at ``index``, if any."""
        token = tokens[index]
        if token.value != "require" or token.ttype not in Name:
            return None
        if index > 0 and _is_punct(tokens[index - 1], "."):
            return None
        window = tokens[index + 1 : index + 4]
        if len(window) < 3:
            return None
        open_paren, argument, close_paren = window
        if not (_is_punct(open_paren, "(") and _is_quoted_string(argument)):
            return None
        if not _is_punct(close_paren, ")"):
            return None
        return _string_value(argument)

    def _find_amd_define(self, tokens: list[_Token]) -> ModuleAnalysis | None:
        """Analysis for a top-level ``define(...)`` call, or None."""
        depth = 0
        for index, token in enumerate(tokens):
            if token.ttype in Punctuation:
                if token.value in _OPENERS:
                    depth += 1
                elif token.value in _CLOSERS:
                    depth = max(depth - 1, 0)
                continue
            if depth or token.value != "define" or token.ttype not in Name:
                continue
            if index > 0 and _is_punct(tokens[index - 1], "."):
                continue
            if index + 1 >= len(tokens) or not _is_punct(tokens[index + 1], "("):
                continue
            return self._analyze_define(tokens, index)
        return None

    def _analyze_define(self, tokens: list[_Token], index: int) -> ModuleAnalysis:
        open_paren = tokens[index + 1]
        cursor = index + 2
        named = False
        if (
            cursor + 1 < len(tokens)
            and _is_quoted_string(tokens[cursor])
            and _is_punct(tokens[cursor + 1], ",")
        ):
            named = True
            cursor += 2

        dependencies: list[str] = []
        if cursor < len(tokens) and _is_punct(tokens[cursor], "["):
            for token in tokens[cursor + 1 :]:
                if _is_punct(token, "]"):
                    break
                if _is_quoted_string(token):
                    dependencies.append(_string_value(token))
        else:
            # define(function (require) { ... }) sugar
            dependencies = [
                specifier
                for specifier in (self._require_argument(tokens, i) for i in range(len(tokens)))
                if specifier is not None
            ]

        return ModuleAnalysis(
            format=ModuleFormat.AMD,
            dependencies=tuple(dependencies),
            define_offset=None if named else open_paren.pos + 1,
        )


__all__ = ["LexerCompiler"]
