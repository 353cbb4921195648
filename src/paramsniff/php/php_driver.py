# src/paramsniff/php/php_driver.py
from __future__ import annotations

import hashlib
import importlib
from dataclasses import dataclass, field
from functools import lru_cache
from importlib import metadata
from typing import Dict, List, Optional, Tuple

from .discovery import FileMeta
from .tokens import Token, TokenKind, TokenStream

# -----------------------------------------------------------------------------
# Optional deps & grammar loader
# -----------------------------------------------------------------------------

_TS_IMPORT_ERROR: Optional[Exception] = None
try:
    from tree_sitter import Language as TSLanguage, Parser as TSParser  # type: ignore
except Exception as e:  # pragma: no cover
    _TS_IMPORT_ERROR = e
    TSLanguage = None  # type: ignore
    TSParser = None  # type: ignore


class ParserError(Exception):
    """
    Rich driver error propagated to the runner.
    """
    def __init__(
        self,
        code: str,
        message: str,
        *,
        byte_start: Optional[int] = None,
        byte_end: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.byte_start = byte_start
        self.byte_end = byte_end
        self.detail = detail or ""


@dataclass(frozen=True)
class DriverInfo:
    grammar_name: str
    grammar_sha: str   # pin exact grammar build
    version: str


@lru_cache(maxsize=1)
def _load_php_language():
    """
    Return (Language, grammar_name, version) for the PHP grammar shipped by the
    tree-sitter-php wheel. `language_php` covers files mixing HTML and PHP.
    """
    mod = importlib.import_module("tree_sitter_php")
    capsule = getattr(mod, "language_php")()
    try:
        version = metadata.version("tree-sitter-php")
    except metadata.PackageNotFoundError:  # pragma: no cover
        version = getattr(mod, "__version__", "unknown")
    return TSLanguage(capsule), "tree-sitter-php", version


# -----------------------------------------------------------------------------
# Fast byte→(line, column) index
# -----------------------------------------------------------------------------

@dataclass
class _LineIndex:
    """Compact index of newline byte positions for fast byte→line lookups."""
    nl_positions: List[int]
    total_bytes: int
    _cache: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def build(cls, raw: bytes) -> "_LineIndex":
        nl: List[int] = []
        off = 0
        find = raw.find
        while True:
            p = find(b"\n", off)
            if p == -1:
                break
            nl.append(p)
            off = p + 1
        return cls(nl_positions=nl, total_bytes=len(raw))

    def byte_to_line(self, b: int) -> int:
        """Map a byte offset to a 1-based line number."""
        cached = self._cache.get(b)
        if cached is not None:
            return cached

        # binary search: number of newlines strictly before b
        lo, hi = 0, len(self.nl_positions)
        while lo < hi:
            mid = (lo + hi) // 2
            if self.nl_positions[mid] < b:
                lo = mid + 1
            else:
                hi = mid
        line = lo + 1

        if len(self._cache) >= 2048:
            self._cache.clear()
        self._cache[b] = line
        return line

    def line_start(self, line: int) -> int:
        return 0 if line <= 1 else self.nl_positions[line - 2] + 1


# -----------------------------------------------------------------------------
# Node type → token kind tables
# -----------------------------------------------------------------------------

# Composite nodes emitted as one token (their inner structure is irrelevant
# to sniffs and mirrors how PHP's own tokenizer lexes them).
_ATOMIC_NODES: Dict[str, TokenKind] = {
    "string": TokenKind.STRING,
    "encapsed_string": TokenKind.STRING,
    "heredoc": TokenKind.STRING,
    "nowdoc": TokenKind.STRING,
    "shell_command_expression": TokenKind.STRING,
    "variable_name": TokenKind.VARIABLE,
    "boolean": TokenKind.IDENTIFIER,
    "null": TokenKind.IDENTIFIER,
    "integer": TokenKind.NUMBER,
    "float": TokenKind.NUMBER,
    "comment": TokenKind.COMMENT,
    "text": TokenKind.INLINE_HTML,
    "php_tag": TokenKind.OPEN_TAG,
    "name": TokenKind.IDENTIFIER,
}

_LEAF_TYPES: Dict[str, TokenKind] = {
    "(": TokenKind.OPEN_PARENTHESIS,
    ")": TokenKind.CLOSE_PARENTHESIS,
    "[": TokenKind.OPEN_SQUARE_BRACKET,
    "]": TokenKind.CLOSE_SQUARE_BRACKET,
    "{": TokenKind.OPEN_CURLY_BRACKET,
    "}": TokenKind.CLOSE_CURLY_BRACKET,
    ",": TokenKind.COMMA,
    "=>": TokenKind.DOUBLE_ARROW,
    "...": TokenKind.ELLIPSIS,
    "variadic_placeholder": TokenKind.ELLIPSIS,
    "\\": TokenKind.NS_SEPARATOR,
    "function": TokenKind.FUNCTION,
    "fn": TokenKind.FN,
    "as": TokenKind.AS,
    "new": TokenKind.NEW,
    "const": TokenKind.CONST,
    "&": TokenKind.AMPERSAND,
    "->": TokenKind.OBJECT_OPERATOR,
    "?->": TokenKind.NULLSAFE_OBJECT_OPERATOR,
    "::": TokenKind.DOUBLE_COLON,
    ":": TokenKind.COLON,
    ";": TokenKind.SEMICOLON,
    "?>": TokenKind.CLOSE_TAG,
}

_ARRAY_LITERAL_PARENT = "array_creation_expression"


def _leaf_kind(node) -> TokenKind:
    ntype = node.type
    parent = node.parent
    in_array_literal = parent is not None and parent.type == _ARRAY_LITERAL_PARENT
    if ntype == "array":
        return TokenKind.ARRAY if in_array_literal else TokenKind.KEYWORD
    if ntype == "[" and in_array_literal:
        return TokenKind.OPEN_SHORT_ARRAY
    if ntype == "]" and in_array_literal:
        return TokenKind.CLOSE_SHORT_ARRAY
    kind = _LEAF_TYPES.get(ntype)
    if kind is not None:
        return kind
    if not node.is_named and ntype.replace("_", "").isalpha():
        return TokenKind.KEYWORD
    return TokenKind.OTHER


# -----------------------------------------------------------------------------
# PHP driver (Tree-sitter)
# -----------------------------------------------------------------------------

class PhpTreeSitterDriver:
    """
    Tree-sitter driver turning PHP source into a TokenStream.

    Guarantees:
      - Tokens are in source order and cover every byte: gaps between nodes
        become WHITESPACE (or OTHER) tokens, so stream.source == input text.
      - Partial/error trees still produce tokens; syntax problems are exposed
        via `last_syntax_errors` instead of failing the file.
      - Lazy initialization so import/setup errors surface via info()/tokenize.
    """

    MAX_FILE_SIZE_BYTES = 100 * 1024 * 1024  # 100 MiB

    def __init__(self) -> None:
        self._init_error: Optional[ParserError] = None
        self._parser = None
        self._info: Optional[DriverInfo] = None
        self.last_syntax_errors: List[Tuple[int, int]] = []

        if _TS_IMPORT_ERROR is not None or TSParser is None:
            self._init_error = ParserError(
                code="LIB_DEP_MISSING",
                message="tree_sitter import failed",
                detail=repr(_TS_IMPORT_ERROR),
            )

    # ---- public API -----------------------------------------------------------

    def info(self) -> DriverInfo:
        if self._init_error:
            raise self._init_error
        if self._info is None:
            self._setup_parser()
        return self._info  # type: ignore[return-value]

    def tokenize_file(self, file: FileMeta) -> TokenStream:
        if file.size_bytes > self.MAX_FILE_SIZE_BYTES:
            raise ParserError(
                code="FILE_TOO_LARGE",
                message=f"File exceeds maximum size ({self.MAX_FILE_SIZE_BYTES} bytes)",
                detail=f"File size: {file.size_bytes} bytes",
            )
        if not file.is_text:
            raise ParserError(code="NOT_TEXT", message="File classified as binary by discovery")

        try:
            with open(file.real_path, "rb") as fh:
                raw = fh.read()
        except FileNotFoundError as e:
            raise ParserError(code="IO_ERROR", message="File not found", detail=str(e))
        except PermissionError as e:
            raise ParserError(code="PERMISSION_DENIED", message="Permission denied", detail=str(e))
        except OSError as e:
            raise ParserError(code="IO_ERROR", message="Read failed", detail=str(e))

        try:
            text = raw.decode(file.encoding or "utf-8")
        except (UnicodeDecodeError, LookupError) as e:
            raise ParserError(code="ENCODING", message="Could not decode file", detail=str(e))
        return self.tokenize(text, path=file.path)

    def tokenize(self, text: str, path: str = "") -> TokenStream:
        """Tokenize in-memory PHP source."""
        self.info()
        raw = text.encode("utf-8")
        try:
            tree = self._parser.parse(raw)  # type: ignore[union-attr]
        except Exception as e:
            raise ParserError(code="PARSE_ERROR", message="Tree-sitter parse failed", detail=str(e))
        return TokenStream(self._tokens_from_tree(tree.root_node, raw), path=path)

    # ---- internals ------------------------------------------------------------

    def _tokens_from_tree(self, root, raw: bytes) -> List[Token]:
        lidx = _LineIndex.build(raw)
        tokens: List[Token] = []
        errors: List[Tuple[int, int]] = []

        def push(kind: TokenKind, sb: int, eb: int) -> None:
            line = lidx.byte_to_line(sb)
            column = len(raw[lidx.line_start(line):sb].decode("utf-8", errors="replace")) + 1
            tokens.append(
                Token(
                    index=len(tokens),
                    kind=kind,
                    text=raw[sb:eb].decode("utf-8", errors="replace"),
                    byte_start=sb,
                    byte_end=eb,
                    line=line,
                    column=column,
                )
            )

        def push_gap(sb: int, eb: int) -> None:
            gap = raw[sb:eb]
            push(TokenKind.WHITESPACE if gap.isspace() else TokenKind.OTHER, sb, eb)

        cursor_byte = 0
        stack = [root]
        while stack:
            node = stack.pop()
            ntype = node.type
            if ntype == "ERROR" or node.is_missing:
                errors.append((node.start_byte, node.end_byte))

            sb, eb = node.start_byte, node.end_byte
            if eb <= sb or sb < cursor_byte:
                # Zero-width (MISSING) or overlapping node: nothing to lex
                if node.child_count and sb >= cursor_byte:
                    stack.extend(reversed(node.children))
                continue

            atomic = _ATOMIC_NODES.get(ntype)
            if atomic is None and node.child_count:
                stack.extend(reversed(node.children))
                continue

            if sb > cursor_byte:
                push_gap(cursor_byte, sb)
            push(atomic if atomic is not None else _leaf_kind(node), sb, eb)
            cursor_byte = eb

        if cursor_byte < len(raw):
            push_gap(cursor_byte, len(raw))

        self.last_syntax_errors = errors
        return tokens

    def _setup_parser(self) -> None:
        """Lazy initialization of parser and driver info."""
        try:
            lang_obj, grammar_name, version = _load_php_language()
        except Exception as e:
            raise ParserError(
                code="GRAMMAR_LOAD_FAILED",
                message="Could not load grammar: php",
                detail=str(e),
            )

        try:
            parser = TSParser(lang_obj)  # type: ignore[misc]
        except TypeError:
            # Older bindings: no constructor argument
            parser = TSParser()  # type: ignore[misc]
            parser.language = lang_obj

        try:
            parser.parse(b"")
        except Exception as e:
            raise ParserError(
                code="PARSER_INIT_FAILED",
                message="Tree-sitter parser smoke test failed",
                detail=str(e),
            )

        self._parser = parser
        self._info = DriverInfo(
            grammar_name=grammar_name,
            grammar_sha=hashlib.blake2b(f"{grammar_name}:{version}".encode("utf-8"), digest_size=20).hexdigest(),
            version=version,
        )


def tokenize_source(text: str, path: str = "") -> TokenStream:
    """Convenience wrapper: tokenize PHP source with a fresh driver."""
    return PhpTreeSitterDriver().tokenize(text, path=path)
