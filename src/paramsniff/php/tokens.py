# src/paramsniff/php/tokens.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

# ==============================================================================
# Token model (read-only; produced by a driver, consumed by sniffs)
# ==============================================================================


class TokenKind(str, Enum):
    IDENTIFIER = "identifier"          # bare name; also true/false/null
    VARIABLE = "variable"              # $name
    STRING = "string"                  # any quoted/heredoc/nowdoc literal
    NUMBER = "number"
    NS_SEPARATOR = "ns_separator"      # \
    ARRAY = "array"                    # long-form array( opener keyword
    OPEN_SHORT_ARRAY = "open_short_array"
    CLOSE_SHORT_ARRAY = "close_short_array"
    DOUBLE_ARROW = "double_arrow"      # =>
    COMMA = "comma"
    OPEN_PARENTHESIS = "open_parenthesis"
    CLOSE_PARENTHESIS = "close_parenthesis"
    OPEN_SQUARE_BRACKET = "open_square_bracket"
    CLOSE_SQUARE_BRACKET = "close_square_bracket"
    OPEN_CURLY_BRACKET = "open_curly_bracket"
    CLOSE_CURLY_BRACKET = "close_curly_bracket"
    ELLIPSIS = "ellipsis"              # ... (spread / first-class callable)
    FUNCTION = "function"
    FN = "fn"
    AS = "as"
    NEW = "new"
    CONST = "const"
    AMPERSAND = "ampersand"            # reference marker
    OBJECT_OPERATOR = "object_operator"
    NULLSAFE_OBJECT_OPERATOR = "nullsafe_object_operator"
    DOUBLE_COLON = "double_colon"
    COLON = "colon"
    SEMICOLON = "semicolon"
    WHITESPACE = "whitespace"
    COMMENT = "comment"
    OPEN_TAG = "open_tag"
    CLOSE_TAG = "close_tag"
    INLINE_HTML = "inline_html"
    KEYWORD = "keyword"
    OTHER = "other"


TRIVIA: FrozenSet[TokenKind] = frozenset({TokenKind.WHITESPACE, TokenKind.COMMENT})

ARRAY_OPENERS: FrozenSet[TokenKind] = frozenset({TokenKind.ARRAY, TokenKind.OPEN_SHORT_ARRAY})

OBJECT_OPERATORS: FrozenSet[TokenKind] = frozenset(
    {TokenKind.OBJECT_OPERATOR, TokenKind.NULLSAFE_OBJECT_OPERATOR, TokenKind.DOUBLE_COLON}
)

_BRACKET_PAIRS: Dict[TokenKind, TokenKind] = {
    TokenKind.OPEN_PARENTHESIS: TokenKind.CLOSE_PARENTHESIS,
    TokenKind.OPEN_SHORT_ARRAY: TokenKind.CLOSE_SHORT_ARRAY,
    TokenKind.OPEN_SQUARE_BRACKET: TokenKind.CLOSE_SQUARE_BRACKET,
    TokenKind.OPEN_CURLY_BRACKET: TokenKind.CLOSE_CURLY_BRACKET,
}
_CLOSERS: FrozenSet[TokenKind] = frozenset(_BRACKET_PAIRS.values())

OPENERS: FrozenSet[TokenKind] = frozenset(_BRACKET_PAIRS)

KindSet = Union[TokenKind, Iterable[TokenKind]]


@dataclass(frozen=True)
class Token:
    """
    One lexical token. Invariants:
      - index is the token's position in its stream
      - byte_end - byte_start == len(text.encode("utf-8"))
      - line/column are 1-based
    """
    index: int
    kind: TokenKind
    text: str
    byte_start: int
    byte_end: int
    line: int
    column: int

    @property
    def lower(self) -> str:
        return self.text.lower()

    @property
    def is_trivia(self) -> bool:
        return self.kind in TRIVIA


def _as_kind_set(kinds: KindSet) -> FrozenSet[TokenKind]:
    if isinstance(kinds, TokenKind):
        return frozenset({kinds})
    return frozenset(kinds)


# ==============================================================================
# Stream view
# ==============================================================================


class TokenStream:
    """
    Immutable, indexable view over a token sequence.

    - Bracket/parenthesis pairs are matched once at construction; unbalanced
      delimiters are simply left unmatched (closer_of() returns None).
    - All search helpers are bounded and never raise for out-of-range bounds.
    - Concatenating every token's text reproduces the source.
    """

    __slots__ = ("path", "_tokens", "_match")

    def __init__(self, tokens: Sequence[Token], path: str = "") -> None:
        self.path = path
        self._tokens: Tuple[Token, ...] = tuple(tokens)
        self._match: Dict[int, int] = _match_brackets(self._tokens)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[TokenKind, str]], path: str = "") -> "TokenStream":
        """Build a stream from (kind, text) pairs, computing offsets and positions."""
        tokens: List[Token] = []
        byte_pos = 0
        line, column = 1, 1
        for i, (kind, text) in enumerate(pairs):
            size = len(text.encode("utf-8"))
            tokens.append(Token(i, kind, text, byte_pos, byte_pos + size, line, column))
            byte_pos += size
            newlines = text.count("\n")
            if newlines:
                line += newlines
                column = len(text) - text.rfind("\n")
            else:
                column += len(text)
        return cls(tokens, path=path)

    # ---- sequence protocol ----------------------------------------------------

    def __len__(self) -> int:
        return len(self._tokens)

    def __getitem__(self, index: int) -> Token:
        return self._tokens[index]

    def __iter__(self) -> Iterator[Token]:
        return iter(self._tokens)

    @property
    def source(self) -> str:
        return "".join(t.text for t in self._tokens)

    # ---- searching ------------------------------------------------------------

    def find_next(
        self,
        kinds: KindSet,
        start: int,
        end: Optional[int] = None,
        *,
        exclude: bool = False,
    ) -> Optional[int]:
        """
        Return the first index in [start, end) whose kind is in `kinds`
        (or NOT in `kinds` when exclude=True). `end` defaults to the stream end.
        """
        wanted = _as_kind_set(kinds)
        hi = len(self._tokens) if end is None else min(end, len(self._tokens))
        for i in range(max(0, start), hi):
            if (self._tokens[i].kind in wanted) != exclude:
                return i
        return None

    def find_previous(
        self,
        kinds: KindSet,
        start: int,
        lo: int = 0,
        *,
        exclude: bool = False,
    ) -> Optional[int]:
        """Scan backwards from `start` down to `lo` (inclusive)."""
        wanted = _as_kind_set(kinds)
        for i in range(min(start, len(self._tokens) - 1), max(0, lo) - 1, -1):
            if (self._tokens[i].kind in wanted) != exclude:
                return i
        return None

    def next_non_trivia(self, start: int, end: Optional[int] = None) -> Optional[int]:
        return self.find_next(TRIVIA, start, end, exclude=True)

    def prev_non_trivia(self, start: int, lo: int = 0) -> Optional[int]:
        return self.find_previous(TRIVIA, start, lo, exclude=True)

    # ---- bracket matching -----------------------------------------------------

    def closer_of(self, index: int) -> Optional[int]:
        closer = self._match.get(index)
        if closer is None or closer < index:
            return None
        return closer

    def opener_of(self, index: int) -> Optional[int]:
        opener = self._match.get(index)
        if opener is None or opener > index:
            return None
        return opener

    # ---- content --------------------------------------------------------------

    def content(self, start: int, end: int) -> str:
        """Raw text of tokens start..end (inclusive)."""
        return "".join(t.text for t in self._tokens[max(0, start):end + 1])

    def clean_content(self, start: int, end: int) -> str:
        """Text of tokens start..end (inclusive) with comments dropped."""
        return "".join(
            t.text for t in self._tokens[max(0, start):end + 1] if t.kind is not TokenKind.COMMENT
        )


def _match_brackets(tokens: Sequence[Token]) -> Dict[int, int]:
    """
    Pair openers with closers using a stack. A closer that does not match the
    innermost opener unwinds to the nearest matching opener (if any); openers
    skipped that way stay unmatched.
    """
    pairs: Dict[int, int] = {}
    stack: List[int] = []
    for tok in tokens:
        if tok.kind in _BRACKET_PAIRS:
            stack.append(tok.index)
            continue
        if tok.kind not in _CLOSERS:
            continue
        for depth in range(len(stack) - 1, -1, -1):
            if _BRACKET_PAIRS[tokens[stack[depth]].kind] is tok.kind:
                opener = stack[depth]
                del stack[depth:]
                pairs[opener] = tok.index
                pairs[tok.index] = opener
                break
    return pairs
