# src/paramsniff/sniffs/passed_parameters.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from ..php.tokens import OPENERS, TokenKind, TokenStream

# ==============================================================================
# Passed parameters of a call or an array literal
# ==============================================================================

# Tokens that may label a named argument (`name: value`)
_LABEL_KINDS = frozenset({TokenKind.IDENTIFIER, TokenKind.KEYWORD, TokenKind.ARRAY, TokenKind.FN,
                          TokenKind.FUNCTION, TokenKind.AS, TokenKind.NEW, TokenKind.CONST})


@dataclass(frozen=True)
class Argument:
    """
    One supplied argument (or array entry).

    start/end are inclusive token indices and include surrounding trivia;
    for named arguments start points just past the colon.
    """
    start: int
    end: int
    raw: str
    clean: str
    position: Optional[int] = None   # 1-based, positional arguments only
    name: Optional[str] = None
    name_token: Optional[int] = None


def get_parameters(stream: TokenStream, index: int) -> List[Argument]:
    """
    Return the arguments passed at `index`, which may be:
      - a function name followed by `(`,
      - a long-form `array` keyword,
      - a short array opener `[`.

    Anything else, or an unbalanced group, yields an empty list.
    """
    if index < 0 or index >= len(stream):
        return []
    tok = stream[index]

    if tok.kind is TokenKind.OPEN_SHORT_ARRAY:
        opener: Optional[int] = index
        allow_names = False
    elif tok.kind in (TokenKind.IDENTIFIER, TokenKind.ARRAY):
        opener = stream.next_non_trivia(index + 1)
        if opener is None or stream[opener].kind is not TokenKind.OPEN_PARENTHESIS:
            return []
        allow_names = tok.kind is TokenKind.IDENTIFIER
    else:
        return []

    closer = stream.closer_of(opener)
    if closer is None:
        return []
    if stream.next_non_trivia(opener + 1, closer) is None:
        return []

    spans: List[tuple] = []
    start = opener + 1
    i = start
    while i < closer:
        kind = stream[i].kind
        if kind in OPENERS:
            nested_closer = stream.closer_of(i)
            if nested_closer is None or nested_closer > closer:
                return []
            i = nested_closer + 1
            continue
        if kind is TokenKind.COMMA:
            spans.append((start, i - 1))
            start = i + 1
        i += 1

    # The last span is dropped when it is empty (trailing comma)
    if stream.next_non_trivia(start, closer) is not None:
        spans.append((start, closer - 1))

    out: List[Argument] = []
    position = 0
    for s, e in spans:
        name = name_token = None
        if allow_names:
            label = stream.next_non_trivia(s, e + 1)
            colon = stream.next_non_trivia(label + 1, e + 1) if label is not None else None
            if (
                label is not None
                and colon is not None
                and stream[label].kind in _LABEL_KINDS
                and stream[colon].kind is TokenKind.COLON
            ):
                name, name_token = stream[label].text, label
                s = colon + 1

        arg_position = None
        if name is None:
            position += 1
            arg_position = position

        out.append(
            Argument(
                start=s,
                end=e,
                raw=stream.content(s, e).strip(),
                clean=stream.clean_content(s, e).strip(),
                position=arg_position,
                name=name,
                name_token=name_token,
            )
        )
    return out


def get_parameter_from_stack(
    parameters: List[Argument],
    position: int,
    names: Union[str, Iterable[str]],
) -> Optional[Argument]:
    """
    Select an argument by name (wins regardless of position) or else by its
    1-based position among positional arguments. None when neither exists.
    """
    wanted = {names} if isinstance(names, str) else set(names)
    for arg in parameters:
        if arg.name is not None and arg.name in wanted:
            return arg
    for arg in parameters:
        if arg.position == position:
            return arg
    return None


def get_double_arrow_ptr(stream: TokenStream, start: int, end: int) -> Optional[int]:
    """
    Index of the top-level `=>` separating key and value in an array entry
    spanning start..end (inclusive), or None. Arrows inside nested groups and
    the arrow of an arrow function (`fn() => ...`) are not key separators.
    """
    i = start
    while i <= end:
        kind = stream[i].kind
        if kind in OPENERS:
            nested_closer = stream.closer_of(i)
            if nested_closer is None:
                return None
            i = nested_closer + 1
            continue
        if kind is TokenKind.FN:
            return None
        if kind is TokenKind.DOUBLE_ARROW:
            return i
        i += 1
    return None
