# src/paramsniff/sniffs/call_site.py
from __future__ import annotations

from ..php.tokens import OBJECT_OPERATORS, TokenKind, TokenStream

# Previous-token kinds meaning "this name is declared, imported or aliased here"
_NOT_A_CALL_BEFORE = frozenset({TokenKind.FUNCTION, TokenKind.NEW, TokenKind.CONST, TokenKind.AS})


def is_call_site(stream: TokenStream, index: int) -> bool:
    """
    Decide whether the identifier at `index` is a genuine call of a global
    function with concrete arguments.

    Rejected:
      - method and static calls (`$o->name(`, `$o?->name(`, `X::name(`)
      - names with a non-global namespace prefix (`Foo\\name(`)
      - declarations, imports and aliases (`function name`, `function &name`,
        `use function name;`, `... as name`, `new name`, `const name`)
      - anything not followed by `(`
      - first-class callables (`name(...)`)
    """
    if index < 0 or index >= len(stream) or stream[index].kind is not TokenKind.IDENTIFIER:
        return False

    prev = stream.prev_non_trivia(index - 1)
    if prev is not None:
        prev_kind = stream[prev].kind
        if prev_kind in OBJECT_OPERATORS:
            return False

        if prev_kind is TokenKind.NS_SEPARATOR:
            before = stream.prev_non_trivia(prev - 1)
            if before is not None and (
                stream[before].kind is TokenKind.IDENTIFIER or stream[before].lower == "namespace"
            ):
                return False
            prev = before

        if prev is not None and stream[prev].kind is TokenKind.AMPERSAND:
            before = stream.prev_non_trivia(prev - 1)
            if before is not None and stream[before].kind is TokenKind.FUNCTION:
                return False

        if prev is not None and stream[prev].kind in _NOT_A_CALL_BEFORE:
            return False

    opener = stream.next_non_trivia(index + 1)
    if opener is None or stream[opener].kind is not TokenKind.OPEN_PARENTHESIS:
        return False

    first = stream.next_non_trivia(opener + 1)
    if first is not None and stream[first].kind is TokenKind.ELLIPSIS:
        second = stream.next_non_trivia(first + 1)
        if second is None or stream[second].kind is TokenKind.CLOSE_PARENTHESIS:
            return False

    return True
