from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT / "src"))

from paramsniff.php.tokens import TokenKind as K, TokenStream
from paramsniff.sniffs.passed_parameters import (
    Argument,
    get_double_arrow_ptr,
    get_parameter_from_stack,
    get_parameters,
)

WS = (K.WHITESPACE, " ")
COMMA = (K.COMMA, ",")
OPEN = (K.OPEN_PARENTHESIS, "(")
CLOSE = (K.CLOSE_PARENTHESIS, ")")


def test_positional_arguments_with_nested_groups() -> None:
    # f( 'a', g(1, 2), [3, 4] , /* c */ $x )
    stream = TokenStream.from_pairs(
        [
            (K.IDENTIFIER, "f"), OPEN, WS,
            (K.STRING, "'a'"), COMMA, WS,
            (K.IDENTIFIER, "g"), OPEN, (K.NUMBER, "1"), COMMA, WS, (K.NUMBER, "2"), CLOSE, COMMA, WS,
            (K.OPEN_SHORT_ARRAY, "["), (K.NUMBER, "3"), COMMA, (K.NUMBER, "4"), (K.CLOSE_SHORT_ARRAY, "]"), WS, COMMA, WS,
            (K.COMMENT, "/* c */"), WS, (K.VARIABLE, "$x"), WS,
            CLOSE,
        ]
    )
    params = get_parameters(stream, 0)
    assert [p.raw for p in params] == ["'a'", "g(1, 2)", "[3,4]", "/* c */ $x"]
    assert [p.clean for p in params] == ["'a'", "g(1, 2)", "[3,4]", "$x"]
    assert [p.position for p in params] == [1, 2, 3, 4]
    assert all(p.name is None for p in params)
    assert params[0].start == 2 and params[0].end == 3


def test_trailing_comma_and_empty_call() -> None:
    trailing = TokenStream.from_pairs([(K.IDENTIFIER, "f"), OPEN, (K.NUMBER, "1"), COMMA, WS, CLOSE])
    assert [p.clean for p in get_parameters(trailing, 0)] == ["1"]

    empty = TokenStream.from_pairs([(K.IDENTIFIER, "f"), OPEN, WS, CLOSE])
    assert get_parameters(empty, 0) == []


def test_unbalanced_or_non_call_tokens_yield_nothing() -> None:
    unbalanced = TokenStream.from_pairs([(K.IDENTIFIER, "f"), OPEN, (K.NUMBER, "1")])
    assert get_parameters(unbalanced, 0) == []

    no_paren = TokenStream.from_pairs([(K.IDENTIFIER, "f"), (K.SEMICOLON, ";")])
    assert get_parameters(no_paren, 0) == []
    assert get_parameters(no_paren, 1) == []
    assert get_parameters(no_paren, 7) == []


def test_named_arguments_are_detected_on_calls_only() -> None:
    # f('a', autoload: false, 'b')
    stream = TokenStream.from_pairs(
        [
            (K.IDENTIFIER, "f"), OPEN,
            (K.STRING, "'a'"), COMMA, WS,
            (K.IDENTIFIER, "autoload"), (K.COLON, ":"), WS, (K.IDENTIFIER, "false"), COMMA, WS,
            (K.STRING, "'b'"),
            CLOSE,
        ]
    )
    params = get_parameters(stream, 0)
    assert [(p.name, p.position, p.clean) for p in params] == [
        (None, 1, "'a'"),
        ("autoload", None, "false"),
        (None, 2, "'b'"),
    ]
    assert params[1].name_token == 5
    assert params[1].start == 7


def test_long_and_short_array_items() -> None:
    # array('k' => 'yes', 2)
    long_form = TokenStream.from_pairs(
        [
            (K.ARRAY, "array"), OPEN,
            (K.STRING, "'k'"), WS, (K.DOUBLE_ARROW, "=>"), WS, (K.STRING, "'yes'"), COMMA, WS,
            (K.NUMBER, "2"),
            CLOSE,
        ]
    )
    items = get_parameters(long_form, 0)
    assert [i.clean for i in items] == ["'k' => 'yes'", "2"]
    assert get_double_arrow_ptr(long_form, items[0].start, items[0].end) == 4
    assert get_double_arrow_ptr(long_form, items[1].start, items[1].end) is None

    short_form = TokenStream.from_pairs(
        [(K.OPEN_SHORT_ARRAY, "["), (K.STRING, "'a'"), COMMA, (K.STRING, "'b'"), (K.CLOSE_SHORT_ARRAY, "]")]
    )
    assert [i.position for i in get_parameters(short_form, 0)] == [1, 2]


def test_double_arrow_ignores_nested_and_arrow_functions() -> None:
    # [ 'k' => 1 ] as a nested value, then fn($x) => $x
    nested = TokenStream.from_pairs(
        [
            (K.OPEN_SHORT_ARRAY, "["), (K.STRING, "'k'"), (K.DOUBLE_ARROW, "=>"), (K.NUMBER, "1"), (K.CLOSE_SHORT_ARRAY, "]"),
        ]
    )
    assert get_double_arrow_ptr(nested, 0, 4) is None

    arrow_fn = TokenStream.from_pairs(
        [
            (K.FN, "fn"), OPEN, (K.VARIABLE, "$x"), CLOSE, WS, (K.DOUBLE_ARROW, "=>"), WS, (K.VARIABLE, "$x"),
        ]
    )
    assert get_double_arrow_ptr(arrow_fn, 0, len(arrow_fn) - 1) is None


def test_parameter_selection_prefers_names_over_positions() -> None:
    params = [
        Argument(0, 0, "'a'", "'a'", position=1),
        Argument(2, 2, "'b'", "'b'", position=2),
        Argument(4, 4, "true", "true", name="autoload", name_token=3),
    ]
    assert get_parameter_from_stack(params, 2, "autoload").clean == "true"
    assert get_parameter_from_stack(params, 2, ["other", "options"]).clean == "'b'"
    assert get_parameter_from_stack(params, 4, "other") is None
