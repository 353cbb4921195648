from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT / "src"))

from paramsniff.php.tokens import TokenKind as K, TokenStream


def _call_stream() -> TokenStream:
    # add_option( 'a', [ 1 ] /* c */ );
    return TokenStream.from_pairs(
        [
            (K.IDENTIFIER, "add_option"),
            (K.OPEN_PARENTHESIS, "("),
            (K.WHITESPACE, " "),
            (K.STRING, "'a'"),
            (K.COMMA, ","),
            (K.WHITESPACE, " "),
            (K.OPEN_SHORT_ARRAY, "["),
            (K.NUMBER, "1"),
            (K.CLOSE_SHORT_ARRAY, "]"),
            (K.WHITESPACE, " "),
            (K.COMMENT, "/* c */"),
            (K.WHITESPACE, "\n"),
            (K.CLOSE_PARENTHESIS, ")"),
            (K.SEMICOLON, ";"),
        ],
        path="a.php",
    )


def test_from_pairs_computes_offsets_and_positions() -> None:
    stream = _call_stream()
    assert len(stream) == 14
    assert stream.path == "a.php"
    assert stream.source == "add_option( 'a', [1] /* c */\n);"

    for i, tok in enumerate(stream):
        assert tok.index == i
        assert tok.byte_end - tok.byte_start == len(tok.text.encode("utf-8"))

    assert (stream[3].line, stream[3].column) == (1, 13)
    assert (stream[12].line, stream[12].column) == (2, 1)


def test_bracket_matching_pairs_openers_and_closers() -> None:
    stream = _call_stream()
    assert stream.closer_of(1) == 12
    assert stream.opener_of(12) == 1
    assert stream.closer_of(6) == 8
    # Closers are not openers and vice versa
    assert stream.closer_of(12) is None
    assert stream.opener_of(1) is None


def test_unbalanced_delimiters_stay_unmatched() -> None:
    stream = TokenStream.from_pairs(
        [
            (K.IDENTIFIER, "f"),
            (K.OPEN_PARENTHESIS, "("),
            (K.OPEN_SQUARE_BRACKET, "["),
            (K.CLOSE_PARENTHESIS, ")"),
        ]
    )
    assert stream.closer_of(1) == 3
    assert stream.closer_of(2) is None


def test_search_helpers_respect_bounds() -> None:
    stream = _call_stream()
    assert stream.find_next(K.COMMA, 0) == 4
    assert stream.find_next(K.COMMA, 5) is None
    assert stream.find_next(K.STRING, 0, 3) is None
    assert stream.find_next([K.NUMBER, K.STRING], 0) == 3
    assert stream.find_previous(K.OPEN_PARENTHESIS, 12) == 1
    assert stream.find_previous(K.OPEN_PARENTHESIS, 12, lo=2) is None

    assert stream.next_non_trivia(2) == 3
    assert stream.next_non_trivia(9, 12) is None
    assert stream.prev_non_trivia(11) == 8
    assert stream.find_next(K.COMMA, 100) is None
    assert stream.find_previous(K.COMMA, 100) == 4


def test_content_and_clean_content_are_inclusive() -> None:
    stream = _call_stream()
    assert stream.content(6, 8) == "[1]"
    assert stream.content(9, 11) == " /* c */\n"
    assert stream.clean_content(6, 11) == "[1] \n"
    assert stream[10].is_trivia
    assert stream[0].lower == "add_option"
