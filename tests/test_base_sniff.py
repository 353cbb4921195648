from __future__ import annotations

import sys
from pathlib import Path
from types import MappingProxyType

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT / "src"))

from paramsniff.php.tokens import TokenKind as K, TokenStream
from paramsniff.sniffs.base import FunctionParameterSniff
from paramsniff.sniffs.report import FileReport


def _call(name: str) -> TokenStream:
    return TokenStream.from_pairs(
        [(K.IDENTIFIER, name), (K.OPEN_PARENTHESIS, "("), (K.NUMBER, "1"), (K.CLOSE_PARENTHESIS, ")")]
    )


def test_default_registry_is_read_only_and_empty() -> None:
    assert isinstance(FunctionParameterSniff.target_functions, MappingProxyType)
    with pytest.raises(TypeError):
        FunctionParameterSniff.target_functions["add_option"] = object()  # type: ignore[index]

    sniff = FunctionParameterSniff()
    assert sniff.get_target_function_names() == frozenset()
    stream = _call("add_option")
    report = FileReport(stream)
    sniff.process_file(stream, report)
    assert report.diagnostics == []


def test_matched_call_without_handler_raises() -> None:
    class Sniff(FunctionParameterSniff):
        target_functions = MappingProxyType({"add_option": None})

    stream = _call("Add_Option")
    with pytest.raises(NotImplementedError):
        Sniff().process_file(stream, FileReport(stream))


def test_dispatch_to_subclass_handlers() -> None:
    seen = []

    class Sniff(FunctionParameterSniff):
        target_functions = MappingProxyType({"f": None, "g": None})

        def process_parameters(self, stack_ptr, function_name, parameters):
            seen.append((function_name, [p.clean for p in parameters]))

        def process_no_parameters(self, stack_ptr, function_name):
            seen.append((function_name, None))

    stream = TokenStream.from_pairs(
        [
            (K.IDENTIFIER, "f"), (K.OPEN_PARENTHESIS, "("), (K.NUMBER, "1"), (K.CLOSE_PARENTHESIS, ")"),
            (K.SEMICOLON, ";"),
            (K.IDENTIFIER, "G"), (K.OPEN_PARENTHESIS, "("), (K.CLOSE_PARENTHESIS, ")"),
        ]
    )
    Sniff().process_file(stream, FileReport(stream))
    assert seen == [("f", ["1"]), ("g", None)]
