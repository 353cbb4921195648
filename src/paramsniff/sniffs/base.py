# src/paramsniff/sniffs/base.py
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import FrozenSet, List, Mapping, Optional

from ..php.tokens import TokenKind, TokenStream
from .call_site import is_call_site
from .passed_parameters import Argument, get_parameters
from .report import FileReport, Fixer

logger = logging.getLogger(__name__)


class FunctionParameterSniff:
    """
    Registry-driven sniff over calls to a fixed set of global functions.

    Subclasses provide `target_functions` (lowercase name → entry) and
    implement process_parameters(); process_no_parameters() is optional.
    """

    sniff_code: str = "FunctionParameter"
    target_functions: Mapping[str, object] = MappingProxyType({})

    def __init__(self) -> None:
        self.stream: Optional[TokenStream] = None
        self.report: Optional[FileReport] = None
        self.fixer: Optional[Fixer] = None

    def get_target_function_names(self) -> FrozenSet[str]:
        return frozenset(self.target_functions)

    def process_file(self, stream: TokenStream, report: FileReport, fixer: Optional[Fixer] = None) -> None:
        """Walk every identifier, filter by name and call shape, dispatch matches."""
        self.stream, self.report, self.fixer = stream, report, fixer
        names = self.get_target_function_names()
        if not names:
            return
        matched = 0
        for tok in stream:
            if tok.kind is not TokenKind.IDENTIFIER:
                continue
            function_name = tok.lower
            if function_name not in names or not is_call_site(stream, tok.index):
                continue
            matched += 1
            self.on_match(tok.index, function_name)
        logger.debug("%s: %d matched call(s) in %s", self.sniff_code, matched, stream.path or "<source>")

    def on_match(self, stack_ptr: int, function_name: str) -> None:
        parameters = get_parameters(self.stream, stack_ptr)
        if not parameters:
            self.process_no_parameters(stack_ptr, function_name)
        else:
            self.process_parameters(stack_ptr, function_name, parameters)

    def process_parameters(self, stack_ptr: int, function_name: str, parameters: List[Argument]) -> None:
        raise NotImplementedError

    def process_no_parameters(self, stack_ptr: int, function_name: str) -> None:
        """Calls without any argument; ignored unless a subclass cares."""
