# src/paramsniff/sniffs/option_autoload.py
"""
Checks the `$autoload` argument of the WordPress option functions.

Calls to add_option() / update_option() should always pass `$autoload`, and
every option function should receive one of the boolean (or, where allowed,
null) literals rather than the legacy 'yes'/'no' strings or the internal-use
'on'/'off'/'auto*' values.

Flow per matched call:
    select target argument → (batch function) unwrap array entries →
    normalize value → classify (pure) → emit metric + diagnostic + fix.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, List, Mapping, Optional, Tuple

from ..php.tokens import ARRAY_OPENERS, TokenKind, TokenStream
from .base import FunctionParameterSniff
from .passed_parameters import (
    Argument,
    get_double_arrow_ptr,
    get_parameter_from_stack,
    get_parameters,
)

METRIC_NAME = "Value of the `$autoload` parameter in the option functions"

METRIC_PARAM_MISSING = "param missing"
METRIC_UNDETERMINED = "undetermined value"
METRIC_OTHER_VALUE = "other value"

# ==============================================================================
# Value policy (immutable)
# ==============================================================================

VALID_VALUES_ADD_AND_UPDATE: Tuple[str, ...] = ("true", "false", "null")
VALID_VALUES_OTHER_FUNCTIONS: Tuple[str, ...] = ("true", "false")

DEPRECATED_VALUES: FrozenSet[str] = frozenset({"yes", "no"})
INTERNAL_VALUES_NON_FIXABLE: FrozenSet[str] = frozenset({"auto", "auto-on", "auto-off"})
INTERNAL_VALUES_FIXABLE: FrozenSet[str] = frozenset({"on", "off"})
DISCOURAGED_VALUES: FrozenSet[str] = DEPRECATED_VALUES | INTERNAL_VALUES_NON_FIXABLE | INTERNAL_VALUES_FIXABLE

FIXABLE_VALUES: Mapping[str, str] = MappingProxyType(
    {
        "yes": "true",
        "no": "false",
        "on": "true",
        "off": "false",
    }
)

# Literals that may be written fully qualified (`\true`)
_NAMESPACEABLE_LITERALS: FrozenSet[str] = frozenset(VALID_VALUES_ADD_AND_UPDATE)

_QUOTED_RE = re.compile(r"^(['\"])(.*)\1$", re.DOTALL)


# ==============================================================================
# Function registry
# ==============================================================================


@dataclass(frozen=True)
class RegistryEntry:
    """Where the autoload information lives for one function."""
    function_name: str
    argument_name: str
    argument_position: int           # 1-based
    argument_is_optional: bool = False
    is_array_selector: bool = False  # argument is an array of name => autoload pairs

    @property
    def valid_values(self) -> Tuple[str, ...]:
        if self.argument_is_optional:
            return VALID_VALUES_ADD_AND_UPDATE
        return VALID_VALUES_OTHER_FUNCTIONS


TARGET_FUNCTIONS: Mapping[str, RegistryEntry] = MappingProxyType(
    {
        entry.function_name: entry
        for entry in (
            RegistryEntry("add_option", "autoload", 4, argument_is_optional=True),
            RegistryEntry("update_option", "autoload", 3, argument_is_optional=True),
            RegistryEntry("wp_set_options_autoload", "autoload", 2),
            RegistryEntry("wp_set_option_autoload", "autoload", 2),
            RegistryEntry("wp_set_option_autoload_values", "options", 1, is_array_selector=True),
        )
    }
)


# ==============================================================================
# Classification model
# ==============================================================================


class Category(str, Enum):
    MISSING = "missing"
    VALID = "valid"
    UNDETERMINED = "undetermined"
    DEPRECATED = "deprecated"
    INTERNAL_FIXABLE = "internal_fixable"
    INTERNAL_NON_FIXABLE = "internal_non_fixable"
    INVALID_OTHER = "invalid_other"


@dataclass(frozen=True)
class FixDirective:
    token_index: int
    replacement: str


@dataclass(frozen=True)
class ValueSpan:
    """Token range (inclusive) holding one autoload value, plus its clean text."""
    start: int
    end: int
    clean: str

    @classmethod
    def of(cls, arg: Argument) -> "ValueSpan":
        return cls(arg.start, arg.end, arg.clean)


@dataclass(frozen=True)
class Classification:
    category: Category
    token_index: int
    metric_value: str
    value: str = ""
    code: Optional[str] = None
    message: Optional[str] = None
    data: Tuple[str, ...] = ()
    fix: Optional[FixDirective] = None

    @property
    def fixable(self) -> bool:
        return self.fix is not None


@dataclass(frozen=True)
class NormalizedValue:
    first: Optional[int]    # effective first non-trivia token
    second: Optional[int]   # next non-trivia token, if any
    value: str              # lowercased comparison value


# ==============================================================================
# Normalizer + classifier (pure)
# ==============================================================================


def strip_quotes(text: str) -> str:
    m = _QUOTED_RE.match(text)
    return m.group(2) if m else text


def normalize_value(stream: TokenStream, span: ValueSpan) -> NormalizedValue:
    first = stream.next_non_trivia(span.start, span.end + 1)
    second = stream.next_non_trivia(first + 1, span.end + 1) if first is not None else None
    value = span.clean.lower()

    if (
        first is not None
        and second is not None
        and stream[first].kind is TokenKind.NS_SEPARATOR
        and stream[second].lower in _NAMESPACEABLE_LITERALS
    ):
        # `\true`, `\false`, `\null`
        first, second = second, None
        value = value[1:]

    return NormalizedValue(first=first, second=second, value=value)


def classify(stream: TokenStream, span: ValueSpan, entry: RegistryEntry) -> Classification:
    """Decide the category of one supplied autoload value. Never raises."""
    norm = normalize_value(stream, span)
    if norm.first is None:
        return Classification(Category.UNDETERMINED, span.start, METRIC_UNDETERMINED)

    first = stream[norm.first]
    valid_values = entry.valid_values

    if norm.value in valid_values:
        return Classification(Category.VALID, norm.first, norm.value, value=norm.value)

    if first.kind in (TokenKind.VARIABLE, TokenKind.IDENTIFIER) and first.lower != "null":
        return Classification(Category.UNDETERMINED, norm.first, METRIC_UNDETERMINED)

    if norm.second is not None and first.kind not in ARRAY_OPENERS:
        return Classification(Category.UNDETERMINED, norm.first, METRIC_UNDETERMINED)

    if first.kind is TokenKind.STRING and first.text.startswith("<<<"):
        # Heredoc/nowdoc: opener, body and closer are separate tokens in PHP
        return Classification(Category.UNDETERMINED, norm.first, METRIC_UNDETERMINED)

    autoload_value = strip_quotes(span.clean)
    metric_value = autoload_value if autoload_value in DISCOURAGED_VALUES else METRIC_OTHER_VALUE

    if autoload_value in DEPRECATED_VALUES:
        category = Category.DEPRECATED
        code = "Deprecated"
        message = "The use of `%s` as the value of the `$autoload` parameter is deprecated. Use `%s` instead."
        data: Tuple[str, ...] = (span.clean, FIXABLE_VALUES[autoload_value])
    elif autoload_value in INTERNAL_VALUES_FIXABLE:
        category = Category.INTERNAL_FIXABLE
        code = "InternalUseOnly"
        message = "The use of `%s` as the value of the `$autoload` parameter is discouraged. Use `%s` instead."
        data = (span.clean, FIXABLE_VALUES[autoload_value])
    elif autoload_value in INTERNAL_VALUES_NON_FIXABLE:
        category = Category.INTERNAL_NON_FIXABLE
        code = "InternalUseOnly"
        message = "The use of `%s` as the value of the `$autoload` parameter is discouraged."
        data = (span.clean,)
    else:
        category = Category.INVALID_OTHER
        code = "InvalidValue"
        message = "The use of `%s` as the value of the `$autoload` parameter is invalid. Use %s instead."
        data = (span.clean, _valid_values_phrase(valid_values))

    fix = None
    if autoload_value in FIXABLE_VALUES:
        fix = FixDirective(norm.first, FIXABLE_VALUES[autoload_value])

    return Classification(
        category,
        norm.first,
        metric_value,
        value=autoload_value,
        code=code,
        message=message,
        data=data,
        fix=fix,
    )


def classify_missing(stream: TokenStream, stack_ptr: int, entry: RegistryEntry) -> Classification:
    if not entry.argument_is_optional:
        # Required arguments are left to the interpreter / other checks
        return Classification(Category.MISSING, stack_ptr, METRIC_PARAM_MISSING)
    return Classification(
        Category.MISSING,
        stack_ptr,
        METRIC_PARAM_MISSING,
        code="Missing",
        message="It is recommended to always pass the `$autoload` parameter when using %s() function.",
        data=(stream[stack_ptr].text,),
    )


def unwrap_array_values(stream: TokenStream, arg: Argument) -> List[ValueSpan]:
    """
    Value spans of each entry of an array literal argument. Returns [] when the
    argument is not an array literal (opaque) or the array is empty. For a
    `key => value` entry the clean text is the part after the first `=>`.
    """
    array_token = stream.next_non_trivia(arg.start, arg.end + 1)
    if array_token is None or stream[array_token].kind not in ARRAY_OPENERS:
        return []

    spans: List[ValueSpan] = []
    for item in get_parameters(stream, array_token):
        arrow = get_double_arrow_ptr(stream, item.start, item.end)
        if arrow is None:
            spans.append(ValueSpan.of(item))
            continue
        parts = item.clean.split("=>")
        if len(parts) < 2:
            # Malformed pair
            continue
        spans.append(ValueSpan(arrow + 1, item.end, parts[1].strip()))
    return spans


def classify_parameters(
    stream: TokenStream,
    stack_ptr: int,
    entry: RegistryEntry,
    parameters: List[Argument],
) -> List[Classification]:
    """All classifications for one call: one per scalar target, one per array entry."""
    target = get_parameter_from_stack(parameters, entry.argument_position, entry.argument_name)

    if target is None:
        return [classify_missing(stream, stack_ptr, entry)]

    if entry.is_array_selector:
        return [classify(stream, span, entry) for span in unwrap_array_values(stream, target)]

    return [classify(stream, ValueSpan.of(target), entry)]


def _valid_values_phrase(values: Tuple[str, ...]) -> str:
    quoted = [f"`{v}`" for v in values]
    if len(quoted) < 2:
        return "".join(quoted)
    return ", ".join(quoted[:-1]) + " or " + quoted[-1]


# ==============================================================================
# Sniff (emitter)
# ==============================================================================


class OptionAutoloadSniff(FunctionParameterSniff):
    """Warns about missing, deprecated, internal-only or invalid `$autoload` values."""

    sniff_code = "OptionAutoload"
    target_functions = TARGET_FUNCTIONS

    def process_parameters(self, stack_ptr: int, function_name: str, parameters: List[Argument]) -> None:
        entry = self.target_functions[function_name]
        for classification in classify_parameters(self.stream, stack_ptr, entry, parameters):
            self.emit(classification)

    def process_no_parameters(self, stack_ptr: int, function_name: str) -> None:
        entry = self.target_functions[function_name]
        self.emit(classify_missing(self.stream, stack_ptr, entry))

    def emit(self, classification: Classification) -> None:
        """One metric per classification; at most one diagnostic and one fix."""
        c = classification
        self.report.record_metric(c.token_index, METRIC_NAME, c.metric_value)
        if c.message is None:
            return

        code = f"{self.sniff_code}.{c.code}"
        if c.fix is not None:
            if self.report.add_fixable_warning(c.message, c.token_index, code, c.data):
                self.fixer.replace_token(c.fix.token_index, c.fix.replacement)
            return

        self.report.add_warning(c.message, c.token_index, code, c.data)
