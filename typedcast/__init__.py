"""
typedcast — typed casting of raw CSV tokens into declared column types.

Contract (v0):
- One cell at a time: cast(raw, column, target_type, options) -> typed value.
- Target types (closed set):
    byte, short, int, long -> int (range checked, 8/16/32/64-bit signed)
    float, double          -> float (float rounded to single precision)
    boolean                -> bool ("true" / "false" only)
    decimal(p, s)          -> decimal.Decimal (exact, no rounding)
    date                   -> datetime.date
    timestamp              -> datetime.datetime (naive, local time)
    string                 -> str (identity)
- Null handling happens before parsing. A token is a null candidate when it is
  None, equals options.null_value, or is "" with treat_empty_values_as_nulls.
    nullable columns     -> None
    non-nullable columns -> NotNullableViolation, except a plain null_value
                            match, which is parsed as ordinary text.
- Numbers are locale aware: the locale's grouping symbol is stripped and its
  decimal symbol read as the decimal point (float, double, decimal).
  options.locale wins; otherwise the process locale from the environment.
- Dates: "yyyy-MM-dd" and "yyyy-MM-dd HH:mm:ss" by default, or any
  LDML / SimpleDateFormat pattern given as options.date_format.
- Errors: raise immediately with a CastError subclass carrying column/value.

API:
- cast(raw, column, target_type, options=DEFAULT_OPTIONS) -> Any
- resolve_delimiter_char(token) -> str
- CastOptions / DelimiterOptions (frozen, with from_params(mapping))
- TargetType, TargetType.parse(name), BYTE ... STRING, DecimalType(p, s)

Python: 3.10+
"""

from __future__ import annotations

import csv
import logging
import re
import struct
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from babel import UnknownLocaleError
from babel.core import default_locale
from babel.dates import tokenize_pattern
from babel.numbers import get_decimal_symbol, get_group_symbol

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


# ----------------------------
# Exceptions
# ----------------------------

class InvalidArgument(ValueError):
    """Raised on bad configuration: delimiters, option values, type names."""


class CastError(ValueError):
    """Raised when a raw token cannot be cast; carries column and value context."""

    def __init__(self, *, column: str, value: Optional[str], reason: str) -> None:
        msg = (
            f"{type(self).__name__}(" +
            f"column={column!r}, value={value!r}): {reason}"
        )
        super().__init__(msg)
        self.column = column    # column name, diagnostics only
        self.value = value      # raw token (None for a null literal)
        self.reason = reason


class NotNullableViolation(CastError):
    def __init__(self, *, column: str, value: Optional[str]) -> None:
        super().__init__(
            column=column, value=value,
            reason=f"null value found but field {column} is not nullable",
        )


class NumberFormatViolation(CastError):
    pass


class BooleanFormatViolation(CastError):
    pass


class TemporalParseViolation(CastError):
    def __init__(self, *, column: str, value: str, pattern: str, reason: str = "") -> None:
        super().__init__(
            column=column, value=value,
            reason=f"Unparseable date: {value!r} (expected pattern {pattern!r})" + (
                f": {reason}" if reason else ""
            ),
        )
        self.pattern = pattern


# ----------------------------
# Target types
# ----------------------------

TypeName = str  # "byte" | "short" | "int" | "long" | "float" | "double" | ...

_TYPE_NAMES: Tuple[TypeName, ...] = (
    "byte", "short", "int", "long",
    "float", "double",
    "boolean", "decimal",
    "date", "timestamp",
    "string",
)

_TYPE_ALIASES: Dict[str, TypeName] = {
    "tinyint": "byte",
    "smallint": "short",
    "integer": "int",
    "bigint": "long",
    "real": "float",
    "bool": "boolean",
    "str": "string",
    "datetime": "timestamp",
}

_DECIMAL_RE = re.compile(r"decimal\s*(?:\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\))?")


@dataclass(frozen=True)
class TargetType:
    name: TypeName
    precision: Optional[int] = None  # decimal only, informational
    scale: Optional[int] = None      # decimal only, informational

    def __post_init__(self) -> None:
        if self.name not in _TYPE_NAMES:
            raise InvalidArgument(f"Unknown target type: {self.name!r}")

    @classmethod
    def parse(cls, text: str) -> "TargetType":
        """
        Parse a type name such as "int", "bigint", "timestamp" or "decimal(10,2)".
        Case-insensitive; aliases map onto the closed set of type names.
        """
        s = text.strip().lower()
        m = _DECIMAL_RE.fullmatch(s)
        if m:
            precision, scale = m.groups()
            return DecimalType(
                int(precision) if precision is not None else 10,
                int(scale) if scale is not None else 0,
            )
        s = _TYPE_ALIASES.get(s, s)
        if s not in _TYPE_NAMES or s == "decimal":
            raise InvalidArgument(f"Unknown target type: {text!r}")
        return cls(s)

    def __str__(self) -> str:
        if self.name == "decimal":
            return f"decimal({self.precision},{self.scale})"
        return self.name


def DecimalType(precision: int = 10, scale: int = 0) -> TargetType:
    return TargetType("decimal", precision=precision, scale=scale)


BYTE = TargetType("byte")
SHORT = TargetType("short")
INT = TargetType("int")
LONG = TargetType("long")
FLOAT = TargetType("float")
DOUBLE = TargetType("double")
BOOLEAN = TargetType("boolean")
DATE = TargetType("date")
TIMESTAMP = TargetType("timestamp")
STRING = TargetType("string")


# ----------------------------
# Options
# ----------------------------

def _param_bool(params: Mapping[str, str], key: str, default: bool) -> bool:
    raw = params.get(key)
    if raw is None:
        return default
    s = str(raw).strip().lower()
    if s == "true":
        return True
    if s == "false":
        return False
    raise InvalidArgument(f"{key} flag can be true or false, got {raw!r}")


@dataclass(frozen=True)
class CastOptions:
    nullable: bool = False
    treat_empty_values_as_nulls: bool = False
    null_value: str = ""
    # LDML / SimpleDateFormat pattern, e.g. "dd/MM/yyyy hh:mm"; None -> ISO defaults
    date_format: Optional[str] = None
    # babel locale identifier, e.g. "fr_FR"; None -> process locale from environment
    locale: Optional[str] = None

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "CastOptions":
        """Build options from the string parameter map used by the ingestion pipeline."""
        return cls(
            nullable=_param_bool(params, "nullable", False),
            treat_empty_values_as_nulls=_param_bool(params, "treatEmptyValuesAsNulls", False),
            null_value=params.get("nullValue", ""),
            date_format=params.get("dateFormat") or None,
            locale=params.get("locale") or None,
        )


DEFAULT_OPTIONS = CastOptions()


def _single_char(params: Mapping[str, str], key: str, default: Optional[str]) -> Optional[str]:
    raw = params.get(key, default)
    if raw is None or raw == "":
        return None
    if len(raw) != 1:
        raise InvalidArgument(f"{key} cannot be more than one character: {raw!r}")
    return raw


@dataclass(frozen=True)
class DelimiterOptions:
    delimiter: str = ","
    quote: Optional[str] = '"'
    escape: Optional[str] = None

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "DelimiterOptions":
        """
        Read delimiter, quote and escape characters from string parameters.
        The delimiter accepts escape sequences (see resolve_delimiter_char);
        the others must be a single literal character.
        """
        return cls(
            delimiter=resolve_delimiter_char(params.get("delimiter", ",")),
            quote=_single_char(params, "quote", '"'),
            escape=_single_char(params, "escape", None),
        )

    def fmtparams(self) -> Dict[str, Any]:
        """Keyword arguments for csv.reader / csv.writer."""
        out: Dict[str, Any] = {"delimiter": self.delimiter}
        if self.quote is None:
            out["quotechar"] = None
            out["quoting"] = csv.QUOTE_NONE
        else:
            out["quotechar"] = self.quote
        if self.escape is not None:
            out["escapechar"] = self.escape
        return out


# ----------------------------
# Escape resolver
# ----------------------------

_ESCAPES: Dict[str, str] = {
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    '"': '"',
    "'": "'",
}

_UNICODE_ESCAPE_RE = re.compile(r"\\u([0-9A-Fa-f]{4})")


def resolve_delimiter_char(token: str) -> str:
    """
    Turn a delimiter setting into a single character.
    Accepts one literal character, one of \\t \\r \\b \\f \\" \\' or \\uXXXX.
    """
    if token == "":
        raise InvalidArgument("Delimiter cannot be empty")

    if token[0] == "\\":
        if len(token) == 2 and token[1] in _ESCAPES:
            return _ESCAPES[token[1]]
        m = _UNICODE_ESCAPE_RE.fullmatch(token)
        if m:
            return chr(int(m.group(1), 16))
        raise InvalidArgument(f"Unsupported special character for delimiter: {token}")

    if len(token) == 1:
        return token

    raise InvalidArgument(f"Delimiter cannot be more than one character: {token}")


# ----------------------------
# Null resolver
# ----------------------------

_PARSE = object()  # sentinel: not null, continue with type-specific parsing


def _resolve_null(raw: Optional[str], column: str, options: CastOptions) -> Any:
    """
    Decide null disposition before parsing. Returns None for a null result,
    _PARSE to continue parsing, or raises NotNullableViolation.

        null literal | null_value match | empty-as-null | nullable -> outcome
        any          | any              | any           | True     -> None (if any match)
        no           | yes              | no            | False    -> parse raw text
        yes          | -                | -             | False    -> NotNullableViolation
        no           | any              | yes           | False    -> NotNullableViolation
        no           | no               | no            | any      -> parse raw text
    """
    is_null_literal = raw is None
    matches_null_value = not is_null_literal and raw == options.null_value
    empty_as_null = not is_null_literal and options.treat_empty_values_as_nulls and raw == ""

    if not (is_null_literal or matches_null_value or empty_as_null):
        return _PARSE

    if options.nullable:
        return None

    if is_null_literal or empty_as_null:
        raise NotNullableViolation(column=column, value=raw)

    logger.debug(
        "Column %r is not nullable; parsing null marker %r as a literal value",
        column, raw,
    )
    return _PARSE


# ----------------------------
# Numeric parsers
# ----------------------------

_INTEGRAL_RE = re.compile(r"[+-]?[0-9]+")
_FLOATING_RE = re.compile(r"[+-]?(?:NaN|Infinity|(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)")
_DECIMAL_LITERAL_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

_INTEGRAL_BITS: Dict[TypeName, int] = {"byte": 8, "short": 16, "int": 32, "long": 64}


def _input_string(raw: str) -> str:
    return f'For input string: "{raw}"'


def _parse_integral(raw: str, column: str, type_name: TypeName) -> int:
    if _INTEGRAL_RE.fullmatch(raw) is None:
        raise NumberFormatViolation(column=column, value=raw, reason=_input_string(raw))

    value = int(raw)
    bits = _INTEGRAL_BITS[type_name]
    lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    if not lo <= value <= hi:
        if type_name in ("byte", "short"):
            reason = f'Value out of range. Value:"{raw}" Radix:10'
        else:
            reason = _input_string(raw)
        raise NumberFormatViolation(column=column, value=raw, reason=reason)
    return value


def _ambient_locale() -> str:
    loc = default_locale("LC_NUMERIC")
    if loc is None:
        logger.debug("No locale found in environment; falling back to en_US")
        return "en_US"
    return loc


def _number_symbols(options: CastOptions) -> Tuple[str, str]:
    """(grouping symbol, decimal symbol) for the options' locale."""
    loc = options.locale or _ambient_locale()
    try:
        return get_group_symbol(loc), get_decimal_symbol(loc)
    except (UnknownLocaleError, ValueError) as e:
        raise InvalidArgument(f"Unknown locale: {loc!r}") from e


_SPACE_GROUPS = ("\u202f", "\u00a0", " ")


def _localized_to_plain(text: str, options: CastOptions) -> str:
    group, point = _number_symbols(options)
    if group in _SPACE_GROUPS:
        for space in _SPACE_GROUPS:
            text = text.replace(space, "")
    elif group:
        text = text.replace(group, "")
    if point != ".":
        text = text.replace(point, ".")
    return text


def _to_single(value: float) -> float:
    try:
        return struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        return float("inf") if value > 0 else float("-inf")


def _parse_floating(raw: str, column: str, type_name: TypeName, options: CastOptions) -> float:
    cleaned = _localized_to_plain(raw.strip(), options)
    if _FLOATING_RE.fullmatch(cleaned) is None:
        raise NumberFormatViolation(column=column, value=raw, reason=_input_string(raw))

    value = float(cleaned.replace("Infinity", "inf"))
    if type_name == "float":
        return _to_single(value)
    return value


def _parse_decimal(raw: str, column: str, options: CastOptions) -> Decimal:
    cleaned = _localized_to_plain(raw, options)
    if _DECIMAL_LITERAL_RE.fullmatch(cleaned) is None:
        raise NumberFormatViolation(column=column, value=raw, reason=_input_string(raw))
    try:
        return Decimal(cleaned)
    except InvalidOperation as e:
        raise NumberFormatViolation(column=column, value=raw, reason=_input_string(raw)) from e


def _parse_boolean(raw: str, column: str) -> bool:
    if raw == "true":
        return True
    if raw == "false":
        return False
    raise BooleanFormatViolation(column=column, value=raw, reason=_input_string(raw))


# ----------------------------
# Temporal parsers
# ----------------------------

DEFAULT_DATE_PATTERN = "yyyy-MM-dd"
DEFAULT_TIMESTAMP_PATTERN = "yyyy-MM-dd HH:mm:ss"

_DEFAULT_DATE_FORMAT = "%Y-%m-%d"
_DEFAULT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _field_directive(char: str, count: int, has_period: bool) -> str:
    if char in ("y", "Y", "u"):
        return "%y" if count == 2 else "%Y"
    if char in ("M", "L"):
        if count <= 2:
            return "%m"
        return "%b" if count == 3 else "%B"
    if char == "d":
        return "%d"
    if char == "D":
        return "%j"
    if char == "H":
        return "%H"
    if char == "h":
        return "%I" if has_period else "%H"
    if char == "m":
        return "%M"
    if char == "s":
        return "%S"
    if char == "S":
        # read as a fraction, so only the three-digit millisecond field is exact
        if count != 3:
            raise InvalidArgument(f"Unsupported date pattern field {char * count!r}, use 'SSS'")
        return "%f"
    if char == "a":
        return "%p"
    if char in ("E", "e", "c"):
        return "%a" if count <= 3 else "%A"
    if char in ("Z", "X", "x"):
        return "%z"
    if char == "z":
        return "%Z"
    raise InvalidArgument(f"Unsupported date pattern field {char * count!r}")


def pattern_to_strptime(pattern: str) -> Tuple[str, bool]:
    """
    Translate an LDML / SimpleDateFormat pattern ("dd/MM/yyyy hh:mm") into a
    strptime format. Returns (format, fold_twelve): fold_twelve is True when the
    pattern has a 12-hour field without an am/pm marker, in which case hour 12
    means hour 0.
    """
    tokens = tokenize_pattern(pattern)
    fields = [value[0] for kind, value in tokens if kind == "field"]
    has_period = "a" in fields
    parts = []
    for kind, value in tokens:
        if kind == "chars":
            parts.append(value.replace("%", "%%"))
        else:
            char, count = value
            parts.append(_field_directive(char, count, has_period))
    fmt = "".join(parts)
    logger.debug("Date pattern %r -> strptime %r", pattern, fmt)
    return fmt, ("h" in fields and not has_period)


def _parse_custom(raw: str, column: str, pattern: str) -> datetime:
    fmt, fold_twelve = pattern_to_strptime(pattern)
    try:
        dt = datetime.strptime(raw, fmt)
    except ValueError as e:
        raise TemporalParseViolation(column=column, value=raw, pattern=pattern, reason=str(e)) from e

    if fold_twelve and dt.hour == 12:
        dt = dt.replace(hour=0)
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def _parse_timestamp(raw: str, column: str, options: CastOptions) -> datetime:
    if options.date_format:
        return _parse_custom(raw, column, options.date_format)
    try:
        return datetime.strptime(raw, _DEFAULT_TIMESTAMP_FORMAT)
    except ValueError as e:
        raise TemporalParseViolation(
            column=column, value=raw, pattern=DEFAULT_TIMESTAMP_PATTERN, reason=str(e)
        ) from e


def _parse_date(raw: str, column: str, options: CastOptions) -> date:
    if options.date_format:
        return _parse_custom(raw, column, options.date_format).date()
    try:
        return datetime.strptime(raw, _DEFAULT_DATE_FORMAT).date()
    except ValueError as e:
        raise TemporalParseViolation(
            column=column, value=raw, pattern=DEFAULT_DATE_PATTERN, reason=str(e)
        ) from e


# ----------------------------
# Dispatcher
# ----------------------------

_Parser = Callable[[str, str, TargetType, CastOptions], Any]

_PARSERS: Dict[TypeName, _Parser] = {
    "byte": lambda raw, col, t, o: _parse_integral(raw, col, t.name),
    "short": lambda raw, col, t, o: _parse_integral(raw, col, t.name),
    "int": lambda raw, col, t, o: _parse_integral(raw, col, t.name),
    "long": lambda raw, col, t, o: _parse_integral(raw, col, t.name),
    "float": lambda raw, col, t, o: _parse_floating(raw, col, t.name, o),
    "double": lambda raw, col, t, o: _parse_floating(raw, col, t.name, o),
    "boolean": lambda raw, col, t, o: _parse_boolean(raw, col),
    "decimal": lambda raw, col, t, o: _parse_decimal(raw, col, o),
    "date": lambda raw, col, t, o: _parse_date(raw, col, o),
    "timestamp": lambda raw, col, t, o: _parse_timestamp(raw, col, o),
    "string": lambda raw, col, t, o: raw,
}


def cast(
    raw: Optional[str],
    column: str,
    target_type: TargetType,
    options: CastOptions = DEFAULT_OPTIONS,
) -> Any:
    """
    Cast one raw token into `target_type`. `column` only appears in errors.
    Returns None for a null result; raises a CastError subclass otherwise.
    """
    disposition = _resolve_null(raw, column, options)
    if disposition is not _PARSE:
        return disposition
    return _PARSERS[target_type.name](raw, column, target_type, options)


__all__ = [
    "CastError",
    "NotNullableViolation",
    "NumberFormatViolation",
    "BooleanFormatViolation",
    "TemporalParseViolation",
    "InvalidArgument",
    "TargetType",
    "DecimalType",
    "BYTE",
    "SHORT",
    "INT",
    "LONG",
    "FLOAT",
    "DOUBLE",
    "BOOLEAN",
    "DATE",
    "TIMESTAMP",
    "STRING",
    "CastOptions",
    "DelimiterOptions",
    "DEFAULT_OPTIONS",
    "DEFAULT_DATE_PATTERN",
    "DEFAULT_TIMESTAMP_PATTERN",
    "__version__",
    "cast",
    "resolve_delimiter_char",
    "pattern_to_strptime",
]
