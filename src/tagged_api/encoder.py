"""
Wire encoding of API calls.

Each call becomes one line of ``key=value`` pairs joined by ``&``::

    method=user.get&id=42&tags[]=a&tags[]=b&filter[status]=active

A batch is the lines joined by newlines, framed by a leading and a
trailing newline.
"""
import math
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote, unquote

from .errors import ParamEncodingError
from .types import CallRecord, ParamKind, ParamValue

LINE_SEPARATOR = "\n"

# Characters encodeURIComponent leaves alone, on top of quote()'s always-safe set.
_SAFE_CHARS = "!*'()"

_NAME_PATTERN = re.compile(r"^([^\[\]]*)((?:\[[^\[\]]*\])*)$")
_SEGMENT_PATTERN = re.compile(r"\[([^\[\]]*)\]")


def _quote(value: str) -> str:
    return quote(value, safe=_SAFE_CHARS)


def _render_number(value: float) -> str:
    """Render a float the way JavaScript stringifies numbers."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    # repr() gives the shortest digits that round-trip, as JavaScript does
    _, digit_tuple, exponent = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    k = len(digits)
    n = k + exponent

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * -n + digits

    e = n - 1
    mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
    return f"{sign}{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"


def classify_param(key: str, value: Any) -> ParamValue:
    """Resolve the kind of a parameter value, recursively for containers."""
    if value is None:
        return ParamValue(ParamKind.ABSENT)
    # bool is an int subclass, check it first
    if isinstance(value, bool):
        return ParamValue(ParamKind.PRIMITIVE, "true" if value else "false")
    if isinstance(value, str):
        return ParamValue(ParamKind.PRIMITIVE, value)
    if isinstance(value, int):
        return ParamValue(ParamKind.PRIMITIVE, str(value))
    if isinstance(value, float):
        return ParamValue(ParamKind.PRIMITIVE, _render_number(value))
    if isinstance(value, Mapping):
        entries = tuple(
            (str(subkey), classify_param(f"{key}[{subkey}]", subvalue))
            for subkey, subvalue in value.items()
        )
        return ParamValue(ParamKind.MAPPING, entries)
    if isinstance(value, (list, tuple)):
        return ParamValue(
            ParamKind.ARRAY,
            tuple(classify_param(f"{key}[]", item) for item in value),
        )
    raise ParamEncodingError(key, type(value).__name__)


def classify_params(params: Mapping[str, Any]) -> Tuple[Tuple[str, ParamValue], ...]:
    """Classify every call parameter. Raises ParamEncodingError on the first bad value."""
    return tuple((str(key), classify_param(str(key), value)) for key, value in params.items())


def _encode_value(name: str, param: ParamValue) -> List[str]:
    if param.kind is ParamKind.PRIMITIVE:
        return [f"{name}={_quote(param.value)}"]
    if param.kind is ParamKind.ABSENT:
        return [f"{name}="]
    pairs: List[str] = []
    if param.kind is ParamKind.ARRAY:
        for item in param.value:
            pairs.extend(_encode_value(f"{name}[]", item))
    else:
        for subkey, item in param.value:
            pairs.extend(_encode_value(f"{name}[{_quote(subkey)}]", item))
    return pairs


def encode_param(key: str, value: Any) -> str:
    """Encode a single named value to its ``key=value`` pair(s)."""
    return "&".join(_encode_value(_quote(key), classify_param(key, value)))


def encode_fields(method: str, fields: Iterable[Tuple[str, ParamValue]]) -> str:
    """Encode an already classified call to a single line."""
    pairs = [f"method={_quote(method)}"]
    for key, param in fields:
        pairs.extend(_encode_value(_quote(key), param))
    return "&".join(pairs)


def encode_call(record: CallRecord) -> str:
    """Encode a queued call to a single line."""
    fields = record.fields if record.fields else classify_params(record.params)
    return encode_fields(record.method, fields)


def encode_batch(records: Sequence[CallRecord]) -> str:
    """Encode a batch of calls to the POST body."""
    lines = [encode_call(record) for record in records]
    return LINE_SEPARATOR + LINE_SEPARATOR.join(lines) + LINE_SEPARATOR


@dataclass
class DecodedCall:
    """A call line decoded back into its method and parameter pairs.

    Pair names keep their bracket structure (``tags[]``, ``filter[status]``)
    with every segment unescaped.
    """

    method: str
    pairs: List[Tuple[str, str]] = field(default_factory=list)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value sent under ``name``."""
        for pair_name, value in self.pairs:
            if pair_name == name:
                return value
        return default

    def get_all(self, name: str) -> List[str]:
        """Every value sent under ``name``, in wire order."""
        return [value for pair_name, value in self.pairs if pair_name == name]


def _decode_name(raw: str) -> str:
    match = _NAME_PATTERN.match(raw)
    if match is None:
        return unquote(raw)
    head, tail = match.groups()
    segments = _SEGMENT_PATTERN.findall(tail)
    return unquote(head) + "".join(f"[{unquote(segment)}]" for segment in segments)


def _encode_name(name: str) -> str:
    match = _NAME_PATTERN.match(name)
    if match is None:
        return _quote(name)
    head, tail = match.groups()
    segments = _SEGMENT_PATTERN.findall(tail)
    return _quote(head) + "".join(f"[{_quote(segment)}]" for segment in segments)


def decode_call_line(line: str) -> DecodedCall:
    """Decode one call line. The first pair must be ``method``."""
    raw_pairs = line.split("&") if line else []
    if not raw_pairs or not raw_pairs[0].startswith("method="):
        raise ValueError(f"Call line does not start with a method: {line!r}")

    method = unquote(raw_pairs[0][len("method="):])
    pairs: List[Tuple[str, str]] = []
    for raw_pair in raw_pairs[1:]:
        raw_name, _, raw_value = raw_pair.partition("=")
        pairs.append((_decode_name(raw_name), unquote(raw_value)))
    return DecodedCall(method=method, pairs=pairs)


def decode_batch(body: str) -> List[DecodedCall]:
    """Decode a POST body produced by encode_batch."""
    if not body.startswith(LINE_SEPARATOR) or not body.endswith(LINE_SEPARATOR):
        raise ValueError("Batch body must be framed by newlines")
    inner = body[1:-1]
    if not inner:
        return []
    return [decode_call_line(line) for line in inner.split(LINE_SEPARATOR)]


def encode_decoded_call(call: DecodedCall) -> str:
    """Re-encode a decoded call line."""
    pairs = [f"method={_quote(call.method)}"]
    pairs.extend(f"{_encode_name(name)}={_quote(value)}" for name, value in call.pairs)
    return "&".join(pairs)


def encode_decoded_batch(calls: Sequence[DecodedCall]) -> str:
    """Re-encode decoded calls to a POST body."""
    return LINE_SEPARATOR + LINE_SEPARATOR.join(encode_decoded_call(c) for c in calls) + LINE_SEPARATOR
