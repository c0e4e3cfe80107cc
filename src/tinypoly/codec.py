"""JSON in and out of handler values.

Decoding fills an existing dataclass in place, so several destinations can be
populated from one body. Field names come from the `json` tag when present
(`tagged(json="name,omitempty")`), otherwise from the field name.
"""
import dataclasses
import json
import typing as t

from . import kinds


class DecodeError(ValueError):
    pass


class EncodeError(ValueError):
    pass


def _json_tag(f: dataclasses.Field) -> tuple[str | None, bool]:
    """(name, omitempty); name is None when the field is excluded."""
    name, _, opts = f.metadata.get("json", "").partition(",")
    if name == "-" and not opts:
        return None, False
    return name or f.name, "omitempty" in opts.split(",")


# Decoding ------------------------------------------------------------------

def decode_into(dest, raw: bytes | str) -> None:
    """Decode a JSON document into the dataclass instance dest."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as ex:
        raise DecodeError(f"json: {ex}") from ex
    if data is not None:
        _fill(dest, data)


def _fill(dest, data) -> None:
    if not isinstance(data, dict):
        raise DecodeError(f"json: cannot unmarshal {_json_kind(data)} "
                          f"into {type(dest).__name__}")
    ftypes = kinds.field_types(type(dest))
    exact: dict[str, dataclasses.Field] = {}
    folded: dict[str, dataclasses.Field] = {}
    for f in dataclasses.fields(dest):
        name, _ = _json_tag(f)
        if name is None or not f.init:
            continue
        exact.setdefault(name, f)
        folded.setdefault(name.lower(), f)
    for key, value in data.items():
        f = exact.get(key) or folded.get(key.lower())
        if f is None:
            continue
        current = getattr(dest, f.name)
        setattr(dest, f.name, _convert(value, ftypes[f.name], current, key))


def _convert(value, tp, current, where: str):
    tp, optional = kinds.unwrap_optional(tp)
    if value is None:
        return None if optional else current
    if tp is t.Any or tp is object:
        return value
    if kinds.is_union(tp):
        return value
    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        target = current if isinstance(current, tp) else kinds.new_struct(tp)
        _fill(target, value)
        return target
    origin = t.get_origin(tp) or tp
    args = t.get_args(tp)
    if origin is bool:
        if isinstance(value, bool):
            return value
    elif origin is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif origin is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif origin is str:
        if isinstance(value, str):
            return value
    elif origin in kinds.SEQUENCE_ORIGINS:
        if isinstance(value, list):
            homogeneous = len(args) == 1 or (len(args) == 2 and args[1] is Ellipsis)
            elem = args[0] if homogeneous else t.Any
            items = [_convert(v, elem, kinds.zero_value(elem), where) for v in value]
            return tuple(items) if origin is tuple else items
    elif origin in kinds.MAPPING_ORIGINS:
        if isinstance(value, dict):
            vt = args[1] if len(args) == 2 else t.Any
            return {k: _convert(v, vt, kinds.zero_value(vt), where) for k, v in value.items()}
    else:
        return value
    raise DecodeError(f"json: cannot unmarshal {_json_kind(value)} into field "
                      f"{where!r} of type {getattr(tp, '__name__', tp)}")


def _json_kind(value) -> str:
    match value:
        case bool():
            return "bool"
        case int() | float():
            return "number"
        case str():
            return "string"
        case list():
            return "array"
        case dict():
            return "object"
    return "null"


# Encoding ------------------------------------------------------------------

def _default(obj):
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        out = {}
        for f in dataclasses.fields(obj):
            name, omitempty = _json_tag(f)
            value = getattr(obj, f.name)
            if name is None or (omitempty and not value):
                continue
            out[name] = value
        return out
    raise TypeError(f"json: unsupported type: {type(obj).__name__}")


def encode(value) -> bytes:
    """Compact JSON for a payload value."""
    try:
        return json.dumps(value, default=_default, allow_nan=False,
                          separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError, RecursionError) as ex:
        raise EncodeError(str(ex)) from ex
