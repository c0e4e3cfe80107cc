"""Type-shape helpers shared by the analyzer, the mapper and the codec.

Everything here works on annotations (types), except `is_payload_value`, which
makes the same whitelist decision for a runtime value.
"""
import collections.abc
import dataclasses
import functools
import types
import typing as t

_NoneType = type(None)
_SCALARS = (bool, int, float, str)

# Annotation origins that never produce a body.
_OPAQUE_ORIGINS = (
    collections.abc.Callable, collections.abc.Iterator, collections.abc.Generator,
    collections.abc.AsyncIterator, collections.abc.AsyncGenerator,
    collections.abc.Awaitable, collections.abc.Coroutine,
    collections.abc.Set, set, frozenset,
)
SEQUENCE_ORIGINS = (list, tuple, collections.abc.Sequence,
                    collections.abc.MutableSequence)
MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


def strip_annotated(tp):
    while t.get_origin(tp) is t.Annotated:
        tp = tp.__origin__
    return tp


def is_union(tp) -> bool:
    return t.get_origin(tp) in (t.Union, types.UnionType)


def unwrap_optional(tp) -> tuple[t.Any, bool]:
    """Split Optional[X] into (X, True); anything else is (tp, False)."""
    tp = strip_annotated(tp)
    if is_union(tp):
        args = [a for a in t.get_args(tp) if a is not _NoneType]
        if len(args) == 1 and len(args) < len(t.get_args(tp)):
            return strip_annotated(args[0]), True
    return tp, False


def is_struct(tp) -> bool:
    """True for a dataclass type or an Optional dataclass ("pointer to struct")."""
    tp, _ = unwrap_optional(tp)
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def is_error(tp) -> bool:
    tp, _ = unwrap_optional(tp)
    return (isinstance(tp, type) and t.get_origin(tp) is None
            and issubclass(tp, BaseException))


def is_payload_kind(tp) -> bool:
    """Whether values of this declared type can be written as a body."""
    tp = strip_annotated(tp)
    if tp in (None, _NoneType, t.Any, object) or is_error(tp):
        return False
    if is_union(tp):
        members = [a for a in t.get_args(tp) if a is not _NoneType]
        return all(is_payload_kind(a) for a in members)
    origin = t.get_origin(tp)
    if origin is not None:
        if origin in _OPAQUE_ORIGINS:
            return False
        return origin in SEQUENCE_ORIGINS or origin in MAPPING_ORIGINS
    if not isinstance(tp, type):
        return False
    if dataclasses.is_dataclass(tp) or t.is_typeddict(tp):
        return True
    if issubclass(tp, (complex, bytes, bytearray, collections.abc.Set)):
        return False
    if issubclass(tp, _SCALARS):
        return True
    return issubclass(tp, (list, tuple, dict))


def is_payload_value(value) -> bool:
    """Runtime twin of is_payload_kind, used for unannotated returns."""
    if value is None or isinstance(value, (complex, bytes, bytearray,
                                           collections.abc.Set, BaseException)):
        return False
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return True
    return isinstance(value, (*_SCALARS, list, tuple, dict))


@functools.lru_cache(maxsize=None)
def field_types(cls) -> dict[str, t.Any]:
    """Resolved annotations of a dataclass's init fields."""
    hints = t.get_type_hints(cls, include_extras=True)
    return {f.name: hints.get(f.name, t.Any)
            for f in dataclasses.fields(cls) if f.init}


def zero_value(tp):
    """A fresh "nothing" for the annotation.

    Optional dataclasses are allocated, so a handler taking `T | None` always
    receives an instance to bind into.
    """
    tp, optional = unwrap_optional(tp)
    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        return new_struct(tp)
    if optional:
        return None
    origin = t.get_origin(tp) or tp
    if not isinstance(origin, type):
        return None
    if issubclass(origin, bool):
        return False
    for kind in (int, float, str, bytes, list, tuple, dict, set, frozenset):
        if origin is kind:
            return kind()
    if origin in SEQUENCE_ORIGINS:
        return []
    if origin in MAPPING_ORIGINS:
        return {}
    return None


def new_struct(cls):
    """Instantiate a dataclass, zero-filling fields that have no default."""
    kwargs = {}
    types_ = field_types(cls)
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            kwargs[f.name] = zero_value(types_[f.name])
    return cls(**kwargs)
