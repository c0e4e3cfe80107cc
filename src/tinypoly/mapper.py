"""Map flat, named string values onto tagged dataclass fields.

A Mapper is one configuration (which field tags it honors, which container
types count as single values). It answers two questions: which keys does a
type expose (`keys_for`), and how to write a value for one key into an
instance (`bind(dest).set(key, value)`).

Fields are tagged through their dataclass metadata; `tagged()` is shorthand:

    @dataclass
    class Order:
        size: str = tagged("", form="size", query="size")
        toppings: list[str] = tagged(default_factory=list, form="toppings")
"""
import dataclasses
import functools
import types
import typing as t

from . import kinds

SLICE_TYPES: tuple[t.Any, ...] = (list[bool], list[float], list[int], list[str])

_SCALAR_LEAVES = (str, int, float, bool)
_TRUE = frozenset(("1", "t", "T", "TRUE", "true", "True"))
_FALSE = frozenset(("", "0", "f", "F", "FALSE", "false", "False"))


class MappingError(ValueError):
    """A value could not be converted to its field's type."""


def tagged(default=dataclasses.MISSING, *, default_factory=dataclasses.MISSING, **tags):
    """A dataclass field carrying source tags, e.g. tagged("", form="name")."""
    return dataclasses.field(default=default, default_factory=default_factory,
                             metadata=tags)


@dataclasses.dataclass(frozen=True)
class _Leaf:
    path: tuple[str, ...]  # attribute names, outermost first
    tp: t.Any
    elem: t.Any = None  # element type when the leaf is a list

    def coerce(self, value: str | t.Sequence[str]):
        if self.elem is not None:
            values = [value] if isinstance(value, str) else value
            return [_parse(v, self.elem) for v in values]
        if not isinstance(value, str):
            value = value[-1]
        return _parse(value, self.tp)


@dataclasses.dataclass(frozen=True)
class Mapper:
    tags: tuple[str, ...] = ()
    tagged_fields_only: bool = False
    treat_as_scalar: tuple[t.Any, ...] = ()
    join: str = "_"

    def keys_for(self, tp) -> tuple[str, ...]:
        """Keys the type exposes for this mapper, in field order."""
        if not kinds.is_struct(tp):
            return ()
        return tuple(_mapping(self, kinds.unwrap_optional(tp)[0]))

    def bind(self, dest) -> "Bound":
        return Bound(_mapping(self, type(dest)), dest)

    def _key(self, f: dataclasses.Field) -> str | None:
        for tag in self.tags:
            if key := f.metadata.get(tag):
                return key
        return None if self.tagged_fields_only else f.name

    def _leaf(self, path: tuple[str, ...], tp) -> _Leaf | None:
        inner, _ = kinds.unwrap_optional(tp)
        if inner in self.treat_as_scalar:
            args = t.get_args(inner)
            return _Leaf(path, inner, args[0] if args else str)
        if inner in _SCALAR_LEAVES:
            return _Leaf(path, inner)
        return None


class Bound:
    """A Mapper bound to one destination instance."""

    def __init__(self, leaves: t.Mapping[str, _Leaf], dest):
        self._leaves = leaves
        self._dest = dest

    def set(self, key: str, value: str | t.Sequence[str]) -> None:
        """Write value into the field behind key; unknown keys are ignored."""
        leaf = self._leaves.get(key)
        if leaf is None or (not isinstance(value, str) and not value):
            return
        target = self._dest
        for name in leaf.path[:-1]:
            target = getattr(target, name)
        setattr(target, leaf.path[-1], leaf.coerce(value))


@functools.lru_cache(maxsize=None)
def _mapping(mapper: Mapper, cls) -> t.Mapping[str, _Leaf]:
    out: dict[str, _Leaf] = {}
    if dataclasses.is_dataclass(cls):
        _walk(mapper, cls, (), "", out)
    return types.MappingProxyType(out)


def _walk(mapper: Mapper, cls, path: tuple[str, ...], prefix: str,
          out: dict[str, _Leaf]) -> None:
    ftypes = kinds.field_types(cls)
    for f in dataclasses.fields(cls):
        if not f.init or (key := mapper._key(f)) is None:
            continue
        ftp = ftypes[f.name]
        if leaf := mapper._leaf((*path, f.name), ftp):
            out.setdefault(prefix + key, leaf)
        elif kinds.is_struct(ftp) and not kinds.unwrap_optional(ftp)[1]:
            _walk(mapper, kinds.strip_annotated(ftp), (*path, f.name),
                  prefix + key + mapper.join, out)


def _parse(s: str, tp):
    try:
        if tp is str:
            return s
        if tp is bool:
            if s in _TRUE:
                return True
            if s in _FALSE:
                return False
            raise ValueError(f"invalid boolean {s!r}")
        if tp in (int, float):
            return tp(s) if s else tp()
        return tp(s)
    except (TypeError, ValueError) as ex:
        raise MappingError(f"cannot set {getattr(tp, '__name__', tp)} from {s!r}") from ex


DEFAULT_FORM_MAPPER = Mapper(tags=("form",), tagged_fields_only=True,
                             treat_as_scalar=SLICE_TYPES)
DEFAULT_PATH_MAPPER = Mapper(tags=("path",), tagged_fields_only=True,
                             treat_as_scalar=SLICE_TYPES)
DEFAULT_QUERY_MAPPER = Mapper(tags=("query",), tagged_fields_only=True,
                              treat_as_scalar=SLICE_TYPES)
