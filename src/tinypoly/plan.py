"""Signature analysis: decide, once per handler, where each argument comes from.

The result is a Plan. It is frozen, built at registration and only read while
serving, so any number of request threads can share it.
"""
from dataclasses import dataclass
import enum
import inspect
import logging
import sys
import typing as t

from . import kinds
from .core import Request, ResponseWriter
from .mapper import Mapper

logger = logging.getLogger(__name__)

_empty = inspect.Parameter.empty
_KEYWORD = inspect.Parameter.KEYWORD_ONLY
_SKIPPED = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
_UNRESOLVED = object()


class Slot(enum.Enum):
    REQUEST = "request"
    RESPONSE = "response"


@dataclass(frozen=True)
class Param:
    name: str
    kind: inspect._ParameterKind
    annotation: t.Any = None
    default: t.Any = _empty


@dataclass(frozen=True)
class PassThrough:
    index: int
    slot: Slot


@dataclass(frozen=True)
class PathTarget:
    index: int
    keys: tuple[str, ...]


@dataclass(frozen=True)
class Plan:
    params: tuple[Param, ...]
    pass_through: tuple[PassThrough, ...] = ()
    form_targets: tuple[int, ...] = ()
    json_targets: tuple[int, ...] = ()
    query_targets: tuple[int, ...] = ()
    path_targets: tuple[PathTarget, ...] = ()
    returns: tuple[t.Any, ...] = ()
    error_indices: tuple[int, ...] = ()
    has_payload_return: bool = False
    dynamic_return: bool = False

    @property
    def targeted(self) -> frozenset[int]:
        return frozenset((*self.form_targets, *self.json_targets, *self.query_targets,
                          *(p.index for p in self.path_targets)))

    def new_args(self, w: ResponseWriter, request: Request) -> list[t.Any]:
        """A fresh argument list for one call; never shared between requests."""
        args = []
        targeted = self.targeted
        for i, param in enumerate(self.params):
            if i not in targeted and param.default is not _empty:
                args.append(param.default)
            else:
                args.append(kinds.zero_value(param.annotation))
        for pt in self.pass_through:
            args[pt.index] = request if pt.slot is Slot.REQUEST else w
        return args

    def call(self, fn: t.Callable, args: list[t.Any]) -> t.Any:
        positional = []
        keywords = {}
        for param, value in zip(self.params, args):
            if param.kind in _SKIPPED:
                continue
            if param.kind is _KEYWORD:
                keywords[param.name] = value
            else:
                positional.append(value)
        return fn(*positional, **keywords)


def _signature(fn) -> tuple[inspect.Signature, tuple[str, ...]]:
    """fn's signature with annotations evaluated, plus the names whose
    annotation could not be resolved; those are left unannotated."""
    if not callable(fn):
        raise TypeError(f"handler must be callable, got {type(fn).__name__}")
    try:
        return inspect.signature(fn, eval_str=True), ()
    except (NameError, AttributeError, SyntaxError, TypeError):
        pass
    try:
        sig = inspect.signature(fn)
    except NameError:
        # Lazily evaluated annotations (3.14+) naming something undefined.
        import annotationlib
        sig = inspect.signature(fn, annotation_format=annotationlib.Format.STRING)
    namespace = _globals_of(fn)
    unresolved = []
    params = []
    for p in sig.parameters.values():
        annotation = _resolve(p.annotation, namespace)
        if annotation is _UNRESOLVED:
            unresolved.append(p.name)
            annotation = _empty
        params.append(p.replace(annotation=annotation))
    ret = _resolve(sig.return_annotation, namespace)
    if ret is _UNRESOLVED:
        unresolved.append("return")
        ret = _empty
    return sig.replace(parameters=params, return_annotation=ret), tuple(unresolved)


def _resolve(annotation, namespace: dict):
    if not isinstance(annotation, str):
        return annotation
    try:
        return eval(annotation, namespace)  # pylint: disable=eval-used
    except (NameError, AttributeError, SyntaxError, TypeError):
        return _UNRESOLVED


def _globals_of(fn) -> dict:
    fn = inspect.unwrap(getattr(fn, "__func__", fn))
    if hasattr(fn, "__globals__"):
        return fn.__globals__
    module = sys.modules.get(getattr(fn, "__module__", None) or "")
    return vars(module) if module else {}


def _annotation(value) -> t.Any:
    return None if value is _empty else value


def pass_through_slot(annotation) -> Slot | None:
    annotation = kinds.strip_annotated(annotation)
    if not isinstance(annotation, type) or t.get_origin(annotation) is not None:
        return None
    if issubclass(annotation, Request):
        return Slot.REQUEST
    if annotation is ResponseWriter or issubclass(annotation, ResponseWriter):
        return Slot.RESPONSE
    return None


def is_handler_shape(fn) -> bool:
    """True for functions shaped exactly like fn(w: ResponseWriter, request: Request)."""
    params = list(_signature(fn)[0].parameters.values())
    return (len(params) == 2
            and all(p.kind not in _SKIPPED and p.kind is not _KEYWORD for p in params)
            and pass_through_slot(_annotation(params[0].annotation)) is Slot.RESPONSE
            and pass_through_slot(_annotation(params[1].annotation)) is Slot.REQUEST)


def _return_types(annotation) -> tuple[tuple[t.Any, ...], bool]:
    """(declared return types, dynamic)."""
    if annotation is _empty:
        return (), True
    annotation = kinds.strip_annotated(annotation)
    if annotation is None or annotation is type(None):
        return (), False
    if t.get_origin(annotation) is tuple:
        args = t.get_args(annotation)
        if args and args[-1] is not Ellipsis:
            return args, False
    return (annotation,), False


def analyze(fn, *, form_mapper: Mapper | None = None,
            path_mapper: Mapper | None = None,
            query_mapper: Mapper | None = None) -> Plan:
    """Classify every parameter and the return shape of fn."""
    sig, unresolved = _signature(fn)
    name = getattr(fn, "__qualname__", repr(fn))
    if unresolved:
        logger.warning("%s: cannot resolve the annotation of %s; treating it as "
                       "unannotated", name, ", ".join(unresolved))
    params = []
    pass_through = []
    form, json, query, path = [], [], [], []
    for i, p in enumerate(sig.parameters.values()):
        annotation = _annotation(p.annotation)
        params.append(Param(p.name, p.kind, annotation, p.default))
        if p.kind in _SKIPPED:
            continue
        if slot := pass_through_slot(annotation):
            pass_through.append(PassThrough(i, slot))
            continue
        if form_mapper is not None and form_mapper.keys_for(annotation):
            form.append(i)
        if path_mapper is not None and (keys := path_mapper.keys_for(annotation)):
            path.append(PathTarget(i, keys))
        if query_mapper is not None and query_mapper.keys_for(annotation):
            query.append(i)
        if kinds.is_struct(annotation):
            json.append(i)

    returns, dynamic = _return_types(sig.return_annotation)
    plan = Plan(
        params=tuple(params),
        pass_through=tuple(pass_through),
        form_targets=tuple(form),
        json_targets=tuple(json),
        query_targets=tuple(query),
        path_targets=tuple(path),
        returns=returns,
        error_indices=tuple(i for i, r in enumerate(returns) if kinds.is_error(r)),
        has_payload_return=bool(returns) and kinds.is_payload_kind(returns[0]),
        dynamic_return=dynamic,
    )
    if returns and not plan.has_payload_return and not kinds.is_error(returns[0]):
        logger.warning("%s returns %r, which is never written as a response body",
                       name, returns[0])
    logger.debug("plan for %s: %s", name, plan)
    return plan
