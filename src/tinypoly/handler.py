"""Poly turns arbitrary functions into request handlers.

    poly = Poly(form_mapper=DEFAULT_FORM_MAPPER, query_mapper=DEFAULT_QUERY_MAPPER)

    def order_pizza(order: OrderPizza) -> str:
        return f"{order.size} with {', '.join(order.toppings)}"

    handler = poly.handler(order_pizza)   # handler.serve_http(w, request)

Arguments are filled from the request according to their annotations (see
plan.analyze); the first return value becomes the body: text for `str`, JSON
for everything else that can be encoded. A non-None returned exception wins
over any payload and becomes a 500.
"""
from dataclasses import dataclass, field
import logging
import typing as t

from . import codec, kinds
from .core import (BodyDecodeError, BodyReadError, FormParseError, Handler,
                   HandlerFunc, HttpError, Request, ResponseWriter, write_all,
                   write_error)
from .mapper import Mapper, MappingError
from .params import PathParamFunc, PathParamProvider
from .plan import Plan, analyze, is_handler_shape

logger = logging.getLogger(__name__)

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_FORM = "application/x-www-form-urlencoded"
CONTENT_TYPE_TEXT = "text/plain; charset=utf-8"

_NO_PAYLOAD = object()


@dataclass(frozen=True)
class Poly:
    """Adapter configuration: which sources may populate handler arguments.

    A mapper left as None disables that source. path_params may be a
    PathParamProvider or a plain (request, key) -> str function.
    """
    form_mapper: Mapper | None = None
    path_mapper: Mapper | None = None
    query_mapper: Mapper | None = None
    path_params: PathParamProvider | t.Callable[[Request, str], str] | None = None

    def __post_init__(self):
        if self.path_params is not None and not isinstance(self.path_params, PathParamProvider):
            object.__setattr__(self, 'path_params', PathParamFunc(self.path_params))

    def handler(self, fn) -> Handler:
        """Adapt fn once; the returned Handler is safe to share across threads."""
        if isinstance(fn, Handler):
            return fn
        if is_handler_shape(fn):
            return HandlerFunc(fn)
        plan = analyze(fn, form_mapper=self.form_mapper,
                       path_mapper=self.path_mapper, query_mapper=self.query_mapper)
        if plan.path_targets and self.path_params is None:
            logger.warning("%s has path-bound arguments but no path parameter "
                           "provider is configured; they will stay empty",
                           getattr(fn, "__qualname__", repr(fn)))
        return PolyHandler(self, fn, plan)


@dataclass(frozen=True)
class _Outcome:
    payload: t.Any = _NO_PAYLOAD
    error: BaseException | None = None


@dataclass(frozen=True)
class PolyHandler:
    poly: Poly
    fn: t.Callable = field(repr=False)
    plan: Plan

    def serve_http(self, w: ResponseWriter, request: Request) -> None:
        args = self.plan.new_args(w, request)
        try:
            self._bind_path(args, request)
            self._bind_query(args, request)
            self._bind_body(args, request)
        except HttpError as ex:
            logger.debug("binding %s failed: %s", request.path, ex.short, exc_info=ex)
            write_error(w, ex.short or "bad request", ex.code)
            return
        self._respond(w, self._invoke(args))

    # Binding -------------------------------------------------------------

    def _bind_path(self, args: list, request: Request) -> None:
        provider = self.poly.path_params
        if provider is None or self.poly.path_mapper is None:
            return
        for target in self.plan.path_targets:
            bound = self.poly.path_mapper.bind(args[target.index])
            for key in target.keys:
                _set(bound, key, provider.path_param(request, key))

    def _bind_query(self, args: list, request: Request) -> None:
        if not self.plan.query_targets or self.poly.query_mapper is None:
            return
        values = request.query_values
        for n in self.plan.query_targets:
            bound = self.poly.query_mapper.bind(args[n])
            for name, value in values.items():
                _set(bound, name, value)

    def _bind_body(self, args: list, request: Request) -> None:
        content_type = request.content_type
        if content_type == CONTENT_TYPE_JSON and self.plan.json_targets:
            with BodyReadError.wrap_exceptions():
                raw = request.body_bytes()
            for n in self.plan.json_targets:
                with BodyDecodeError.wrap_exceptions():
                    codec.decode_into(args[n], raw)
        elif (content_type == CONTENT_TYPE_FORM and self.plan.form_targets
              and self.poly.form_mapper is not None):
            with FormParseError.wrap_exceptions():
                form = request.post_form()
            for n in self.plan.form_targets:
                bound = self.poly.form_mapper.bind(args[n])
                for name, value in form.items():
                    _set(bound, name, value)

    # Calling -------------------------------------------------------------

    def _invoke(self, args: list) -> _Outcome:
        result = self.plan.call(self.fn, args)
        if self.plan.dynamic_return:
            if _is_value_error_tuple(result):
                errors = [v for v in result if isinstance(v, BaseException)]
                if errors:
                    return _Outcome(error=errors[-1])
                result = result[0]
            if isinstance(result, BaseException):
                return _Outcome(error=result)
            if kinds.is_payload_value(result):
                return _Outcome(payload=result)
            return _Outcome()

        returns = self.plan.returns
        if len(returns) > 1:
            if not isinstance(result, tuple) or len(result) != len(returns):
                raise TypeError(f"{getattr(self.fn, '__qualname__', self.fn)} must "
                                f"return a tuple of {len(returns)} values")
            values = result
        else:
            values = (result,)
        error = None
        for i in self.plan.error_indices:  # the last failing error wins
            if values[i] is not None:
                error = values[i]
        if error is not None:
            return _Outcome(error=error)
        if self.plan.has_payload_return:
            return _Outcome(payload=values[0])
        return _Outcome()

    # Responding ----------------------------------------------------------

    def _respond(self, w: ResponseWriter, outcome: _Outcome) -> None:
        if outcome.error is not None:
            write_error(w, str(outcome.error), 500)
            return
        payload = outcome.payload
        if payload is _NO_PAYLOAD:
            return
        if isinstance(payload, str):
            w.set_header('Content-Type', CONTENT_TYPE_TEXT)
            body = payload.encode('utf-8')
        else:
            try:
                body = codec.encode(payload)
            except codec.EncodeError as ex:
                write_error(w, str(ex), 500)
                return
            w.set_header('Content-Type', CONTENT_TYPE_JSON)
        try:
            write_all(w, body)
        except OSError as ex:
            logger.warning("writing response body failed: %s", ex)


def _is_value_error_tuple(result) -> bool:
    """(value, ..., error) from an unannotated function: a tuple of two or more
    whose last item is None or an exception, or that holds any exception."""
    if not isinstance(result, tuple) or len(result) < 2:
        return False
    return result[-1] is None or any(isinstance(v, BaseException) for v in result)


def _set(bound, key: str, value) -> None:
    try:
        bound.set(key, value)
    except MappingError as ex:
        logger.debug("ignoring %r: %s", key, ex)
