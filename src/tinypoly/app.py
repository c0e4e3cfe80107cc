import logging
import re
import socketserver
import wsgiref.simple_server
from dataclasses import dataclass, field

from . import util
from .core import (Handler, HttpError, MethodNotAllowed, Request, Response,
                   RouteMatch, Middleware, write_error)
from .handler import Poly
from .mapper import DEFAULT_FORM_MAPPER, DEFAULT_PATH_MAPPER, DEFAULT_QUERY_MAPPER
from .params import RouteParams

import typing as t
_O = t.Optional
_T = t.TypeVar("_T")
_Wrapper = t.Callable[[_T], _T]

logger = logging.getLogger(__name__)


def default_poly() -> Poly:
    """Form, path and query binding with the default tags; path values come
    from named route groups."""
    return Poly(form_mapper=DEFAULT_FORM_MAPPER, path_mapper=DEFAULT_PATH_MAPPER,
                query_mapper=DEFAULT_QUERY_MAPPER, path_params=RouteParams())


@dataclass
class Route:
    path: str
    methods: tuple[str, ...] = tuple()
    pattern: re.Pattern = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, 'pattern', util.path_to_pattern(self.path))

    def match(self, request: Request) -> RouteMatch | None:
        if match := self.pattern.match(request.path):
            if self.methods and request.method not in self.methods:
                raise MethodNotAllowed(allow=self.methods)
            return RouteMatch(self, match)
        return None


class App:
    """Route table plus WSGI entrypoint.

    Every handler is adapted through `poly` when it is registered, so any
    function signature Poly understands can be routed.
    """

    def __init__(self, poly: _O[Poly] = None, middleware: t.Sequence[Middleware] = ()):
        self.poly = poly or default_poly()
        self.middleware = tuple(middleware)
        self.routes: list[tuple[Route, Handler]] = []
        self.errorhandlers: dict[int | type | None, Handler] = dict()

    # Decorators ----------------------------------------------------------

    def route(self, path, methods: _O[list[str]] = None) -> _Wrapper[t.Callable]:
        def decorator(handlerfn: t.Callable):
            self.add_route(path, handlerfn, methods)
            return handlerfn
        return decorator

    def errorhandler(self, code: int | type | None) -> _Wrapper[t.Callable]:
        def decorator(handlerfn: t.Callable):
            self.set_errorhandler(code, handlerfn)
            return handlerfn
        return decorator

    # Setup ---------------------------------------------------------------

    def add_route(self, path: str, handler: t.Callable | Handler,
                  methods: _O[list[str]] = None):
        self.routes.append((Route(path, tuple(methods) if methods else tuple()),
                            self.make_handler(handler)))

    def set_errorhandler(self, error: int | type | None, handler: t.Callable | Handler):
        self.errorhandlers[error] = self.make_handler(handler)

    def make_handler(self, handler: t.Callable | Handler) -> Handler:
        wrapped = self.poly.handler(handler)
        for mw in reversed(self.middleware):
            wrapped = mw(wrapped)
        return wrapped

    # Request Handling ----------------------------------------------------

    def handle_request(self, request: Request) -> Response:
        try:
            with HttpError.wrap_exceptions():
                route_match, handler = self.get_route(request)
                request = request.with_route(route_match)
                response = Response()
                handler.serve_http(response, request)
                return response
        except HttpError as http_error:
            if error_handler := self.get_error_handler(http_error):
                response = Response(http_error=http_error)
                error_handler.serve_http(response, request.with_error(http_error))
                return response
            raise

    def get_route(self, request: Request) -> tuple[RouteMatch, Handler]:
        methods_allowed = set([])
        for route, handler in self.routes:
            try:
                if match := route.match(request):
                    return match, handler
            except MethodNotAllowed as ex:
                methods_allowed = methods_allowed.union(ex.allow)
        if methods_allowed:
            raise MethodNotAllowed(allow=tuple(sorted(methods_allowed)))
        raise HttpError(404)

    def get_error_handler(self, http_error: HttpError) -> Handler | None:
        for cls in type(http_error).__mro__:  # Exception type handers
            if h := self.errorhandlers.get(cls):
                return h
        for c in http_error.causes():  # handlers for causal exceptions
            if h := self.errorhandlers.get(type(c)):
                return h
        if h := self.errorhandlers.get(http_error.code):  # error code handler
            return h
        return self.errorhandlers.get(None)  # default handler

    def default_error_handler(self, request: Request) -> Response:
        if not request.http_errors:
            raise HttpError(
                500, "Error handler called with no error",
                desc="Error handler was invoked with no error attached to the "
                "request. (That is, itself, an error.)")
        err = request.http_errors[0]
        resp = Response(http_error=err)
        lines = [f"HTTP {resp.code} - {resp._http_status()}"]
        if err.short:
            lines.append(err.short)
        if err.desc:
            lines.append(err.desc)
        write_error(resp, "\n".join(lines) + "\n", resp.code)
        return resp

    def fallback_error_handler(self, request: Request, http_error: HttpError) -> Response:
        try:
            with HttpError.wrap_exceptions():
                return self.default_error_handler(request.with_error(http_error))
        except HttpError:
            logger.exception("error page for HTTP %s failed", http_error.code)
            resp = Response(http_error=http_error)
            write_error(resp,
                        "The server encountered the following error:\n"
                        f"HTTP({http_error.code}): {http_error.short or ''}\n\n"
                        f"During the handling another error was encountered.\n",
                        http_error.code)
            return resp

    # Server Running ----------------------------------------------------

    def make_server(self, port=8080, host='', threaded=True):
        svr = wsgiref.simple_server.WSGIServer
        if threaded:  # Add threading mix-in
            svr = type('ThreadedServer', (socketserver.ThreadingMixIn, svr),
                       {'daemon_threads': True})
        return wsgiref.simple_server.make_server(host, port, self, server_class=svr)

    def serve_forever(self, port=8080, host='', threaded=True):
        logger.info("Serving on %s:%s -- ctrl+c to quit.", host, port)
        try:
            self.make_server(port, host, threaded).serve_forever()
        except KeyboardInterrupt:
            pass

    def __call__(self, environ, start_response):
        """WSGI entrypoint."""
        request = Request.from_wsgi(environ)
        response = self._wsgi_get_response(request)
        response._wsgi_finalize()
        start_response(*response._wsgi_start_response_args())
        return response._wsgi_response()

    def _wsgi_get_response(self, request: Request) -> Response:
        """Call handler with 100% error handling."""
        try:
            with HttpError.wrap_exceptions():
                return self.handle_request(request)
        except HttpError as ex:  # pylint: disable=broad-exception-caught
            return self.fallback_error_handler(request, ex)
