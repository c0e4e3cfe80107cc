"""tinypoly: register any function as a WSGI request handler.

A handler's parameter annotations say where its arguments come from (the
request itself, the response writer, path parameters, the query string, a form
or JSON body) and its return annotation says what gets written back.
"""
from .core import (BadRequest, BodyDecodeError, BodyReadError, FormParseError,
                   Handler, HandlerFunc, HttpError, MethodNotAllowed, Middleware,
                   Request, Response, ResponseWriter, RouteMatch, write_error)
from .mapper import (DEFAULT_FORM_MAPPER, DEFAULT_PATH_MAPPER, DEFAULT_QUERY_MAPPER,
                     SLICE_TYPES, Mapper, MappingError, tagged)
from .params import KeyValueParams, PathParamFunc, PathParamProvider, RouteParams
from .plan import Plan, analyze
from .handler import (CONTENT_TYPE_FORM, CONTENT_TYPE_JSON, CONTENT_TYPE_TEXT,
                      Poly, PolyHandler)
from .app import App, Route, default_poly

__all__ = [
    "App", "BadRequest", "BodyDecodeError", "BodyReadError", "CONTENT_TYPE_FORM",
    "CONTENT_TYPE_JSON", "CONTENT_TYPE_TEXT", "DEFAULT_FORM_MAPPER",
    "DEFAULT_PATH_MAPPER", "DEFAULT_QUERY_MAPPER", "FormParseError", "Handler",
    "HandlerFunc", "HttpError", "KeyValueParams", "Mapper", "MappingError",
    "MethodNotAllowed", "Middleware", "PathParamFunc", "PathParamProvider", "Plan",
    "Poly", "PolyHandler", "Request", "Response", "ResponseWriter", "Route",
    "RouteMatch", "RouteParams", "SLICE_TYPES", "analyze", "default_poly", "tagged",
    "write_error",
]
