import wsgiref.types
import contextlib
from dataclasses import InitVar, dataclass, field
import wsgiref.headers
import re
import http
import copy
import urllib.parse

from . import util

import typing as t
Headers = wsgiref.headers.Headers
_AnyHeaders: t.TypeAlias = dict[str, str] | list[tuple[str, str]] | Headers

# WSGI keeps these two out of the HTTP_* namespace.
_CGI_HEADERS = {'CONTENT_TYPE': 'Content-Type', 'CONTENT_LENGTH': 'Content-Length'}


@t.runtime_checkable
class ResponseWriter(t.Protocol):
    """Anything a handler can write a response into."""
    def set_status(self, code: int) -> None: ...
    def set_header(self, name: str, value: str) -> None: ...
    def write(self, data: bytes) -> int: ...


@t.runtime_checkable
class Handler(t.Protocol):
    def serve_http(self, w: ResponseWriter, request: "Request") -> None: ...


HandlerFn = t.Callable[[ResponseWriter, "Request"], None]
Middleware = t.Callable[[Handler], Handler]


@dataclass(kw_only=True)
class HttpError(Exception):
    """Throwable HTTP Error.

    Subclasses change a default by redeclaring the field, keeping it positional.
    """
    code: int = field(kw_only=False, default=500)
    short: str | None = field(kw_only=False, default=None)
    desc: str | None = None
    headers: dict[str, str] = field(default_factory=dict)  # type:ignore

    def default_headers(self) -> dict[str, str]: return {}
    def all_headers(self): return self.default_headers() | self.headers
    def has_cause(self): return self.__cause__ is not None

    def exc_info(self):
        """Get the exception info tuple if this error was raised from an exception."""
        if self.has_cause():
            return (type(self.__cause__), self.__cause__, self.__traceback__)
        return (type(self), self, self.__traceback__)

    def causes(self):
        cause = self.__cause__
        seen = []  # circular reference prevention
        while cause:
            if cause in seen:
                break
            yield cause
            seen.append(cause)
            cause = cause.__cause__

    @classmethod
    @contextlib.contextmanager
    def wrap_exceptions(cls, *args, **kwargs):
        try:
            yield
        except HttpError as ex:
            raise ex
        except Exception as ex:
            raise cls(*args, **kwargs) from ex


@dataclass(kw_only=True)
class MethodNotAllowed(HttpError):
    code: int = field(kw_only=False, default=405)
    allow: tuple[str,...] = field(default_factory=tuple)

    def default_headers(self):
        return {"Allow": ",".join(self.allow)}


@dataclass(kw_only=True)
class BadRequest(HttpError):
    code: int = field(kw_only=False, default=400)


# Binder faults. The short text is what the client sees.
@dataclass(kw_only=True)
class BodyReadError(BadRequest):
    short: str | None = field(kw_only=False, default="reading body")


@dataclass(kw_only=True)
class BodyDecodeError(BadRequest):
    short: str | None = field(kw_only=False, default="decoding json")


@dataclass(kw_only=True)
class FormParseError(BadRequest):
    short: str | None = field(kw_only=False, default="parse form")


@dataclass
class RouteMatch:
    route: t.Any  # app.Route; kept loose so core has no app import
    match: re.Match[str]


@dataclass
class Request:
    environ: wsgiref.types.WSGIEnvironment
    path: str
    method: str
    headers: Headers
    route_match: RouteMatch | None = None
    http_errors: tuple[HttpError, ...] = field(default_factory=tuple)
    context: dict[t.Hashable, t.Any] = field(default_factory=dict)

    @classmethod
    def from_wsgi(cls, environ: wsgiref.types.WSGIEnvironment):
        hlist = [(k[5:].replace("_", "-").title(), v)
                 for k, v in environ.items() if k.startswith("HTTP_")]
        hlist.extend((name, str(environ[k])) for k, name in _CGI_HEADERS.items()
                     if environ.get(k) not in (None, ''))
        return cls(environ, environ['PATH_INFO'], environ['REQUEST_METHOD'],
                   Headers(hlist))

    def with_route(self, route_match: RouteMatch) -> t.Self:
        request = copy.copy(self)
        request.route_match = route_match
        return request

    def with_error(self, http_error: HttpError) -> t.Self:
        request = copy.copy(self)
        request.http_errors = (http_error, *self.http_errors)
        return request

    def with_value(self, key: t.Hashable, value: t.Any) -> t.Self:
        """Copy of this request with one more context entry."""
        request = copy.copy(self)
        request.context = self.context | {key: value}
        return request

    def value(self, key: t.Hashable, default: t.Any = None) -> t.Any:
        return self.context.get(key, default)

    @property
    def query_string(self) -> str:
        return self.environ.get("QUERY_STRING", "")

    @property
    def query_vars(self) -> dict[str, str]:
        return dict(urllib.parse.parse_qsl(self.query_string))

    @property
    def query_values(self) -> dict[str, list[str]]:
        """Every query parameter with all of its values, blanks included."""
        return urllib.parse.parse_qs(self.query_string, keep_blank_values=True)

    @property
    def route_vars(self) -> dict[str, str]:
        if self.route_match is None:
            return {}
        return self.route_match.match.groupdict()

    @property
    def vars(self):
        return self.query_vars | self.route_vars

    @property
    def content_type(self) -> str:
        """The raw Content-Type header; parameters are not split off."""
        return self.headers.get('Content-Type', '')

    def body_bytes(self) -> bytes:
        fp = self.environ.get('wsgi.input')
        length = self.environ.get('CONTENT_LENGTH') or 0
        if fp is None or not int(length):
            return b''
        return fp.read(int(length))

    def post_form(self) -> dict[str, list[str]]:
        return util.parse_form(self.body_bytes())


@dataclass(kw_only=True)
class Response:
    """Buffered WSGI response; the default ResponseWriter."""
    code: int = 200
    h: InitVar[_AnyHeaders | None] = None
    headers: Headers = field(init=False, default=None)  # type:ignore
    http_error: HttpError | None = None

    def __post_init__(self, h: _AnyHeaders | None):
        self.headers = Headers(
            list(h.items()) if isinstance(h, dict) or isinstance(h, Headers)
            else h
        )
        self._chunks: list[bytes] = []
        self._committed = False
        if self.http_error and self.http_error.code:
            self.code = self.http_error.code

    def set_status(self, code: int) -> None:
        """First status wins; later calls are ignored."""
        if not self._committed:
            self.code = code
            self._committed = True

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def write(self, data: bytes) -> int:
        self._committed = True
        self._chunks.append(bytes(data))
        return len(data)

    @property
    def body(self) -> bytes:
        return b''.join(self._chunks)

    def _http_status(self) -> str:
        """Get the HTTP status text for the current response code."""
        try:
            return http.HTTPStatus(self.code).phrase
        except ValueError:
            return "StatusPhraseUnknown"

    def _wsgi_start_response_args(self):
        """Get the args that will go to WSGI's start_response()."""
        status_line = f"{self.code} {self._http_status()}"
        if self.http_error and self.http_error.has_cause():
            return (status_line, self.headers.items(), self.http_error.exc_info())
        return (status_line, self.headers.items(), None)

    def _wsgi_finalize(self):
        """Set headers that cannonically apply to this response."""
        if self.http_error:
            for k, v in self.http_error.all_headers().items():
                self.headers.setdefault(k, v)
        self.headers.setdefault('Content-Length', str(len(self.body)))

    def _wsgi_response(self) -> t.Iterable[bytes]:
        return (self.body,) if self._chunks else ()


def write_error(w: ResponseWriter, message: str, code: int) -> None:
    """Reply with a plain-text error body."""
    w.set_header('Content-Type', 'text/plain; charset=utf-8')
    w.set_header('X-Content-Type-Options', 'nosniff')
    w.set_status(code)
    write_all(w, message.encode('utf-8'))


def write_all(w: ResponseWriter, data: bytes) -> None:
    """Write all of data, even if the writer accepts it in pieces."""
    view = memoryview(data)
    while view:
        n = w.write(view.tobytes())
        if n <= 0:
            raise OSError(f"short write: {len(view)} bytes left")
        view = view[n:]


@dataclass
class HandlerFunc:
    """Adapts a plain (w, request) function into a Handler."""
    fn: HandlerFn

    def serve_http(self, w: ResponseWriter, request: Request) -> None:
        self.fn(w, request)
