"""Path parameter providers.

A provider answers "what is the value of path parameter `key` for this
request?", returning "" when there is none.
"""
from dataclasses import dataclass
import typing as t

from .core import Handler, Request, ResponseWriter


@t.runtime_checkable
class PathParamProvider(t.Protocol):
    def path_param(self, request: Request, key: str) -> str: ...


@dataclass(frozen=True)
class PathParamFunc:
    """Lets a plain (request, key) function act as a PathParamProvider."""
    fn: t.Callable[[Request, str], str]

    def path_param(self, request: Request, key: str) -> str:
        return self.fn(request, key)


@dataclass(frozen=True)
class RouteParams:
    """Path parameters are the named groups of the matched route.

    With a route like "/users/<Name>/<Age:\\d+>", keys are Name and Age.
    """

    def path_param(self, request: Request, key: str) -> str:
        return request.route_vars.get(key) or ""


_KVP_CONTEXT_KEY = "tinypoly.params.kvp"


@dataclass(frozen=True)
class KeyValueParams:
    """Treats the URL path as alternating keys and values.

        /Size/Large/Color/Blue  ->  {"Size": "Large", "Color": "Blue"}

    Install `middleware` in front of the handler; it parses the path once per
    request and `path_param` reads from that result.
    """

    @staticmethod
    def parse_path(path: str) -> dict[str, str]:
        parts = [p for p in path.split("/") if p]
        values = {}
        for i in range(0, len(parts), 2):
            values[parts[i]] = parts[i + 1] if i + 1 < len(parts) else ""
        return values

    def middleware(self, next_handler: Handler) -> Handler:
        return _KeyValueMiddleware(self, next_handler)

    def path_param(self, request: Request, key: str) -> str:
        return request.value(_KVP_CONTEXT_KEY, {}).get(key, "")


@dataclass(frozen=True)
class _KeyValueMiddleware:
    params: KeyValueParams
    next_handler: Handler

    def serve_http(self, w: ResponseWriter, request: Request) -> None:
        values = self.params.parse_path(request.path)
        self.next_handler.serve_http(w, request.with_value(_KVP_CONTEXT_KEY, values))
