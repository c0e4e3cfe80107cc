from dataclasses import dataclass
import logging
import typing as t

import pytest

import tinypoly
from tinypoly import plan as plan_mod, tagged
from tinypoly.plan import PassThrough, PathTarget, Slot


@dataclass
class Form:
    name: str = tagged("", form="name")


@dataclass
class Query:
    q: str = tagged("", query="q")


@dataclass
class Path:
    id: str = tagged("", path="id")
    kind: str = tagged("", path="kind")


@dataclass
class Plain:
    value: int = 0


MAPPERS = dict(form_mapper=tinypoly.DEFAULT_FORM_MAPPER,
               path_mapper=tinypoly.DEFAULT_PATH_MAPPER,
               query_mapper=tinypoly.DEFAULT_QUERY_MAPPER)


def analyze(fn):
    return tinypoly.analyze(fn, **MAPPERS)


def test_targets_by_source():
    def fn(f: Form, q: Query, p: Path | None, plain: Plain, n: int):
        pass
    plan = analyze(fn)
    assert plan.form_targets == (0,)
    assert plan.query_targets == (1,)
    assert plan.path_targets == (PathTarget(2, ("id", "kind")),)
    assert plan.json_targets == (0, 1, 2, 3)
    assert plan.pass_through == ()
    assert plan.targeted == frozenset({0, 1, 2, 3})


def test_disabled_mappers_target_nothing_but_json():
    def fn(f: Form, q: Query, p: Path):
        pass
    plan = tinypoly.analyze(fn)
    assert (plan.form_targets, plan.query_targets, plan.path_targets) == ((), (), ())
    assert plan.json_targets == (0, 1, 2)


def test_pass_through_only():
    def fn(request: tinypoly.Request, w: tinypoly.ResponseWriter, r: tinypoly.Response):
        pass
    plan = analyze(fn)
    assert plan.pass_through == (PassThrough(0, Slot.REQUEST),
                                 PassThrough(1, Slot.RESPONSE),
                                 PassThrough(2, Slot.RESPONSE))
    assert plan.targeted == frozenset()
    assert plan.json_targets == ()


def test_analysis_is_deterministic():
    def fn(f: Form, q: Query) -> tuple[str, Exception]:
        pass
    assert analyze(fn) == analyze(fn)


@pytest.mark.parametrize("annotation,returns,payload,errors,dynamic", [
    (None, (), False, (), False),
    (str, (str,), True, (), False),
    (dict[str, int], (dict[str, int],), True, (), False),
    (Plain, (Plain,), True, (), False),
    (Exception, (Exception,), False, (0,), False),
    (tuple[str, Exception], (str, Exception), True, (1,), False),
    (tuple[Exception, str], (Exception, str), False, (0,), False),
    (tuple[str, ValueError, Exception | None], (str, ValueError, Exception | None),
     True, (1, 2), False),
    (tuple[int, ...], (tuple[int, ...],), True, (), False),
    (bytes, (bytes,), False, (), False),
    (t.Iterator[str], (t.Iterator[str],), False, (), False),
])
def test_return_shapes(annotation, returns, payload, errors, dynamic):
    def fn():
        pass
    fn.__annotations__ = {"return": annotation}
    plan = analyze(fn)
    assert plan.returns == returns
    assert plan.has_payload_return is payload
    assert plan.error_indices == errors
    assert plan.dynamic_return is dynamic


def test_unannotated_return_is_dynamic():
    plan = analyze(lambda: None)
    assert plan.dynamic_return
    assert plan.returns == ()


def test_unwritable_return_warns(caplog):
    def fn() -> bytes:
        pass
    with caplog.at_level(logging.WARNING, logger="tinypoly.plan"):
        analyze(fn)
    assert "never written" in caplog.text


def test_not_callable():
    with pytest.raises(TypeError):
        analyze(42)


def test_new_args_are_fresh():
    def fn(f: Form, n: int, s: str = "dflt", *rest, k: Plain, **kw):
        pass
    plan = analyze(fn)
    request = tinypoly.Request.from_wsgi({"PATH_INFO": "/", "REQUEST_METHOD": "GET"})
    w = tinypoly.Response()
    first = plan.new_args(w, request)
    second = plan.new_args(w, request)
    assert first[:3] == [Form(), 0, "dflt"]
    assert first[4] == Plain()
    assert first[0] is not second[0]


def test_call_passes_keyword_only():
    def fn(a: int, *rest, k: str = "", **kw):
        return a, rest, k, kw
    plan = analyze(fn)
    assert plan.call(fn, [1, (), "x", {}]) == (1, (), "x", {})


def test_defaults_kept_for_untargeted():
    def fn(n: int = 7, f: Form = Form("preset")):
        pass
    plan = analyze(fn)
    args = plan.new_args(tinypoly.Response(), None)
    assert args[0] == 7
    assert args[1] == Form()


@pytest.mark.parametrize("fn,want", [
    (lambda: None, False),
    ("shape", True),
    ("reversed", False),
    ("extra", False),
])
def test_handler_shape(fn, want):
    def shape(w: tinypoly.ResponseWriter, request: tinypoly.Request):
        pass

    def reversed_(request: tinypoly.Request, w: tinypoly.ResponseWriter):
        pass

    def extra(w: tinypoly.ResponseWriter, request: tinypoly.Request, n: int):
        pass

    fn = {"shape": shape, "reversed": reversed_, "extra": extra}.get(fn, fn)
    assert plan_mod.is_handler_shape(fn) is want


def test_request_subclass_is_pass_through():
    class MyRequest(tinypoly.Request):
        pass
    assert plan_mod.pass_through_slot(MyRequest) is Slot.REQUEST
    assert plan_mod.pass_through_slot(t.Annotated[tinypoly.Request, "x"]) is Slot.REQUEST
    assert plan_mod.pass_through_slot(int) is None
    assert plan_mod.pass_through_slot(list[int]) is None
