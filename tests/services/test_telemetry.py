"""Tests for telemetry primitives: Span, trace_span, @traced."""

from __future__ import annotations

import threading
import time

import pytest

from histctl.domain.errors import EmptyHistory
from histctl.infrastructure.workspace import Workspace
from histctl.services.engine import EngineService
from histctl.services.result import ServiceError, ServiceResult
from histctl.services.telemetry import (
    Span,
    _current_span,
    enable_telemetry,
    get_current_span,
    trace_span,
    traced,
)

# ── Span ─────────────────────────────────────────────────────────────


class TestSpan:
    def test_duration_before_end_is_zero(self) -> None:
        assert Span(name="test").duration_ms == 0.0

    def test_duration_after_end(self) -> None:
        span = Span(name="test")
        time.sleep(0.005)
        span.end()
        assert span.duration_ms > 0

    def test_to_dict_minimal(self) -> None:
        span = Span(name="root")
        span.end()
        d = span.to_dict()
        assert d["name"] == "root"
        assert "duration_ms" in d
        assert "children" not in d
        assert "annotations" not in d

    def test_to_dict_with_children(self) -> None:
        root = Span(name="root")
        child = Span(name="child", parent=root)
        root.children.append(child)
        child.end()
        root.end()
        assert [c["name"] for c in root.to_dict()["children"]] == ["child"]

    def test_annotate(self) -> None:
        span = Span(name="test")
        span.annotate("pending", True)
        span.end()
        assert span.to_dict()["annotations"] == {"pending": True}


# ── trace_span ───────────────────────────────────────────────────────


class TestTraceSpan:
    def test_disabled_yields_none(self) -> None:
        with trace_span("test") as span:
            assert span is None

    def test_no_root_yields_none(self) -> None:
        enable_telemetry()
        with trace_span("test") as span:
            assert span is None

    def test_nested_spans(self) -> None:
        enable_telemetry()
        root = Span(name="root")
        token = _current_span.set(root)
        try:
            with trace_span("a"):
                with trace_span("b") as inner:
                    assert inner is not None
            assert root.children[0].name == "a"
            assert root.children[0].children[0].name == "b"
            assert root.children[0].end_time is not None
        finally:
            _current_span.reset(token)


    def test_exception_annotated(self) -> None:
        enable_telemetry()
        root = Span(name="root")
        token = _current_span.set(root)
        try:
            with pytest.raises(EmptyHistory), trace_span("revert"):
                raise EmptyHistory("Nothing to undo")
            with pytest.raises(KeyError), trace_span("load"):
                raise KeyError("x")
        finally:
            _current_span.reset(token)
        assert [c.annotations for c in root.children] == [
            {"error": "EMPTY_HISTORY"},
            {"error": "KeyError"},
        ]
        assert all(c.end_time is not None for c in root.children)

    def test_child_registration_is_thread_safe(self) -> None:
        root = Span(name="root")
        threads = [threading.Thread(target=root.child, args=(f"s{n}",)) for n in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(root.to_dict()["children"]) == 20


# ── @traced ──────────────────────────────────────────────────────────


class TestTracedDecorator:
    def test_noop_when_disabled(self) -> None:
        @traced
        def op() -> ServiceResult:
            return ServiceResult(ok=True, op="test")

        assert op().meta is None

    def test_injects_meta_when_enabled(self) -> None:
        @traced
        def op() -> ServiceResult:
            with trace_span("stage_a"):
                pass
            return ServiceResult(ok=True, op="test", meta={"existing": 1})

        enable_telemetry()
        result = op()
        assert result.meta is not None
        assert result.meta["existing"] == 1
        tree = result.meta["telemetry"]
        assert tree["name"].endswith("op")
        assert tree["duration_ms"] >= 0
        assert [c["name"] for c in tree["children"]] == ["stage_a"]

    def test_nested_traced_becomes_child(self) -> None:
        @traced
        def inner() -> ServiceResult:
            return ServiceResult(ok=True, op="inner")

        @traced
        def outer() -> ServiceResult:
            assert inner().meta is None
            return ServiceResult(ok=True, op="outer")

        enable_telemetry()
        tree = outer().meta["telemetry"]  # type: ignore[index]
        assert tree["children"][0]["name"].endswith("inner")

    def test_error_result_gets_telemetry(self) -> None:
        @traced
        def op() -> ServiceResult:
            return ServiceResult(
                ok=False, op="test", error=ServiceError(code="UNHANDLED", message="nope")
            )

        enable_telemetry()
        result = op()
        assert not result.ok
        assert "telemetry" in result.meta  # type: ignore[operator]
        assert result.meta["telemetry"]["annotations"] == {"error": "UNHANDLED"}  # type: ignore[index]

    def test_exception_propagates(self) -> None:
        @traced
        def op() -> ServiceResult:
            msg = "boom"
            raise ValueError(msg)

        enable_telemetry()
        with pytest.raises(ValueError, match="boom"):
            op()
        assert _current_span.get() is None

    def test_non_service_result_passthrough(self) -> None:
        @traced
        def op() -> str:
            return "hello"

        enable_telemetry()
        assert op() == "hello"


class TestGetCurrentSpan:
    def test_returns_none_when_disabled(self) -> None:
        assert get_current_span() is None

    def test_returns_span_when_enabled(self) -> None:
        enable_telemetry()
        root = Span(name="root")
        token = _current_span.set(root)
        try:
            assert get_current_span() is root
        finally:
            _current_span.reset(token)


# ── Spans in real services ───────────────────────────────────────────


class TestSpansInServices:
    def test_engine_execute_tree(self, workspace: Workspace) -> None:
        enable_telemetry()
        result = EngineService(workspace).execute("deposit", {"amount": 5})
        assert result.ok
        tree = result.meta["telemetry"]  # type: ignore[index]
        assert tree["name"] == "EngineService.execute"
        names = [c["name"] for c in tree["children"]]
        assert names == ["Invoker.execute", "persist"]
        invoker_children = [c["name"] for c in tree["children"][0]["children"]]
        assert invoker_children == ["validate", "dispatch", "commit"]

    def test_undo_has_revert_span(self, workspace: Workspace) -> None:
        service = EngineService(workspace)
        service.execute("deposit", {"amount": 5})
        enable_telemetry()
        tree = service.undo().meta["telemetry"]  # type: ignore[index]
        assert tree["children"][0]["children"][0]["name"] == "revert"
