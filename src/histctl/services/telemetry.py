"""Span tracing for engine operations.

Disabled by default: every entry point costs one ContextVar lookup. With
``--verbose`` each :func:`traced` operation builds a span tree (execute ->
validate / dispatch / commit, EngineService -> Invoker -> persist) and
attaches it to ``ServiceResult.meta["telemetry"]``.

Spans may gain children from worker threads when a handler is offloaded,
so child registration is locked.
"""

from __future__ import annotations

import functools
import threading
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

import structlog

from histctl.services.result import ServiceResult

log = structlog.get_logger("histctl.telemetry")

_verbose_enabled: ContextVar[bool] = ContextVar("_verbose_enabled", default=False)
_current_span: ContextVar[Span | None] = ContextVar("_current_span", default=None)

_children_lock = threading.Lock()


@dataclass
class Span:
    """One timed step of an operation."""

    name: str
    parent: Span | None = None
    children: list[Span] = field(default_factory=list)
    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None
    annotations: dict[str, Any] = field(default_factory=dict)

    def child(self, name: str) -> Span:
        """Start a span nested under this one."""
        span = Span(name=name, parent=self)
        with _children_lock:
            self.children.append(span)
        return span

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time) * 1000

    def end(self) -> None:
        self.end_time = time.perf_counter()

    def annotate(self, key: str, value: Any) -> None:
        self.annotations[key] = value

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "duration_ms": round(self.duration_ms, 2),
        }
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        with _children_lock:
            children = list(self.children)
        if children:
            data["children"] = [c.to_dict() for c in children]
        return data


def _error_label(exc: BaseException) -> str:
    """ErrorCode for engine errors, the class name for anything else."""
    return str(getattr(exc, "code", None) or type(exc).__name__)


@contextmanager
def trace_span(name: str) -> Generator[Span | None]:
    """Time a step of the current traced operation.

    Yields None when telemetry is off or no traced operation is running.
    An exception leaving the block is recorded as the ``error``
    annotation and re-raised.
    """
    if not _verbose_enabled.get():
        yield None
        return

    parent = _current_span.get()
    if parent is None:
        yield None
        return

    span = parent.child(name)
    token = _current_span.set(span)
    try:
        yield span
    except Exception as exc:
        span.annotate("error", _error_label(exc))
        raise
    finally:
        span.end()
        _current_span.reset(token)


_P = ParamSpec("_P")
_R = TypeVar("_R")


def traced(func: Callable[_P, _R]) -> Callable[_P, _R]:  # noqa: UP047
    """Trace *func* as an operation span.

    The outermost traced call returns its ServiceResult with the span tree
    in ``meta["telemetry"]``; nested calls only add a child span. A failed
    result's error code is annotated on its span.
    """

    @functools.wraps(func)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _R:
        if not _verbose_enabled.get():
            return func(*args, **kwargs)

        parent = _current_span.get()
        span = parent.child(func.__qualname__) if parent is not None else Span(func.__qualname__)
        token = _current_span.set(span)
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            span.annotate("error", _error_label(exc))
            raise
        finally:
            span.end()
            _current_span.reset(token)

        if isinstance(result, ServiceResult):
            if result.code is not None:
                span.annotate("error", result.code)
            log.debug(
                "span.finished",
                span_name=span.name,
                duration_ms=round(span.duration_ms, 2),
                ok=result.ok,
            )
            if parent is None:
                meta = {**(result.meta or {}), "telemetry": span.to_dict()}
                result = result.model_copy(update={"meta": meta})  # type: ignore[assignment]
        return result

    return wrapper


def enable_telemetry() -> None:
    """Turn tracing on for the current context (``--verbose``)."""
    _verbose_enabled.set(True)


def disable_telemetry() -> None:
    _verbose_enabled.set(False)


def get_current_span() -> Span | None:
    """The innermost active span, for ad-hoc annotation. None when disabled."""
    if not _verbose_enabled.get():
        return None
    return _current_span.get()
