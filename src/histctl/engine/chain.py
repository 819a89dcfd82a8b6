"""Chain-of-responsibility dispatch.

Handlers form a singly-linked list. Each handler either consumes a request
(``can_handle`` returns True, ``handle`` runs) or lets it pass unchanged to
``next``. The first matching handler in chain order wins. A request that
falls off the end yields the :data:`UNHANDLED` sentinel, which is a normal
outcome and not an error.

Chains are assembled once at configuration time, either fluently::

    auth.set_next(data).set_next(fallback)
    chain = HandlerChain(auth)

or with :meth:`HandlerChain.build`. Wrapping the head in a
:class:`HandlerChain` freezes every linked handler; ``set_next`` then
raises :class:`~histctl.domain.errors.ChainFrozen`.
"""

from __future__ import annotations

import contextvars
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from concurrent.futures import Executor
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Final

from histctl.domain.errors import ChainFrozen, HandlerFailed

if TYPE_CHECKING:
    from histctl.domain.commands import Command, CommandRegistry

logger = logging.getLogger(__name__)


class _Unhandled(Enum):
    UNHANDLED = "unhandled"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNHANDLED"


UNHANDLED: Final = _Unhandled.UNHANDLED
"""Returned when no handler in the chain accepted the request."""


@dataclass(frozen=True)
class Request:
    """A unit of work travelling down the chain. Never modified in transit."""

    type: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    command: Command | None = None
    receiver: Any = None
    context: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def for_command(cls, command: Command, receiver: Any, **context: Any) -> Request:
        """Wrap a command and its receiver as a request."""
        return cls(
            type=command.type,
            payload=command.payload,
            command=command,
            receiver=receiver,
            context=context,
        )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class Handler:
    """Base handler. Subclasses implement ``can_handle`` and ``handle``.

    ``can_handle`` must be free of side effects: it runs for every request
    that reaches the handler, matched or not.
    """

    def __init__(self, name: str | None = None) -> None:
        self.name = name or type(self).__name__
        self._next: Handler | None = None
        self._frozen = False

    @property
    def next(self) -> Handler | None:
        return self._next

    @property
    def frozen(self) -> bool:
        return self._frozen

    def set_next(self, handler: Handler) -> Handler:
        """Link *handler* after this one and return it for fluent chaining."""
        if self._frozen:
            msg = f"Handler {self.name!r} belongs to a built chain and cannot be relinked"
            raise ChainFrozen(msg, detail={"handler": self.name})
        if handler is self:
            msg = f"Handler {self.name!r} cannot follow itself"
            raise ValueError(msg)
        self._next = handler
        return handler

    def can_handle(self, request: Request) -> bool:
        raise NotImplementedError

    def handle(self, request: Request) -> Any:
        raise NotImplementedError

    def dispatch(self, request: Request) -> Any:
        """Offer *request* to this handler and its successors in order."""
        node: Handler | None = self
        visited: set[int] = set()
        while node is not None:
            if id(node) in visited:
                msg = f"Handler chain loops back to {node.name!r}"
                raise ValueError(msg)
            visited.add(id(node))

            if node.can_handle(request):
                logger.debug("Request %s handled by %s", request.type, node.name)
                return node.handle(request)
            node = node._next

        logger.debug("Request %s unhandled", request.type)
        return UNHANDLED

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class TypeHandler(Handler):
    """Consumes requests whose ``type`` is one of *types*."""

    def __init__(
        self,
        types: str | Iterable[str],
        fn: Callable[[Request], Any],
        *,
        name: str | None = None,
    ) -> None:
        super().__init__(name)
        self.types = frozenset([types] if isinstance(types, str) else types)
        self._fn = fn

    def can_handle(self, request: Request) -> bool:
        return request.type in self.types

    def handle(self, request: Request) -> Any:
        return self._fn(request)


class PredicateHandler(Handler):
    """Consumes requests for which *predicate* returns True."""

    def __init__(
        self,
        predicate: Callable[[Request], bool],
        fn: Callable[[Request], Any],
        *,
        name: str | None = None,
    ) -> None:
        super().__init__(name)
        self._predicate = predicate
        self._fn = fn

    def can_handle(self, request: Request) -> bool:
        return bool(self._predicate(request))

    def handle(self, request: Request) -> Any:
        return self._fn(request)


class ReceiverHandler(Handler):
    """Terminal handler: executes the command on its receiver.

    Accepts command requests whose type is registered and whose receiver
    matches the type's ``receiver_type``. Returns the memento.
    """

    def __init__(self, registry: CommandRegistry, *, name: str | None = None) -> None:
        super().__init__(name)
        self._registry = registry

    def can_handle(self, request: Request) -> bool:
        command = request.command
        if command is None or command.type not in self._registry:
            return False
        return self._registry.resolve(command.type).accepts(request.receiver)

    def handle(self, request: Request) -> Any:
        if request.command is None:
            msg = f"Request {request.type!r} carries no command to execute"
            raise HandlerFailed(msg, detail={"handler": self.name, "type": request.type})
        return self._registry.execute(request.command, request.receiver)


class OffloadHandler(Handler):
    """Runs *inner*'s ``handle`` on an executor and returns the Future.

    Matching is delegated to *inner* and stays synchronous; only the work
    is deferred. The work runs in a copy of the caller's context, so bound
    log fields follow it onto the worker thread. The invoker awaits the
    Future before committing.
    """

    def __init__(self, inner: Handler, executor: Executor, *, name: str | None = None) -> None:
        super().__init__(name or f"offload:{inner.name}")
        self._inner = inner
        self._executor = executor

    def can_handle(self, request: Request) -> bool:
        return self._inner.can_handle(request)

    def handle(self, request: Request) -> Any:
        context = contextvars.copy_context()
        return self._executor.submit(context.run, self._inner.handle, request)


# ---------------------------------------------------------------------------
# HandlerChain
# ---------------------------------------------------------------------------


class HandlerChain:
    """A frozen handler list with a single entry point."""

    def __init__(self, head: Handler | None = None) -> None:
        self._head = head
        handlers = list(self._walk())
        for handler in handlers:
            handler._frozen = True
        self._handlers: tuple[Handler, ...] = tuple(handlers)

    @classmethod
    def build(cls, *handlers: Handler) -> HandlerChain:
        """Link *handlers* in order and freeze them."""
        if len({id(h) for h in handlers}) != len(handlers):
            msg = "A handler may appear only once in a chain"
            raise ValueError(msg)
        for handler in handlers:
            if handler.frozen:
                msg = f"Handler {handler.name!r} already belongs to a built chain"
                raise ChainFrozen(msg, detail={"handler": handler.name})

        for current, following in zip(handlers, handlers[1:], strict=False):
            current.set_next(following)
        return cls(handlers[0] if handlers else None)

    @property
    def head(self) -> Handler | None:
        return self._head

    def dispatch(self, request: Request) -> Any:
        """Dispatch *request* from the head. Empty chains are always unhandled."""
        if self._head is None:
            return UNHANDLED
        return self._head.dispatch(request)

    def names(self) -> list[str]:
        return [h.name for h in self._handlers]

    def _walk(self) -> Iterator[Handler]:
        node = self._head
        visited: set[int] = set()
        while node is not None:
            if id(node) in visited:
                msg = f"Handler chain loops back to {node.name!r}"
                raise ValueError(msg)
            visited.add(id(node))
            yield node
            node = node.next

    def __iter__(self) -> Iterator[Handler]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)
