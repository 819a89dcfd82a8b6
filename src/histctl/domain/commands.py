"""Commands and the command-type registry.

A :class:`Command` is pure data: ``{id, type, payload}``. Behaviour lives
in a :class:`CommandType` looked up by ``type`` in a
:class:`CommandRegistry`, which keeps concrete commands out of an
inheritance tree and lets plugins add new types at setup time.

INVARIANT: ``execute`` validates fully before it mutates. A failed
validation leaves the receiver untouched, and an ``apply`` that raises
anyway is rolled back from the memento taken just before it ran.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    Field,
    JsonValue,
    ValidationError,
    field_serializer,
    field_validator,
)

from histctl.domain.errors import InvalidPayload, MementoMismatch, UnknownCommandType
from histctl.domain.memento import Memento


def _freeze(value: Any) -> Any:
    """Read-only deep copy of a JSON value: mappings become proxies, lists tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Plain ``dict``/``list`` deep copy of a possibly frozen JSON value."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return value


class Command(BaseModel):
    """Immutable, serializable description of an action.

    The payload is deep-copied on construction and stored read-only, so a
    command redone later applies exactly what was submitted.
    """

    model_config = {"frozen": True}

    id: UUID = Field(default_factory=uuid4)
    type: str = Field(min_length=1)
    payload: Mapping[str, JsonValue] = Field(default_factory=dict, validate_default=True)

    @field_validator("payload", mode="before")
    @classmethod
    def _thaw_input(cls, value: Any) -> Any:
        return thaw(value) if isinstance(value, Mapping) else value

    @field_validator("payload", mode="after")
    @classmethod
    def _freeze_payload(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze(value)

    @field_serializer("payload")
    def _dump_payload(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return thaw(payload)

    def payload_dict(self) -> dict[str, Any]:
        """Mutable deep copy of the payload."""
        return thaw(self.payload)


@dataclass(frozen=True)
class CommandType:
    """Registry entry describing how a command type executes and reverts.

    Attributes:
        name: Value matched against ``Command.type``.
        apply: ``apply(receiver, payload)`` performs the mutation.
        receiver_type: Receiver class (or tuple of classes) the type targets.
        payload_model: Optional pydantic model the payload is parsed into
            before anything else runs.
        validate: Optional ``validate(receiver, payload)`` for checks that
            depend on receiver state. Must raise :class:`InvalidPayload`.
        revert: Optional ``revert(receiver, memento)``. Defaults to
            ``receiver.restore(memento.state)``.
        description: One-line help text.
    """

    name: str
    apply: Callable[[Any, Any], None]
    receiver_type: type | tuple[type, ...] = object
    payload_model: type[BaseModel] | None = None
    validate: Callable[[Any, Any], None] | None = None
    revert: Callable[[Any, Memento], None] | None = None
    description: str = ""

    def accepts(self, receiver: Any) -> bool:
        """Whether *receiver* is something this type can mutate."""
        return isinstance(receiver, self.receiver_type)

    def parse_payload(self, payload: dict[str, Any]) -> Any:
        """Validate *payload* against ``payload_model`` (identity without one)."""
        if self.payload_model is None:
            return payload
        try:
            return self.payload_model.model_validate(payload)
        except ValidationError as exc:
            errors = [
                {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
                for err in exc.errors()
            ]
            msg = f"Invalid payload for {self.name!r}: {errors[0]['msg']}"
            raise InvalidPayload(msg, detail={"type": self.name, "errors": errors}) from exc


class CommandRegistry:
    """Maps command type names to :class:`CommandType` entries.

    Registries are explicit objects handed to the invoker and the receiver
    handler; there is no process-wide registry.
    """

    def __init__(self, command_types: Iterable[CommandType] = ()) -> None:
        self._types: dict[str, CommandType] = {}
        for command_type in command_types:
            self.register(command_type)

    def register(self, command_type: CommandType, *, replace: bool = False) -> None:
        """Add *command_type*. Duplicate names raise unless *replace* is set."""
        name = command_type.name.strip()
        if not name:
            msg = "Command type name must not be empty"
            raise ValueError(msg)
        if name != command_type.name:
            msg = f"Command type name {command_type.name!r} has surrounding whitespace"
            raise ValueError(msg)

        existing = self._types.get(name)
        if existing is not None and existing is not command_type and not replace:
            msg = f"Command type {name!r} is already registered"
            raise ValueError(msg)
        self._types[name] = command_type

    def resolve(self, name: str) -> CommandType:
        """Return the entry for *name*.

        Raises:
            UnknownCommandType: If nothing is registered under *name*.
        """
        try:
            return self._types[name]
        except KeyError:
            msg = f"Unknown command type: {name!r}"
            raise UnknownCommandType(msg, detail={"type": name}) from None

    def names(self) -> list[str]:
        return sorted(self._types)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[CommandType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def validate(self, command: Command, receiver: Any | None = None) -> Any:
        """Run every check ``execute`` would run, without mutating.

        Receiver-specific checks only run when *receiver* is given.
        Returns the parsed payload.
        """
        command_type = self.resolve(command.type)
        data = command_type.parse_payload(command.payload_dict())
        if receiver is not None:
            if not command_type.accepts(receiver):
                msg = (
                    f"Command {command.type!r} cannot be applied to "
                    f"{type(receiver).__name__}"
                )
                raise InvalidPayload(msg, detail={"type": command.type})
            if command_type.validate is not None:
                command_type.validate(receiver, data)
        return data

    def execute(self, command: Command, receiver: Any) -> Memento:
        """Validate, snapshot, then apply *command* to *receiver*.

        Returns the memento holding the pre-execution state.
        """
        command_type = self.resolve(command.type)
        data = self.validate(command, receiver)

        memento = Memento(command_id=command.id, state=receiver.snapshot())
        try:
            command_type.apply(receiver, data)
        except Exception:
            receiver.restore(memento.state)
            raise
        return memento

    def undo(self, command: Command, receiver: Any, memento: Memento) -> None:
        """Restore *receiver* to the state captured in *memento*."""
        if memento.command_id != command.id:
            msg = f"Memento for {memento.command_id} cannot undo command {command.id}"
            raise MementoMismatch(
                msg,
                detail={"command_id": str(command.id), "memento_id": str(memento.command_id)},
            )

        command_type = self.resolve(command.type)
        if command_type.revert is not None:
            command_type.revert(receiver, memento)
        else:
            receiver.restore(memento.state)


def create_command(
    command_type: str,
    payload: dict[str, Any] | None = None,
    *,
    registry: CommandRegistry | None = None,
) -> Command:
    """Build a new :class:`Command` with a fresh id.

    When *registry* is given, unknown types are rejected up front.
    """
    if registry is not None:
        registry.resolve(command_type)
    return Command(type=command_type, payload=payload or {})
