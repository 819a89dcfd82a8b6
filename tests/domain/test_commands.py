"""Tests for Command, CommandType and CommandRegistry."""

from __future__ import annotations

from uuid import uuid4

import pytest
from pydantic import BaseModel, ValidationError

from histctl.domain.commands import Command, CommandRegistry, CommandType, create_command
from histctl.domain.errors import ErrorCode, InvalidPayload, MementoMismatch, UnknownCommandType
from histctl.domain.memento import Memento
from histctl.domain.receivers import DEPOSIT, Account, TextBuffer


class _Counter:
    def __init__(self) -> None:
        self.value = 0

    def snapshot(self) -> dict[str, int]:
        return {"value": self.value}

    def restore(self, state: dict[str, int]) -> None:
        self.value = state["value"]


class _StepPayload(BaseModel):
    step: int


def _bump(counter: _Counter, data: _StepPayload) -> None:
    counter.value += data.step


def _explode(counter: _Counter, data: _StepPayload) -> None:
    counter.value += data.step
    raise RuntimeError("half-applied")


BUMP = CommandType(name="bump", apply=_bump, receiver_type=_Counter, payload_model=_StepPayload)


class TestCommand:
    def test_ids_are_unique(self) -> None:
        assert Command(type="bump").id != Command(type="bump").id

    def test_frozen(self) -> None:
        command = Command(type="bump", payload={"step": 1})
        with pytest.raises(ValidationError):
            command.type = "other"  # type: ignore[misc]

    def test_payload_is_read_only(self) -> None:
        command = Command(type="bump", payload={"step": 1, "meta": {"tags": ["a"]}})
        with pytest.raises(TypeError):
            command.payload["step"] = 999  # type: ignore[index]
        with pytest.raises(TypeError):
            command.payload["meta"]["tags"] = []  # type: ignore[index]
        with pytest.raises(AttributeError):
            command.payload["meta"]["tags"].append("b")  # type: ignore[union-attr]
        assert command.payload["step"] == 1

    def test_payload_copied_from_caller(self) -> None:
        source = {"step": 1, "tags": ["a"]}
        command = Command(type="bump", payload=source)
        source["step"] = 2
        source["tags"].append("b")
        assert command.payload_dict() == {"step": 1, "tags": ["a"]}

    def test_payload_dumps_as_plain_json(self) -> None:
        command = Command(type="bump", payload={"meta": {"tags": ["a"]}})
        dumped = command.model_dump(mode="json")["payload"]
        assert dumped == {"meta": {"tags": ["a"]}}
        assert type(dumped["meta"]) is dict
        assert type(dumped["meta"]["tags"]) is list

    def test_payload_dict_is_independent(self) -> None:
        command = Command(type="bump", payload={"step": 1})
        copy = command.payload_dict()
        copy["step"] = 5
        assert command.payload["step"] == 1

    def test_rebuilt_from_frozen_payload(self) -> None:
        original = Command(type="bump", payload={"tags": ["a"]})
        rebuilt = Command(id=original.id, type="bump", payload=original.payload)
        assert rebuilt == original

    def test_empty_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Command(type="")

    def test_json_round_trip(self) -> None:
        command = Command(type="bump", payload={"step": 3, "tags": ["a", "b"]})
        assert Command.model_validate_json(command.model_dump_json()) == command

    def test_create_command_checks_registry(self) -> None:
        registry = CommandRegistry([BUMP])
        command = create_command("bump", {"step": 2}, registry=registry)
        assert command.type == "bump"
        with pytest.raises(UnknownCommandType):
            create_command("nope", registry=registry)

    def test_create_command_without_registry(self) -> None:
        assert create_command("anything").payload == {}


class TestCommandRegistry:
    def test_register_and_resolve(self) -> None:
        registry = CommandRegistry()
        registry.register(BUMP)
        assert registry.resolve("bump") is BUMP
        assert "bump" in registry
        assert len(registry) == 1
        assert registry.names() == ["bump"]

    def test_duplicate_name_rejected(self) -> None:
        registry = CommandRegistry([BUMP])
        other = CommandType(name="bump", apply=_bump)
        with pytest.raises(ValueError, match="already registered"):
            registry.register(other)

    def test_replace_allows_override(self) -> None:
        registry = CommandRegistry([BUMP])
        other = CommandType(name="bump", apply=_bump)
        registry.register(other, replace=True)
        assert registry.resolve("bump") is other

    def test_reregistering_same_entry_is_noop(self) -> None:
        registry = CommandRegistry([BUMP])
        registry.register(BUMP)
        assert len(registry) == 1

    @pytest.mark.parametrize("name", ["", "   ", " bump"])
    def test_bad_names_rejected(self, name: str) -> None:
        with pytest.raises(ValueError):
            CommandRegistry().register(CommandType(name=name, apply=_bump))

    def test_unknown_type(self) -> None:
        with pytest.raises(UnknownCommandType) as exc_info:
            CommandRegistry().resolve("ghost")
        assert exc_info.value.code == ErrorCode.UNKNOWN_COMMAND_TYPE
        assert exc_info.value.detail == {"type": "ghost"}


class TestValidate:
    def test_payload_errors_carry_locations(self) -> None:
        registry = CommandRegistry([BUMP])
        with pytest.raises(InvalidPayload) as exc_info:
            registry.validate(Command(type="bump", payload={"step": "lots"}))
        detail = exc_info.value.detail
        assert detail["type"] == "bump"
        assert detail["errors"][0]["loc"] == ["step"]

    def test_wrong_receiver_rejected(self) -> None:
        registry = CommandRegistry([DEPOSIT])
        command = Command(type="deposit", payload={"amount": 5})
        with pytest.raises(InvalidPayload, match="cannot be applied"):
            registry.validate(command, TextBuffer())

    def test_without_receiver_skips_state_checks(self) -> None:
        registry = CommandRegistry([DEPOSIT])
        data = registry.validate(Command(type="deposit", payload={"amount": 5}))
        assert data.amount == 5


class TestExecuteAndUndo:
    def test_execute_returns_pre_state_memento(self) -> None:
        registry = CommandRegistry([BUMP])
        counter = _Counter()
        command = Command(type="bump", payload={"step": 4})
        memento = registry.execute(command, counter)
        assert counter.value == 4
        assert memento.command_id == command.id
        assert memento.state == {"value": 0}

    def test_invalid_payload_does_not_mutate(self) -> None:
        registry = CommandRegistry([BUMP])
        counter = _Counter()
        with pytest.raises(InvalidPayload):
            registry.execute(Command(type="bump", payload={}), counter)
        assert counter.value == 0

    def test_apply_failure_is_rolled_back(self) -> None:
        explode = CommandType(name="explode", apply=_explode, payload_model=_StepPayload)
        registry = CommandRegistry([explode])
        counter = _Counter()
        with pytest.raises(RuntimeError):
            registry.execute(Command(type="explode", payload={"step": 9}), counter)
        assert counter.value == 0

    def test_undo_restores_state(self) -> None:
        registry = CommandRegistry([DEPOSIT])
        account = Account(10)
        command = Command(type="deposit", payload={"amount": 5})
        memento = registry.execute(command, account)
        registry.undo(command, account, memento)
        assert account.balance == 10

    def test_undo_uses_custom_revert(self) -> None:
        reverted: list[Memento] = []
        command_type = CommandType(
            name="bump",
            apply=_bump,
            payload_model=_StepPayload,
            revert=lambda counter, memento: reverted.append(memento),
        )
        registry = CommandRegistry([command_type])
        counter = _Counter()
        command = Command(type="bump", payload={"step": 1})
        memento = registry.execute(command, counter)
        registry.undo(command, counter, memento)
        assert reverted == [memento]
        assert counter.value == 1

    def test_undo_with_foreign_memento(self) -> None:
        registry = CommandRegistry([DEPOSIT])
        command = Command(type="deposit", payload={"amount": 5})
        foreign = Memento(command_id=uuid4(), state={"balance": 0})
        with pytest.raises(MementoMismatch):
            registry.undo(command, Account(), foreign)
