"""Tests for EngineService: workspace-backed execute, undo and redo."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from histctl.config.settings import HistSettings
from histctl.infrastructure.workspace import Workspace
from histctl.services.engine import EngineService


@pytest.fixture
def open_workspace(workspace_root: Path) -> Generator[Any]:
    """Factory for workspaces on the same root with per-call settings."""
    opened: list[Workspace] = []

    def _open(**sections: Any) -> Workspace:
        sections.setdefault("plugins", {"enabled": False})
        ws = Workspace(HistSettings(workspace_root=workspace_root, **sections))
        opened.append(ws)
        return ws

    yield _open
    for ws in opened:
        ws.close()


@pytest.fixture
def service(workspace: Workspace) -> EngineService:
    return EngineService(workspace)


class TestExecute:
    def test_deposit_persists_state(self, service: EngineService) -> None:
        result = service.execute("deposit", {"amount": 100})
        assert result.ok
        assert result.data["status"] == "applied"
        assert service.state().data["state"] == {"balance": 100}

    def test_failure_does_not_persist(self, service: EngineService) -> None:
        result = service.execute("withdraw", {"amount": 10})
        assert not result.ok
        assert result.code == "INVALID_PAYLOAD"
        state = service.state().data
        assert state["state"] == {"balance": 0}
        assert state["undo_depth"] == 0

    def test_unknown_type(self, service: EngineService) -> None:
        assert service.execute("transfer").code == "UNKNOWN_COMMAND_TYPE"

    def test_malformed_command(self, service: EngineService) -> None:
        result = service.execute("")
        assert result.code == "INVALID_PAYLOAD"
        assert result.data == {"type": ""}

    def test_wrong_receiver_kind(self, service: EngineService) -> None:
        result = service.execute("insert_text", {"position": 0, "text": "x"})
        assert result.code == "UNHANDLED"


class TestPersistenceAcrossInstances:
    def test_scenario_spans_processes(self, open_workspace: Any) -> None:
        EngineService(open_workspace()).execute("deposit", {"amount": 100})
        EngineService(open_workspace()).execute("withdraw", {"amount": 30})
        EngineService(open_workspace()).undo()
        EngineService(open_workspace()).undo()

        service = EngineService(open_workspace())
        assert service.state().data["state"] == {"balance": 0}
        assert service.redo().ok
        assert service.state().data["state"] == {"balance": 100}

        history = EngineService(open_workspace()).history().data
        assert [e["type"] for e in history["undo"]] == ["deposit"]
        assert [e["type"] for e in history["redo"]] == ["withdraw"]

    def test_capacity_applies_on_reload(self, open_workspace: Any) -> None:
        service = EngineService(open_workspace())
        for amount in (1, 2, 3, 4):
            service.execute("deposit", {"amount": amount})

        smaller = open_workspace(history={"capacity": 2})
        history = EngineService(smaller).history().data
        assert history["capacity"] == 2
        assert [e["payload"]["amount"] for e in history["undo"]] == [3, 4]

    def test_discarded_redo_mementos_pruned(self, workspace: Workspace) -> None:
        service = EngineService(workspace)
        first = service.execute("deposit", {"amount": 1})
        service.undo()
        service.execute("deposit", {"amount": 2})

        assert first.data["command_id"] not in workspace.memento_store
        assert len(workspace.memento_store) == 1

    def test_text_receiver(self, open_workspace: Any) -> None:
        ws = open_workspace(workspace={"name": "notes", "receiver": "text"})
        service = EngineService(ws)
        service.execute("insert_text", {"position": 0, "text": "hello"})
        service.execute("insert_text", {"position": 5, "text": " world"})
        service.execute("delete_text", {"position": 0, "length": 6})
        assert service.state().data["state"] == {"text": "world"}
        service.undo()
        assert service.state().data["state"] == {"text": "hello world"}
        assert service.state().data["kind"] == "text"


class TestUndoRedo:
    def test_empty(self, service: EngineService) -> None:
        assert service.undo().code == "EMPTY_HISTORY"
        assert service.redo().code == "EMPTY_HISTORY"

    def test_redo_cleared_by_new_execute(self, service: EngineService) -> None:
        service.execute("deposit", {"amount": 5})
        service.undo()
        service.execute("deposit", {"amount": 7})
        assert service.redo().code == "EMPTY_HISTORY"
        assert service.state().data["state"] == {"balance": 7}


class TestChainOptions:
    def test_read_only_leaves_everything_unhandled(self, open_workspace: Any) -> None:
        service = EngineService(open_workspace(chain={"read_only": True}))
        result = service.execute("deposit", {"amount": 5})
        assert result.code == "UNHANDLED"
        assert service.state().data["state"] == {"balance": 0}

    def test_offloaded_execution(self, open_workspace: Any) -> None:
        service = EngineService(open_workspace(chain={"offload": True, "max_workers": 1}))
        assert service.execute("deposit", {"amount": 5}).ok
        assert service.state().data["state"] == {"balance": 5}


class TestReadOperations:
    def test_history_with_log(self, service: EngineService) -> None:
        service.execute("deposit", {"amount": 5})
        service.execute("withdraw", {"amount": 50})
        service.undo()

        data = service.history(log_limit=10).data
        assert [row["op"] for row in data["log"]] == ["undo", "execute", "execute"]
        assert data["log"][1]["ok"] is False
        assert data["log"][1]["error_code"] == "INVALID_PAYLOAD"
        assert data["undo_depth"] == 0
        assert data["redo_depth"] == 1

    def test_history_without_log(self, service: EngineService) -> None:
        assert "log" not in service.history().data

    def test_state(self, service: EngineService) -> None:
        data = service.state().data
        assert data == {
            "name": "default",
            "kind": "account",
            "state": {"balance": 0},
            "undo_depth": 0,
            "redo_depth": 0,
        }

    def test_types(self, service: EngineService) -> None:
        data = service.types().data
        names = [t["name"] for t in data["types"]]
        assert data["count"] == 5
        assert "deposit" in names
        deposit = next(t for t in data["types"] if t["name"] == "deposit")
        assert deposit["receiver"] == "Account"
        assert deposit["fields"] == ["amount"]
