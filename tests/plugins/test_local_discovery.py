"""Tests for local directory plugin discovery in PluginManager."""

from __future__ import annotations

import sys
from pathlib import Path

from histctl.config.settings import HistSettings
from histctl.infrastructure.workspace import Workspace
from histctl.plugins.hookspecs import hookimpl
from histctl.plugins.manager import PluginManager
from histctl.services.engine import EngineService

# -- Plugin source code used in tests ------------------------------------------

_RECORDING_PLUGIN_SRC = """\
import pluggy

hookimpl = pluggy.HookimplMarker("histctl")

calls: list[dict] = []


class UndoRecorder:
    \"\"\"Captures post_undo calls for verification.\"\"\"

    @hookimpl
    def post_undo(self, command_id: str, command_type: str) -> None:
        calls.append({"command_id": command_id, "command_type": command_type})
"""

_COMMAND_TYPE_PLUGIN_SRC = """\
import pluggy
from pydantic import BaseModel

from histctl.domain.commands import CommandType
from histctl.domain.receivers import Account

hookimpl = pluggy.HookimplMarker("histctl")


class Rate(BaseModel):
    percent: int


def _accrue(account: Account, data: Rate) -> None:
    account.balance += account.balance * data.percent // 100


class InterestPlugin:
    @hookimpl
    def register_command_types(self) -> list[CommandType]:
        return [
            CommandType(
                name="interest",
                apply=_accrue,
                receiver_type=Account,
                payload_model=Rate,
                description="Add interest to the balance.",
            )
        ]
"""

_SYNTAX_ERROR_SRC = """\
def broken(
    # missing closing paren and colon
"""

_NO_HOOKS_SRC = """\
class PlainClass:
    def hello(self) -> str:
        return "world"
"""


class TestLocalDiscovery:
    def test_discovers_local_plugin(self, tmp_path: Path) -> None:
        (tmp_path / "recorder.py").write_text(_RECORDING_PLUGIN_SRC, encoding="utf-8")

        pm = PluginManager()
        names = pm.discover_and_load(local_dir=tmp_path)
        assert "histctl_local_plugin_recorder.UndoRecorder" in names

    def test_local_plugin_hooks_fire(self, tmp_path: Path) -> None:
        (tmp_path / "undohook.py").write_text(_RECORDING_PLUGIN_SRC, encoding="utf-8")

        pm = PluginManager()
        pm._discover_local(tmp_path)
        pm.hook.post_undo(command_id="c1", command_type="deposit")

        mod = sys.modules["histctl_local_plugin_undohook"]
        assert mod.calls == [{"command_id": "c1", "command_type": "deposit"}]  # type: ignore[attr-defined]

    def test_skips_bad_plugin_gracefully(self, tmp_path: Path) -> None:
        (tmp_path / "broken.py").write_text(_SYNTAX_ERROR_SRC, encoding="utf-8")
        names = PluginManager().discover_and_load(local_dir=tmp_path)
        assert all("broken" not in n for n in names)
        assert "histctl_local_plugin_broken" not in sys.modules

    def test_nonexistent_dir_is_noop(self, tmp_path: Path) -> None:
        pm = PluginManager()
        pm.discover_and_load(local_dir=tmp_path / "does_not_exist")
        assert pm.is_loaded

    def test_skips_underscore_prefixed_files(self, tmp_path: Path) -> None:
        (tmp_path / "_helpers.py").write_text(_RECORDING_PLUGIN_SRC, encoding="utf-8")
        names = PluginManager().discover_and_load(local_dir=tmp_path)
        assert all("_helpers" not in n for n in names)

    def test_skips_classes_without_hookimpls(self, tmp_path: Path) -> None:
        (tmp_path / "plain.py").write_text(_NO_HOOKS_SRC, encoding="utf-8")
        names = PluginManager().discover_and_load(local_dir=tmp_path)
        assert all("plain" not in n for n in names)

    def test_has_hook_impls(self) -> None:
        class _WithHook:
            @hookimpl
            def post_evict(self, command_ids: list[str]) -> None:
                pass

        class _NoHook:
            def post_evict(self) -> None:
                pass

        assert PluginManager._has_hook_impls(_WithHook) is True
        assert PluginManager._has_hook_impls(_NoHook) is False


class TestWorkspacePlugins:
    def test_local_command_type_is_executable(self, tmp_path: Path) -> None:
        plugins_dir = tmp_path / ".histctl" / "plugins"
        plugins_dir.mkdir(parents=True)
        (plugins_dir / "interest.py").write_text(_COMMAND_TYPE_PLUGIN_SRC, encoding="utf-8")

        workspace = Workspace(HistSettings(workspace_root=tmp_path))
        try:
            workspace.init_event_bus(sync=True)
            assert workspace.event_bus is not None
            assert "interest" in workspace.registry

            service = EngineService(workspace)
            service.execute("deposit", {"amount": 200})
            assert service.execute("interest", {"percent": 10}).ok
            assert service.state().data["state"] == {"balance": 220}
            service.undo()
            assert service.state().data["state"] == {"balance": 200}
        finally:
            assert workspace.close() == []
