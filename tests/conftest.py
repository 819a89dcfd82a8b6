"""Shared pytest fixtures for histctl tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from histctl.config.settings import HistSettings
from histctl.domain.commands import CommandRegistry
from histctl.domain.receivers import Account, TextBuffer, builtin_registry
from histctl.engine.chain import HandlerChain, ReceiverHandler
from histctl.infrastructure.memento_store import InMemoryMementoStore
from histctl.infrastructure.workspace import Workspace
from histctl.services.invoker import Invoker
from histctl.services.telemetry import _current_span, disable_telemetry


@pytest.fixture(autouse=True)
def _reset_telemetry_state() -> Generator[None]:
    """``--verbose`` CLI runs enable telemetry on the test thread; undo that."""
    yield
    disable_telemetry()
    _current_span.set(None)


@pytest.fixture(autouse=True)
def _no_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's HISTCTL_* environment out of the tests."""
    for var in ("HISTCTL_CONFIG", "HISTCTL_HISTORY__CAPACITY", "HISTCTL_WORKSPACE__RECEIVER"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def registry() -> CommandRegistry:
    return builtin_registry()


@pytest.fixture
def account() -> Account:
    return Account(100)


@pytest.fixture
def buffer() -> TextBuffer:
    return TextBuffer("hello")


@pytest.fixture
def store() -> InMemoryMementoStore:
    return InMemoryMementoStore()


@pytest.fixture
def invoker(account: Account, registry: CommandRegistry, store: InMemoryMementoStore) -> Invoker:
    """Invoker over a 100-balance account with a receiver-only chain."""
    chain = HandlerChain.build(ReceiverHandler(registry))
    return Invoker(account, chain, registry=registry, store=store)


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    """Temporary workspace directory (the parent of ``.histctl/``)."""
    return tmp_path


@pytest.fixture
def workspace(workspace_root: Path) -> Generator[Workspace]:
    """Initialized workspace on a temp directory with plugins disabled."""
    settings = HistSettings(
        workspace_root=workspace_root,
        plugins={"enabled": False},
    )
    ws = Workspace(settings)
    try:
        yield ws
    finally:
        ws.close()


@pytest.fixture
def _isolated_workspace(workspace_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to a temp directory so the CLI creates an isolated workspace.

    Use via ``@pytest.mark.usefixtures("_isolated_workspace")`` on command
    test classes.
    """
    monkeypatch.chdir(workspace_root)
