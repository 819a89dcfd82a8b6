"""Unified settings: CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs: CLI flags passed by Click
  2. Env vars: ``HISTCTL_*`` prefix, ``__`` for nested sections
  3. TOML file: ``histctl.toml`` discovered via walk-up
  4. Code defaults: baked into the section models
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

import click
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from histctl.config.discovery import find_config
from histctl.config.models import ChainConfig, HistoryConfig, PluginsConfig, WorkspaceConfig


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from a ``histctl.toml`` file."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# TOML path handed to settings_customise_sources during construction.
_tls = threading.local()


class HistSettings(BaseSettings):
    """Settings for the histctl CLI.

    Attributes:
        workspace_root: Directory holding ``.histctl/`` (parent of
            ``histctl.toml``, or CWD if no config was found).
        config_path: The TOML file the settings were read from, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "HISTCTL_",
        "env_nested_delimiter": "__",
    }

    workspace_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False
    sync: bool = False

    # --- TOML sections ---
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    chain: ChainConfig = Field(default_factory=ChainConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert the TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @property
    def plugins_dir(self) -> Path:
        """Local plugin directory, relative paths resolved against the root."""
        local = self.plugins.local_dir
        if local is None:
            return self.workspace_root / ".histctl" / "plugins"
        return local if local.is_absolute() else self.workspace_root / local

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        workspace_root: Path | None = None,
        **cli_flags: Any,
    ) -> HistSettings:
        """Construct settings from a CLI invocation.

        An explicit *config_path* that does not exist is an error; without
        one, ``histctl.toml`` is discovered by walking up from
        *workspace_root* (or the CWD).
        """
        toml_path: Path | None
        if config_path:
            toml_path = Path(config_path)
            if not toml_path.is_file():
                msg = f"Config file not found: {config_path}"
                raise click.ClickException(msg)
        else:
            toml_path = find_config(workspace_root)

        resolved_root = workspace_root
        if resolved_root is None:
            resolved_root = toml_path.parent if toml_path else Path.cwd()

        _tls.toml_path = toml_path
        try:
            return cls(
                workspace_root=resolved_root,
                config_path=toml_path,
                **cli_flags,
            )
        finally:
            _tls.toml_path = None
